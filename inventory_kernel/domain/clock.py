"""
Clock -- injectable time source.

Responsibility:
    Services never call ``datetime.now()`` directly.  Reservation expiry,
    movement timestamps, sweep cutoffs and summary windows all read a Clock
    passed in by the caller, so tests can move time forward instead of
    sleeping.

Architecture position:
    Kernel > Domain -- pure, zero I/O (except SystemClock, which is the one
    sanctioned I/O boundary for time).
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current UTC time."""
        ...


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
        - ``tick()`` advances by exactly 1 second and returns the new time.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        if self._current.tzinfo is None:
            self._current = self._current.replace(tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._current = time if time.tzinfo else time.replace(tzinfo=timezone.utc)

    def advance(self, seconds: float = 0, minutes: float = 0) -> datetime:
        """Move the clock forward and return the new time."""
        self._current = self._current + timedelta(seconds=seconds, minutes=minutes)
        return self._current

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        return self.advance(seconds=1)
