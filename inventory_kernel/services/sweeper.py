"""
ReservationSweeper -- in-process background expiry.

Contract:
    Every ``interval_seconds`` runs ReservationManager.sweep_expired() in
    its own transaction.  Sweeping is an optimisation: reads already
    ignore expired reservations, so a missed or failed tick only delays
    cleanup.

Architecture: Kernel > Services.  Uses run_in_transaction, so a tick that
    races a reserve or another sweeper is retried like any other write.

Non-goals:
    - NOT a distributed scheduler.  Running several sweepers is safe
      (deletion rowcount decides who released a row) but not coordinated.
"""

from __future__ import annotations

import threading
from typing import Callable

from sqlalchemy.orm import Session

from inventory_kernel.config import InventoryConfig
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import SweepResult
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.reservation_manager import ReservationManager
from inventory_kernel.services.retry import run_in_transaction

logger = get_logger("services.sweeper")


class ReservationSweeper:
    """Polls for expired reservations and deletes them."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        config: InventoryConfig | None = None,
        interval_seconds: float | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._config = config or InventoryConfig()
        self._interval = (
            self._config.sweep_interval_seconds
            if interval_seconds is None
            else interval_seconds
        )
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def tick(self) -> SweepResult | None:
        """Run one sweep (public for testing).  None when the sweep failed."""
        try:
            return run_in_transaction(
                self._session_factory,
                lambda s: ReservationManager(s, self._clock, self._config).sweep_expired(),
                operation="sweep_expired",
                entity_type="Reservation",
                entity_id="sweep",
                max_attempts=self._config.max_retries,
                backoff_seconds=self._config.retry_backoff_seconds,
            )
        except Exception:
            logger.exception("sweeper_tick_failed")
            return None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="reservation-sweeper",
            daemon=True,
        )
        self._thread.start()
        logger.info("sweeper_started", extra={"interval_seconds": self._interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current tick to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("sweeper_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._interval)
