"""
Bounded retry of atomic units under contention.

Responsibility:
    Runs a unit of work in a fresh session and transaction, commits it,
    and re-runs the whole unit when it loses a race.  Translates the
    driver- and ORM-level symptoms of a lost race into
    ConcurrencyConflictError.

Architecture position:
    Kernel > Services -- imperative shell.  Used by InventoryOrchestrator
    and ReservationSweeper.

Conflict symptoms translated:
    - StaleDataError: version_id_col mismatch (lost update detected).
    - OperationalError: SQLite "database is locked" after the busy
      timeout, PostgreSQL deadlock / serialization / lock timeout.
    - IntegrityError on the racing unique keys: inventory_records.product_id
      (two lazy creations) and (product_id, sequence) on movements.

Failure modes:
    - ConcurrencyConflictError once ``max_attempts`` runs have all
      conflicted.  Every other exception propagates unchanged after
      rollback, on the first attempt.
"""

import time
from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from inventory_kernel.exceptions import ConcurrencyConflictError
from inventory_kernel.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")

_LOCK_MARKERS = (
    "database is locked",
    "database table is locked",
    "deadlock detected",
    "could not serialize access",
    "lock timeout",
    "could not obtain lock",
)

_RACE_KEY_MARKERS = (
    "inventory_records.product_id",
    "inventory_records_product_id_key",
    "inventory_movements.sequence",
    "uq_movement_product_sequence",
)


def as_conflict(
    exc: BaseException,
    entity_type: str,
    entity_id: str,
    attempts: int = 1,
) -> ConcurrencyConflictError | None:
    """Return a ConcurrencyConflictError if ``exc`` is a lost race, else None."""
    if isinstance(exc, ConcurrencyConflictError):
        return ConcurrencyConflictError(exc.entity_type, exc.entity_id, attempts)
    if isinstance(exc, StaleDataError):
        return ConcurrencyConflictError(entity_type, entity_id, attempts)

    message = str(getattr(exc, "orig", exc)).lower()
    if isinstance(exc, OperationalError) and any(m in message for m in _LOCK_MARKERS):
        return ConcurrencyConflictError(entity_type, entity_id, attempts)
    if isinstance(exc, IntegrityError) and any(m in message for m in _RACE_KEY_MARKERS):
        return ConcurrencyConflictError(entity_type, entity_id, attempts)
    return None


def run_in_transaction(
    session_factory: Callable[[], Session],
    work: Callable[[Session], T],
    *,
    operation: str,
    entity_type: str,
    entity_id: str,
    max_attempts: int,
    backoff_seconds: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``work(session)`` and commit, retrying on lost races.

    Each attempt gets its own session, so no state from a failed attempt
    leaks into the next one.

    Raises:
        ConcurrencyConflictError: every attempt conflicted.
    """
    attempt = 0
    while True:
        attempt += 1
        session = session_factory()
        try:
            result = work(session)
            session.commit()
            return result
        except Exception as exc:
            session.rollback()
            conflict = as_conflict(exc, entity_type, entity_id, attempt)
            if conflict is None:
                raise
            if attempt >= max_attempts:
                logger.error(
                    "concurrency_retries_exhausted",
                    extra={
                        "operation": operation,
                        "entity_type": entity_type,
                        "entity_id": entity_id,
                        "attempts": attempt,
                    },
                )
                raise conflict from exc
            logger.warning(
                "concurrency_retry",
                extra={
                    "operation": operation,
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "attempt": attempt,
                    "error_type": type(exc).__name__,
                },
            )
            if backoff_seconds:
                sleep(backoff_seconds * attempt)
        finally:
            session.close()
