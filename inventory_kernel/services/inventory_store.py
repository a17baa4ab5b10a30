"""
InventoryRecordStore -- locked access to the per-product counter row.

Responsibility:
    The narrow persistence boundary for InventoryRecord.  Loads a record
    under a row lock (creating a zero-quantity record on first use), writes
    the new quantity, and reconciles the cached reserved_quantity with the
    live reservations.  No business rules live here.

Architecture position:
    Kernel > Services -- imperative shell.  Called only by the adjustment
    engine and the reservation manager.

Invariants enforced:
    - Every mutation path starts with ``get()``, which takes the row lock:
      ``SELECT ... FOR UPDATE`` on PostgreSQL; on SQLite the transaction
      already holds the database write lock (BEGIN IMMEDIATE).
    - ``populate_existing`` refreshes any cached instance so the caller
      always validates against the committed state it has locked.
    - Lazy creation races resolve through a SAVEPOINT: the loser of the
      unique(product_id) race rolls back the savepoint only and re-reads
      the winner's row under lock.

Failure modes:
    - IntegrityError escaping the savepoint re-read is translated by the
      retry layer into ConcurrencyConflictError.
"""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.inventory_record import InventoryRecord
from inventory_kernel.models.reservation import Reservation
from inventory_kernel.services.base import BaseService

logger = get_logger("services.inventory_store")


class InventoryRecordStore(BaseService[InventoryRecord]):
    """
    Persistence boundary for inventory records.

    Contract:
        ``get(product_id)`` returns the locked record, creating it with the
        configured default policy if absent.  ``write()`` is the single
        place the on-hand counter is assigned.

    Non-goals:
        - No validation of quantities or stock rules (adjustment engine).
        - No commit; the caller owns the transaction.
    """

    @staticmethod
    def _locked(product_id: str):
        return (
            select(InventoryRecord)
            .where(InventoryRecord.product_id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    def _select_locked(self, product_id: str) -> InventoryRecord | None:
        return self.session.execute(self._locked(product_id)).scalar_one_or_none()

    def get(self, product_id: str) -> InventoryRecord:
        """
        Load the record for ``product_id`` under a row lock.

        Postconditions:
            - The returned record is locked until the transaction ends.
            - A record exists for the product (created with quantity 0 if
              this is its first use).
        """
        record = self._select_locked(product_id)
        if record is not None:
            return record

        savepoint = self.session.begin_nested()
        try:
            record = self._new_record(product_id)
            self.session.add(record)
            self.session.flush()
            savepoint.commit()
            logger.info(
                "inventory_record_created",
                extra={"product_id": product_id},
            )
            return record
        except IntegrityError:
            # Another transaction created the record first
            logger.debug(
                "inventory_record_create_race",
                extra={"product_id": product_id},
            )
            savepoint.rollback()
            return self.session.execute(self._locked(product_id)).scalar_one()

    def _new_record(self, product_id: str) -> InventoryRecord:
        return InventoryRecord(
            product_id=product_id,
            quantity=0,
            reserved_quantity=0,
            low_stock_threshold=self._config.default_low_stock_threshold,
            reorder_point=self._config.default_reorder_point,
            reorder_quantity=self._config.default_reorder_quantity,
            allow_backorder=self._config.default_allow_backorder,
            ledger_sequence=0,
            created_at=self._clock.now(),
        )

    def write(self, record: InventoryRecord, new_quantity: int, now: datetime) -> InventoryRecord:
        """
        Assign the on-hand counter and flush.

        The UPDATE carries the version predicate; a stale record raises
        StaleDataError here.
        """
        record.quantity = new_quantity
        record.updated_at = now
        self.session.flush()
        return record

    def live_reserved(self, product_id: str, now: datetime) -> int:
        """Sum of reservations for the product that have not expired at ``now``."""
        total = self.session.execute(
            select(func.coalesce(func.sum(Reservation.quantity), 0)).where(
                Reservation.product_id == product_id,
                Reservation.expires_at > now,
            )
        ).scalar_one()
        return int(total)

    def reconcile_reserved(self, record: InventoryRecord, now: datetime) -> int:
        """
        Set the cached reserved_quantity to the live sum and return it.

        Expired-but-unswept reservations drop out here, so they are never
        counted against availability.
        """
        live = self.live_reserved(record.product_id, now)
        if record.reserved_quantity != live:
            logger.debug(
                "reserved_quantity_reconciled",
                extra={
                    "product_id": record.product_id,
                    "cached": record.reserved_quantity,
                    "live": live,
                },
            )
            record.reserved_quantity = live
            record.updated_at = now
        return live
