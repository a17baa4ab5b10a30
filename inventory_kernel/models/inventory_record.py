"""
Module: inventory_kernel.models.inventory_record
Responsibility: ORM persistence for the per-product stock counters and
    policy thresholds.  This row is the only shared mutable resource in the
    kernel; every stock mutation locks it first.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - One row per product (unique product_id).
    - reserved_quantity >= 0 (CHECK constraint).
    - Optimistic concurrency: ``version`` is SQLAlchemy's version_id_col.
      An UPDATE issued from a stale read affects zero rows and raises
      StaleDataError, so a lost update cannot commit even if a lock was
      bypassed.
    - ledger_sequence is the number of movements ever appended for the
      product; the next movement takes ledger_sequence + 1.

Failure modes:
    - IntegrityError on a duplicate product_id (two racing lazy creations);
      the record store resolves this with a savepoint and re-read.
    - StaleDataError on a concurrent update through a stale version.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UTCDateTime


class InventoryRecord(Base):
    """
    Durable stock counters for one product.

    Contract:
        Mutated only by the adjustment engine and the reservation manager,
        always under a row lock obtained through the record store.

    Guarantees:
        - quantity >= 0 whenever allow_backorder is False (enforced by the
          adjustment engine before write).
        - reserved_quantity caches the sum of live reservations as of the
          last mutation.  Readers recompute the live sum; this column is a
          write-side cache reconciled on every reserve/release/sweep.

    Non-goals:
        - Status is not stored; it is derived from quantity and thresholds.
    """

    __tablename__ = "inventory_records"

    __table_args__ = (
        CheckConstraint("reserved_quantity >= 0", name="ck_inventory_reserved_non_negative"),
        CheckConstraint("low_stock_threshold >= 0", name="ck_inventory_threshold_non_negative"),
        CheckConstraint("reorder_point >= 0", name="ck_inventory_reorder_point_non_negative"),
        CheckConstraint("reorder_quantity >= 0", name="ck_inventory_reorder_quantity_non_negative"),
    )

    product_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )

    # Counters
    quantity: Mapped[int] = mapped_column(nullable=False, default=0)
    reserved_quantity: Mapped[int] = mapped_column(nullable=False, default=0)

    # Policy knobs
    low_stock_threshold: Mapped[int] = mapped_column(nullable=False, default=10)
    reorder_point: Mapped[int] = mapped_column(nullable=False, default=10)
    reorder_quantity: Mapped[int] = mapped_column(nullable=False, default=50)
    allow_backorder: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Valuation
    average_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    last_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Ledger head: sequence of the most recent movement
    ledger_sequence: Mapped[int] = mapped_column(nullable=False, default=0)

    version: Mapped[int] = mapped_column(nullable=False)

    # Timestamps (from the injected clock)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_restocked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_sold_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_movement_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord {self.product_id}: qty={self.quantity} "
            f"reserved={self.reserved_quantity} v{self.version}>"
        )
