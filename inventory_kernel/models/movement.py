"""
Module: inventory_kernel.models.movement
Responsibility: ORM persistence for the append-only movement ledger.  Each
    row records one committed stock change with the quantities before and
    after it.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - quantity > 0 (CHECK constraint); direction comes from movement_type.
    - (product_id, sequence) is unique, giving every product a gap-free,
      totally ordered chain.  Two writers that both read the same ledger
      head cannot both commit.
    - Rows are never updated or deleted (db/immutability.py).

Audit relevance:
    previous_quantity and new_quantity are captured at commit time, so
    the full history of a product can be replayed and checked against its
    current counter.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UTCDateTime, UUIDString


class MovementRecord(Base):
    """
    One immutable ledger row.

    Guarantees:
        - new_quantity == previous_quantity +/- quantity per the direction
          of movement_type (validated by the movement ledger before insert).
        - sequence is 1-based and contiguous per product.
    """

    __tablename__ = "inventory_movements"

    __table_args__ = (
        UniqueConstraint("product_id", "sequence", name="uq_movement_product_sequence"),
        CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
        Index("idx_movement_product_created", "product_id", "created_at"),
        Index("idx_movement_type", "movement_type"),
        Index("idx_movement_created_by", "created_by"),
        Index("idx_movement_batch", "batch_id"),
        Index("idx_movement_reference", "reference_type", "reference_id"),
    )

    product_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("inventory_records.product_id"),
        nullable=False,
    )

    sequence: Mapped[int] = mapped_column(nullable=False)

    movement_type: Mapped[str] = mapped_column(String(30), nullable=False)

    quantity: Mapped[int] = mapped_column(nullable=False)
    previous_quantity: Mapped[int] = mapped_column(nullable=False)
    new_quantity: Mapped[int] = mapped_column(nullable=False)

    # Inbound cost capture (nullable: outbound movements carry no cost)
    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Attribution
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    batch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<MovementRecord {self.product_id}#{self.sequence} {self.movement_type} "
            f"{self.previous_quantity}->{self.new_quantity}>"
        )
