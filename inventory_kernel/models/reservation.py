"""
Module: inventory_kernel.models.reservation
Responsibility: ORM persistence for time-boxed stock holds.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - quantity > 0 (CHECK constraint).
    - A row exists only while the reservation is CREATED; release, expiry
      and consumption all delete it.  Deletion is the completion signal,
      so a row can be terminated at most once.
    - A row whose expires_at is not after "now" is dead even if it still
      exists; every reader filters on expires_at.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UTCDateTime


class Reservation(Base):
    __tablename__ = "stock_reservations"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_reservation_quantity_positive"),
        # Query: live reservations of a product
        Index("idx_reservation_product_expires", "product_id", "expires_at"),
        # Query: sweep
        Index("idx_reservation_expires", "expires_at"),
        Index("idx_reservation_order", "order_id"),
        Index("idx_reservation_cart", "cart_id"),
    )

    product_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("inventory_records.product_id"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(nullable=False)

    order_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cart_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<Reservation {self.id}: {self.product_id} x{self.quantity} "
            f"until {self.expires_at}>"
        )
