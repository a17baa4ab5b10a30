"""
ReservationSelector -- read side of the reservation lifecycle.

Every query applies passive expiry: a reservation whose expires_at is not
in the future reads as if it no longer exists, whether or not a sweep has
removed it yet.
"""

from datetime import timedelta
from uuid import UUID

from sqlalchemy import func, select

from inventory_kernel.domain.dtos import (
    ProductReservationStats,
    ReservationSnapshot,
    ReservationStats,
)
from inventory_kernel.exceptions import ReservationNotFoundError
from inventory_kernel.models.reservation import Reservation
from inventory_kernel.selectors.base import BaseSelector


class ReservationSelector(BaseSelector[Reservation]):
    """Read-only queries over live reservations."""

    def get(self, reservation_id: UUID) -> ReservationSnapshot:
        """
        Raises:
            ReservationNotFoundError: missing or already expired.
        """
        reservation = self.session.execute(
            select(Reservation).where(
                Reservation.id == reservation_id,
                Reservation.expires_at > self._clock.now(),
            )
        ).scalar_one_or_none()
        if reservation is None:
            raise ReservationNotFoundError(str(reservation_id))
        return ReservationSnapshot.from_model(reservation)

    def list_active(
        self,
        product_id: str | None = None,
        order_id: str | None = None,
        cart_id: str | None = None,
    ) -> list[ReservationSnapshot]:
        """Live reservations, soonest expiry first."""
        stmt = select(Reservation).where(Reservation.expires_at > self._clock.now())
        if product_id is not None:
            stmt = stmt.where(Reservation.product_id == product_id)
        if order_id is not None:
            stmt = stmt.where(Reservation.order_id == order_id)
        if cart_id is not None:
            stmt = stmt.where(Reservation.cart_id == cart_id)
        rows = self.session.execute(
            stmt.order_by(Reservation.expires_at, Reservation.created_at)
        ).scalars().all()
        return [ReservationSnapshot.from_model(r) for r in rows]

    def stats(self) -> ReservationStats:
        now = self._clock.now()
        soon = now + timedelta(minutes=self._config.expiring_soon_minutes)

        rows = self.session.execute(
            select(
                Reservation.product_id,
                func.count(),
                func.sum(Reservation.quantity),
            )
            .where(Reservation.expires_at > now)
            .group_by(Reservation.product_id)
            .order_by(Reservation.product_id)
        ).all()
        by_product = tuple(
            ProductReservationStats(
                product_id=product_id,
                reservation_count=count,
                reserved_quantity=int(quantity),
            )
            for product_id, count, quantity in rows
        )

        expiring_soon = self.session.execute(
            select(func.count())
            .select_from(Reservation)
            .where(Reservation.expires_at > now, Reservation.expires_at <= soon)
        ).scalar_one()

        return ReservationStats(
            active_count=sum(p.reservation_count for p in by_product),
            total_reserved_quantity=sum(p.reserved_quantity for p in by_product),
            expiring_soon_count=expiring_soon,
            by_product=by_product,
        )
