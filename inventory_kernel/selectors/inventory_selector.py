"""
InventorySelector -- read-side view of stock counters.

Responsibility:
    Snapshots, availability checks, reorder suggestions and valuation over
    inventory records.  Available quantity is always on-hand minus the live
    reservation total at query time, so expired-but-unswept reservations
    never reduce availability.

Architecture position:
    Kernel > Selectors.  Read-only.
"""

from decimal import Decimal

from sqlalchemy import func, select

from inventory_kernel.domain.dtos import (
    AvailabilityCheck,
    InventorySnapshot,
    ReorderSuggestion,
    ReservationRequest,
    ValuationSummary,
)
from inventory_kernel.domain.stock_status import InventoryStatus
from inventory_kernel.exceptions import InvalidQuantityError, InventoryRecordNotFoundError
from inventory_kernel.models.inventory_record import InventoryRecord
from inventory_kernel.models.reservation import Reservation
from inventory_kernel.selectors.base import BaseSelector


class InventorySelector(BaseSelector[InventoryRecord]):
    """Read-only queries over inventory records."""

    def live_reserved(self, product_ids: list[str] | None = None) -> dict[str, int]:
        """Live reserved total per product (products without holds are absent)."""
        now = self._clock.now()
        stmt = (
            select(Reservation.product_id, func.sum(Reservation.quantity))
            .where(Reservation.expires_at > now)
            .group_by(Reservation.product_id)
        )
        if product_ids is not None:
            stmt = stmt.where(Reservation.product_id.in_(product_ids))
        return {product_id: int(total) for product_id, total in self.session.execute(stmt).all()}

    def _snapshot(self, record: InventoryRecord, reserved: int) -> InventorySnapshot:
        return InventorySnapshot.from_model(record, reserved, self._config.overstock_multiplier)

    def find(self, product_id: str) -> InventorySnapshot | None:
        record = self.session.execute(
            select(InventoryRecord).where(InventoryRecord.product_id == product_id)
        ).scalar_one_or_none()
        if record is None:
            return None
        reserved = self.live_reserved([product_id]).get(product_id, 0)
        return self._snapshot(record, reserved)

    def get(self, product_id: str) -> InventorySnapshot:
        """
        Snapshot of one product.

        Raises:
            InventoryRecordNotFoundError: product was never adjusted.
        """
        snapshot = self.find(product_id)
        if snapshot is None:
            raise InventoryRecordNotFoundError(product_id)
        return snapshot

    def list_records(
        self,
        status: InventoryStatus | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[InventorySnapshot]:
        """All records ordered by product_id, optionally filtered by derived status."""
        records = self.session.execute(
            select(InventoryRecord).order_by(InventoryRecord.product_id)
        ).scalars().all()
        reserved = self.live_reserved()
        snapshots = [self._snapshot(r, reserved.get(r.product_id, 0)) for r in records]
        if status is not None:
            snapshots = [s for s in snapshots if s.status == status]
        end = None if limit is None else offset + limit
        return snapshots[offset:end]

    def check_availability(self, product_id: str, requested: int) -> AvailabilityCheck:
        """Whether ``requested`` units could be reserved right now."""
        if isinstance(requested, bool) or not isinstance(requested, int) or requested <= 0:
            raise InvalidQuantityError("requested", requested)

        snapshot = self.find(product_id)
        available = snapshot.available_quantity if snapshot is not None else 0
        return AvailabilityCheck(
            product_id=product_id,
            requested=requested,
            available=max(available, 0),
            is_available=available >= requested,
            shortfall=max(requested - available, 0),
        )

    def check_availability_many(self, requests: list[ReservationRequest]) -> list[AvailabilityCheck]:
        return [self.check_availability(r.product_id, r.quantity) for r in requests]

    def reorder_suggestions(self) -> list[ReorderSuggestion]:
        """
        Products whose available quantity is at or below their reorder point.

        Ordered most urgent first (lowest available relative to reorder point).
        """
        suggestions = []
        for snapshot in self.list_records():
            if snapshot.available_quantity > snapshot.reorder_point:
                continue
            suggested = max(
                snapshot.reorder_quantity,
                snapshot.reorder_point - snapshot.available_quantity,
            )
            suggestions.append(
                ReorderSuggestion(
                    product_id=snapshot.product_id,
                    quantity=snapshot.quantity,
                    available_quantity=snapshot.available_quantity,
                    reorder_point=snapshot.reorder_point,
                    suggested_quantity=suggested,
                )
            )
        suggestions.sort(key=lambda s: (s.available_quantity - s.reorder_point, s.product_id))
        return suggestions

    def valuation(self) -> ValuationSummary:
        """Total units and value (quantity * average cost) across records."""
        snapshots = self.list_records()
        total_value = Decimal("0")
        total_units = 0
        for snapshot in snapshots:
            if snapshot.quantity > 0:
                total_units += snapshot.quantity
                total_value += Decimal(snapshot.quantity) * snapshot.average_cost
        return ValuationSummary(
            total_products=len(snapshots),
            total_units=total_units,
            total_value=total_value,
            low_stock_count=sum(1 for s in snapshots if s.status == InventoryStatus.LOW_STOCK),
            out_of_stock_count=sum(1 for s in snapshots if s.status == InventoryStatus.OUT_OF_STOCK),
        )
