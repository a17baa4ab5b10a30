"""
MovementSelector -- read side of the movement ledger.

Responsibility:
    Filtered, paginated ledger queries (newest first), trailing-window
    summaries, per-product history, quantity replay and chain verification.

Architecture position:
    Kernel > Selectors.  Read-only.

Invariants enforced:
    - Newest-first order is (created_at DESC, sequence DESC); within one
      product the sequence is the commit-order witness, so equal
      timestamps still sort deterministically.
    - Replay walks movements in ascending sequence order.

Failure modes:
    - LedgerIntegrityError from verify_chain() when a movement does not
      continue from its predecessor or the chain does not end at the
      record's on-hand quantity.
    - ValidationError for invalid page/limit/window arguments.
"""

from datetime import timedelta

from sqlalchemy import func, select

from inventory_kernel.domain.dtos import (
    MovementFilter,
    MovementPage,
    MovementSnapshot,
    MovementSummary,
)
from inventory_kernel.domain.movement_types import MovementType, is_inbound, parse_movement_type
from inventory_kernel.exceptions import (
    InventoryRecordNotFoundError,
    LedgerIntegrityError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.inventory_record import InventoryRecord
from inventory_kernel.models.movement import MovementRecord
from inventory_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.movement")


class MovementSelector(BaseSelector[MovementRecord]):
    """Read-only queries over the movement ledger."""

    def _conditions(self, filters: MovementFilter) -> list:
        conditions = []
        if filters.product_id is not None:
            conditions.append(MovementRecord.product_id == filters.product_id)
        if filters.movement_type is not None:
            conditions.append(
                MovementRecord.movement_type == parse_movement_type(filters.movement_type).value
            )
        if filters.start_date is not None:
            conditions.append(MovementRecord.created_at >= filters.start_date)
        if filters.end_date is not None:
            conditions.append(MovementRecord.created_at < filters.end_date)
        if filters.created_by is not None:
            conditions.append(MovementRecord.created_by == filters.created_by)
        if filters.batch_id is not None:
            conditions.append(MovementRecord.batch_id == filters.batch_id)
        if filters.reference_type is not None:
            conditions.append(MovementRecord.reference_type == filters.reference_type)
        if filters.reference_id is not None:
            conditions.append(MovementRecord.reference_id == filters.reference_id)
        return conditions

    def query(self, filters: MovementFilter | None = None) -> MovementPage:
        """Movements matching ``filters``, newest first, one page at a time."""
        filters = filters or MovementFilter()
        limit = self._config.default_page_size if filters.limit is None else filters.limit
        if filters.page < 1:
            raise ValidationError(f"page must be >= 1, got {filters.page}")
        if limit < 1 or limit > self._config.max_page_size:
            raise ValidationError(
                f"limit must be between 1 and {self._config.max_page_size}, got {limit}"
            )

        conditions = self._conditions(filters)
        total = self.session.execute(
            select(func.count()).select_from(MovementRecord).where(*conditions)
        ).scalar_one()

        rows = self.session.execute(
            select(MovementRecord)
            .where(*conditions)
            .order_by(MovementRecord.created_at.desc(), MovementRecord.sequence.desc())
            .offset((filters.page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        return MovementPage(
            items=tuple(MovementSnapshot.from_model(m) for m in rows),
            total=total,
            page=filters.page,
            limit=limit,
        )

    def history(self, product_id: str, limit: int = 50) -> list[MovementSnapshot]:
        """Most recent movements of one product, newest first."""
        page = self.query(MovementFilter(product_id=product_id, limit=limit))
        return list(page.items)

    def summarize(self, product_id: str, window_days: int = 30) -> MovementSummary:
        """
        Inbound vs outbound totals for the trailing ``window_days``.

        Totals are unit quantities; net_change is inbound minus outbound.
        """
        if window_days <= 0:
            raise ValidationError(f"window_days must be positive, got {window_days}")

        window_start = self._clock.now() - timedelta(days=window_days)
        rows = self.session.execute(
            select(
                MovementRecord.movement_type,
                func.count(),
                func.coalesce(func.sum(MovementRecord.quantity), 0),
            )
            .where(
                MovementRecord.product_id == product_id,
                MovementRecord.created_at >= window_start,
            )
            .group_by(MovementRecord.movement_type)
        ).all()

        total_movements = 0
        inbound = 0
        outbound = 0
        by_type: dict[MovementType, int] = {}
        for movement_type, count, quantity in rows:
            mtype = MovementType(movement_type)
            total_movements += count
            by_type[mtype] = int(quantity)
            if is_inbound(mtype):
                inbound += int(quantity)
            else:
                outbound += int(quantity)

        recent = ()
        if self._config.summary_recent_limit:
            recent = self.session.execute(
                select(MovementRecord)
                .where(
                    MovementRecord.product_id == product_id,
                    MovementRecord.created_at >= window_start,
                )
                .order_by(MovementRecord.created_at.desc(), MovementRecord.sequence.desc())
                .limit(self._config.summary_recent_limit)
            ).scalars().all()

        return MovementSummary(
            product_id=product_id,
            window_days=window_days,
            window_start=window_start,
            total_movements=total_movements,
            total_inbound=inbound,
            total_outbound=outbound,
            net_change=inbound - outbound,
            by_type=by_type,
            recent_movements=tuple(MovementSnapshot.from_model(m) for m in recent),
        )

    def _chain(self, product_id: str) -> list[MovementRecord]:
        return list(
            self.session.execute(
                select(MovementRecord)
                .where(MovementRecord.product_id == product_id)
                .order_by(MovementRecord.sequence.asc())
            ).scalars().all()
        )

    def replay(self, product_id: str) -> int:
        """On-hand quantity reconstructed by applying every movement in order."""
        quantity = 0
        for movement in self._chain(product_id):
            quantity += movement.new_quantity - movement.previous_quantity
        return quantity

    def verify_chain(self, product_id: str) -> int:
        """
        Check that the product's ledger reconstructs its counter.

        Returns:
            Number of movements verified.

        Raises:
            InventoryRecordNotFoundError: product has no record.
            LedgerIntegrityError: the chain is broken.
        """
        record = self.session.execute(
            select(InventoryRecord).where(InventoryRecord.product_id == product_id)
        ).scalar_one_or_none()
        if record is None:
            raise InventoryRecordNotFoundError(product_id)

        movements = self._chain(product_id)
        running = 0
        for expected_sequence, movement in enumerate(movements, start=1):
            if movement.sequence != expected_sequence:
                raise LedgerIntegrityError(product_id, movement.sequence, expected_sequence, movement.sequence)
            if movement.previous_quantity != running:
                raise LedgerIntegrityError(product_id, movement.sequence, running, movement.previous_quantity)
            signed = movement.new_quantity - movement.previous_quantity
            if abs(signed) != movement.quantity:
                raise LedgerIntegrityError(product_id, movement.sequence, movement.quantity, abs(signed))
            running = movement.new_quantity

        if running != record.quantity:
            raise LedgerIntegrityError(product_id, None, record.quantity, running)

        logger.debug(
            "ledger_chain_verified",
            extra={"product_id": product_id, "movements": len(movements)},
        )
        return len(movements)
