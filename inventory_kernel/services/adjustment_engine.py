"""
AdjustmentEngine -- the single writer of on-hand stock.

Responsibility:
    Applies one stock movement to a product as an indivisible unit: lock
    the record, classify the movement, validate against stock rules,
    update valuation, write the counter and append the ledger row.  Also
    hosts the two other record mutations: count correction
    (``set_quantity``) and policy updates.

Architecture position:
    Kernel > Services -- imperative shell.  Uses InventoryRecordStore and
    MovementLedger; used by ReservationManager (consumption), the bulk
    adjustment processor and the orchestrator.

Invariants enforced:
    - Only this engine assigns InventoryRecord.quantity and only together
      with a MovementRecord in the same flush.
    - With allow_backorder False, an outbound movement may not take more
      than the available quantity (on-hand minus live reservations), so
      quantity >= 0 and reserved_quantity <= quantity both hold.
    - Weighted-average cost is recomputed only for inbound movements that
      carry a unit cost.

Failure modes:
    - InsufficientStockError: outbound movement exceeds what is available;
      nothing is flushed.
    - InvalidQuantityError / InvalidMovementError / ValidationError for
      malformed requests.
    - StaleDataError / IntegrityError at flush when a concurrent writer
      slipped past the lock; the orchestrator retries the whole unit.

Audit relevance:
    Every committed adjustment leaves exactly one movement carrying the
    before/after quantities, the acting identity and the batch it belongs
    to.  Rejections are logged as ``adjustment_rejected``.
"""

from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.config import InventoryConfig
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import InventorySnapshot
from inventory_kernel.domain.movement_types import (
    MovementDirection,
    MovementType,
    classify,
    expected_new_quantity,
    is_inbound,
    parse_movement_type,
)
from inventory_kernel.domain.stock_status import quantize_cost, weighted_average_cost
from inventory_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.inventory_record import InventoryRecord
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.inventory_store import InventoryRecordStore
from inventory_kernel.services.movement_ledger import (
    MovementLedger,
    require_positive_quantity,
)

logger = get_logger("services.adjustment_engine")

_POLICY_FIELDS = ("low_stock_threshold", "reorder_point", "reorder_quantity")


class AdjustmentEngine(BaseService[InventoryRecord]):
    """
    Applies stock movements atomically.

    Contract:
        ``adjust()`` returns the post-adjustment snapshot, having flushed
        both the counter and the ledger row into the caller's transaction.

    Non-goals:
        - Does NOT check catalog existence of the product (caller's job).
        - Does NOT commit or retry (orchestrator's job).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: InventoryConfig | None = None,
        store: InventoryRecordStore | None = None,
        ledger: MovementLedger | None = None,
    ):
        super().__init__(session, clock, config)
        self._store = store or InventoryRecordStore(session, self._clock, self._config)
        self._ledger = ledger or MovementLedger(session, self._clock, self._config)

    def adjust(
        self,
        product_id: str,
        movement_type: MovementType | str,
        quantity: int,
        *,
        created_by: str,
        unit_cost: Decimal | str | int | None = None,
        reason: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        batch_id: UUID | None = None,
    ) -> InventorySnapshot:
        """
        Apply one movement to ``product_id``.

        Steps:
            1. Lock (or lazily create) the inventory record.
            2. Classify the movement type.
            3. Compute new quantity = previous +/- quantity.
            4. Reject an outbound movement that exceeds the available
               quantity unless the product allows backorders.
            5. Recompute weighted-average cost on inbound with unit cost.
            6. Append the movement and write the counter in one flush.

        Raises:
            InsufficientStockError: Not enough available stock.
            InvalidQuantityError: quantity is not a positive integer.
            ValidationError: Unknown movement type or negative unit cost.
        """
        mtype = parse_movement_type(movement_type)
        require_positive_quantity("quantity", quantity)
        cost = self._parse_unit_cost(unit_cost)

        record = self._store.get(product_id)
        now = self._clock.now()
        reserved = self._store.reconcile_reserved(record, now)

        previous = record.quantity
        new_quantity = expected_new_quantity(mtype, previous, quantity)

        if not is_inbound(mtype) and not record.allow_backorder:
            available = previous - reserved
            if quantity > available:
                logger.warning(
                    "adjustment_rejected",
                    extra={
                        "product_id": product_id,
                        "movement_type": mtype.value,
                        "requested": quantity,
                        "available": available,
                        "reserved": reserved,
                    },
                )
                raise InsufficientStockError(product_id, quantity, max(available, 0))

        direction = classify(mtype)
        if is_inbound(mtype) and cost is not None:
            record.average_cost = weighted_average_cost(
                previous,
                record.average_cost,
                quantity,
                cost,
                self._config.cost_precision,
            )
            record.last_cost = cost

        if direction == MovementDirection.IN and mtype != MovementType.RELEASE_RESERVE:
            record.last_restocked_at = now
        if mtype == MovementType.SALE:
            record.last_sold_at = now
        record.last_movement_at = now

        movement = self._ledger.append(
            record,
            movement_type=mtype,
            quantity=quantity,
            previous_quantity=previous,
            new_quantity=new_quantity,
            created_by=created_by,
            created_at=now,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
            batch_id=batch_id,
            unit_cost=cost,
        )
        self._store.write(record, new_quantity, now)

        logger.info(
            "stock_adjusted",
            extra={
                "product_id": product_id,
                "movement_type": mtype.value,
                "direction": direction.value,
                "quantity": quantity,
                "previous_quantity": previous,
                "new_quantity": new_quantity,
                "sequence": movement.sequence,
                "batch_id": str(batch_id) if batch_id else None,
            },
        )
        return self.snapshot(record, reserved)

    def set_quantity(
        self,
        product_id: str,
        target_quantity: int,
        *,
        created_by: str,
        reason: str | None = None,
        unit_cost: Decimal | str | int | None = None,
        batch_id: UUID | None = None,
    ) -> InventorySnapshot:
        """
        Correct the on-hand quantity to ``target_quantity`` (stock count).

        Writes ADJUSTMENT_IN or ADJUSTMENT_OUT for the difference.  A zero
        difference writes nothing and returns the current snapshot.
        """
        if isinstance(target_quantity, bool) or not isinstance(target_quantity, int) or target_quantity < 0:
            raise InvalidQuantityError("target_quantity", target_quantity)

        record = self._store.get(product_id)
        delta = target_quantity - record.quantity
        if delta == 0:
            reserved = self._store.reconcile_reserved(record, self._clock.now())
            self.session.flush()
            return self.snapshot(record, reserved)

        movement_type = MovementType.ADJUSTMENT_IN if delta > 0 else MovementType.ADJUSTMENT_OUT
        return self.adjust(
            product_id,
            movement_type,
            abs(delta),
            created_by=created_by,
            unit_cost=unit_cost if delta > 0 else None,
            reason=reason or "Stock count correction",
            reference_type="stock_count",
            batch_id=batch_id,
        )

    def update_policy(
        self,
        product_id: str,
        *,
        low_stock_threshold: int | None = None,
        reorder_point: int | None = None,
        reorder_quantity: int | None = None,
        allow_backorder: bool | None = None,
    ) -> InventorySnapshot:
        """Update policy knobs.  Not a quantity change; no movement is written."""
        values = {
            "low_stock_threshold": low_stock_threshold,
            "reorder_point": reorder_point,
            "reorder_quantity": reorder_quantity,
        }
        for name in _POLICY_FIELDS:
            value = values[name]
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(f"{name} must be a non-negative integer, got {value!r}")

        record = self._store.get(product_id)
        now = self._clock.now()
        changed = {}
        for name in _POLICY_FIELDS:
            if values[name] is not None and getattr(record, name) != values[name]:
                changed[name] = values[name]
                setattr(record, name, values[name])
        if allow_backorder is not None and record.allow_backorder != allow_backorder:
            changed["allow_backorder"] = allow_backorder
            record.allow_backorder = allow_backorder

        reserved = self._store.reconcile_reserved(record, now)
        if changed:
            record.updated_at = now
        self.session.flush()

        logger.info(
            "inventory_policy_updated",
            extra={"product_id": product_id, "changed": changed},
        )
        return self.snapshot(record, reserved)

    def snapshot(self, record: InventoryRecord, reserved: int) -> InventorySnapshot:
        return InventorySnapshot.from_model(record, reserved, self._config.overstock_multiplier)

    def _parse_unit_cost(self, unit_cost: Decimal | str | int | None) -> Decimal | None:
        if unit_cost is None:
            return None
        if isinstance(unit_cost, float):
            raise ValidationError("unit_cost must be a Decimal, str or int, not float")
        try:
            cost = Decimal(unit_cost)
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError(f"unit_cost is not a number: {unit_cost!r}") from None
        if not cost.is_finite() or cost < 0:
            raise ValidationError(f"unit_cost must be a non-negative amount, got {unit_cost!r}")
        return quantize_cost(cost, self._config.cost_precision)
