"""
MovementLedger -- append-only writer for inventory movements.

Responsibility:
    Validates and inserts one MovementRecord per committed stock change,
    allocating the product's next ledger sequence from the locked
    inventory record.

Architecture position:
    Kernel > Services -- imperative shell.  Called only by the adjustment
    engine, inside the same transaction as the counter write.

Invariants enforced:
    - quantity is a positive integer.
    - new_quantity == previous_quantity + sign(type) * quantity.
    - previous_quantity equals the record's current on-hand quantity, so
      each movement continues the chain from the one before it.
    - Sequence allocation reads ledger_sequence from the locked record
      (never MAX(sequence) + 1); unique(product_id, sequence) rejects any
      writer that bypassed the lock.

Failure modes:
    - InvalidQuantityError / InvalidMovementError (ValidationError family)
      before anything is inserted.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from inventory_kernel.domain.movement_types import (
    MovementType,
    expected_new_quantity,
    parse_movement_type,
)
from inventory_kernel.exceptions import InvalidMovementError, InvalidQuantityError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.inventory_record import InventoryRecord
from inventory_kernel.models.movement import MovementRecord
from inventory_kernel.services.base import BaseService

logger = get_logger("services.movement_ledger")


def require_positive_quantity(field_name: str, value: object) -> int:
    """Return ``value`` if it is a positive int, else raise InvalidQuantityError."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidQuantityError(field_name, value)
    return value


class MovementLedger(BaseService[MovementRecord]):
    """
    Insert-only access to the movement ledger.

    Contract:
        ``append()`` validates the quantity triple against the direction of
        the movement type and inserts the row.  It never updates or deletes.

    Guarantees:
        - On success the record's ledger_sequence equals the new row's
          sequence.
        - On failure nothing is added to the session.
    """

    def append(
        self,
        record: InventoryRecord,
        *,
        movement_type: MovementType | str,
        quantity: int,
        previous_quantity: int,
        new_quantity: int,
        created_by: str,
        created_at: datetime,
        reason: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        batch_id: UUID | None = None,
        unit_cost: Decimal | None = None,
    ) -> MovementRecord:
        """
        Append one movement for ``record``'s product.

        Preconditions:
            - ``record`` is locked by the caller's transaction.

        Raises:
            InvalidQuantityError: quantity not a positive integer.
            InvalidMovementError: triple inconsistent with the type's
                direction, or previous_quantity does not continue the chain.
        """
        mtype = parse_movement_type(movement_type)
        require_positive_quantity("quantity", quantity)

        expected = expected_new_quantity(mtype, previous_quantity, quantity)
        if new_quantity != expected:
            raise InvalidMovementError(
                movement_type=mtype.value,
                quantity=quantity,
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
                reason=f"expected new quantity {expected}",
            )

        if previous_quantity != record.quantity:
            raise InvalidMovementError(
                movement_type=mtype.value,
                quantity=quantity,
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
                reason=(
                    f"previous quantity does not match on-hand "
                    f"quantity {record.quantity}"
                ),
            )

        if not created_by:
            raise InvalidMovementError(
                movement_type=mtype.value,
                quantity=quantity,
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
                reason="created_by is required",
            )

        sequence = record.ledger_sequence + 1
        total_cost = unit_cost * quantity if unit_cost is not None else None

        movement = MovementRecord(
            product_id=record.product_id,
            sequence=sequence,
            movement_type=mtype.value,
            quantity=quantity,
            previous_quantity=previous_quantity,
            new_quantity=new_quantity,
            unit_cost=unit_cost,
            total_cost=total_cost,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
            created_by=created_by,
            batch_id=batch_id,
            created_at=created_at,
        )
        record.ledger_sequence = sequence
        self.session.add(movement)

        logger.debug(
            "movement_appended",
            extra={
                "product_id": record.product_id,
                "sequence": sequence,
                "movement_type": mtype.value,
                "previous_quantity": previous_quantity,
                "new_quantity": new_quantity,
            },
        )
        return movement
