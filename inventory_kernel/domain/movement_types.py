"""
Movement types and their single classification table.

Responsibility:
    Every movement type maps to exactly one direction (IN, OUT or
    ADJUSTMENT) and one sign (+1 or -1).  All call sites ask this module;
    no code compares type strings to decide whether stock goes up or down.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - new_quantity == previous_quantity + sign(type) * quantity for every
      movement (checked by ``expected_new_quantity``).
"""

from enum import Enum

from inventory_kernel.exceptions import ValidationError


class MovementDirection(str, Enum):
    """Three-way tag collapsing the movement type aliases."""

    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


class MovementType(str, Enum):
    """Closed set of movement types recorded in the ledger."""

    # Inbound
    INITIAL_STOCK = "INITIAL_STOCK"
    RESTOCK = "RESTOCK"
    PURCHASE = "PURCHASE"
    RETURN = "RETURN"
    TRANSFER_IN = "TRANSFER_IN"
    RELEASE_RESERVE = "RELEASE_RESERVE"

    # Outbound
    SALE = "SALE"
    TRANSFER_OUT = "TRANSFER_OUT"
    DAMAGE = "DAMAGE"
    THEFT = "THEFT"
    EXPIRED = "EXPIRED"
    RESERVE = "RESERVE"

    # Manual corrections
    ADJUSTMENT_IN = "ADJUSTMENT_IN"
    ADJUSTMENT_OUT = "ADJUSTMENT_OUT"


_CLASSIFICATION: dict[MovementType, tuple[MovementDirection, int]] = {
    MovementType.INITIAL_STOCK: (MovementDirection.IN, 1),
    MovementType.RESTOCK: (MovementDirection.IN, 1),
    MovementType.PURCHASE: (MovementDirection.IN, 1),
    MovementType.RETURN: (MovementDirection.IN, 1),
    MovementType.TRANSFER_IN: (MovementDirection.IN, 1),
    MovementType.RELEASE_RESERVE: (MovementDirection.IN, 1),
    MovementType.SALE: (MovementDirection.OUT, -1),
    MovementType.TRANSFER_OUT: (MovementDirection.OUT, -1),
    MovementType.DAMAGE: (MovementDirection.OUT, -1),
    MovementType.THEFT: (MovementDirection.OUT, -1),
    MovementType.EXPIRED: (MovementDirection.OUT, -1),
    MovementType.RESERVE: (MovementDirection.OUT, -1),
    MovementType.ADJUSTMENT_IN: (MovementDirection.ADJUSTMENT, 1),
    MovementType.ADJUSTMENT_OUT: (MovementDirection.ADJUSTMENT, -1),
}


def parse_movement_type(value: "MovementType | str") -> MovementType:
    """Coerce a string to a MovementType, raising ValidationError if unknown."""
    if isinstance(value, MovementType):
        return value
    try:
        return MovementType(str(value).upper())
    except ValueError:
        raise ValidationError(f"Unknown movement type: {value!r}") from None


def classify(movement_type: "MovementType | str") -> MovementDirection:
    """Direction tag for a movement type."""
    return _CLASSIFICATION[parse_movement_type(movement_type)][0]


def sign(movement_type: "MovementType | str") -> int:
    """+1 if the type adds stock, -1 if it removes stock."""
    return _CLASSIFICATION[parse_movement_type(movement_type)][1]


def is_inbound(movement_type: "MovementType | str") -> bool:
    return sign(movement_type) > 0


def is_outbound(movement_type: "MovementType | str") -> bool:
    return sign(movement_type) < 0


def signed_quantity(movement_type: "MovementType | str", quantity: int) -> int:
    return sign(movement_type) * quantity


def expected_new_quantity(
    movement_type: "MovementType | str",
    previous_quantity: int,
    quantity: int,
) -> int:
    return previous_quantity + signed_quantity(movement_type, quantity)


def inbound_types() -> frozenset[MovementType]:
    return frozenset(t for t, (_, s) in _CLASSIFICATION.items() if s > 0)


def outbound_types() -> frozenset[MovementType]:
    return frozenset(t for t, (_, s) in _CLASSIFICATION.items() if s < 0)
