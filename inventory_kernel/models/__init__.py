"""ORM models for the inventory kernel."""

from inventory_kernel.models.inventory_record import InventoryRecord
from inventory_kernel.models.movement import MovementRecord
from inventory_kernel.models.reservation import Reservation

__all__ = [
    "InventoryRecord",
    "MovementRecord",
    "Reservation",
]
