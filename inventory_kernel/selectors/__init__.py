"""Read-only query selectors (the "Q" side of CQRS-lite)."""

from inventory_kernel.selectors.alert_selector import StockAlertEvaluator
from inventory_kernel.selectors.base import BaseSelector
from inventory_kernel.selectors.inventory_selector import InventorySelector
from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_kernel.selectors.reservation_selector import ReservationSelector

__all__ = [
    "BaseSelector",
    "InventorySelector",
    "MovementSelector",
    "ReservationSelector",
    "StockAlertEvaluator",
]
