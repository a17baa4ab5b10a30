"""Services for the inventory kernel (write side)."""

from inventory_kernel.services.adjustment_engine import AdjustmentEngine
from inventory_kernel.services.inventory_store import InventoryRecordStore
from inventory_kernel.services.movement_ledger import MovementLedger
from inventory_kernel.services.orchestrator import InventoryOrchestrator
from inventory_kernel.services.reservation_manager import ReservationManager
from inventory_kernel.services.retry import run_in_transaction
from inventory_kernel.services.sweeper import ReservationSweeper

__all__ = [
    "AdjustmentEngine",
    "InventoryOrchestrator",
    "InventoryRecordStore",
    "MovementLedger",
    "ReservationManager",
    "ReservationSweeper",
    "run_in_transaction",
]
