"""inventory_batch.services -- Bulk adjustment processing."""

from inventory_batch.services.processor import BulkAdjustmentProcessor

__all__ = [
    "BulkAdjustmentProcessor",
]
