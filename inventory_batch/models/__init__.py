"""
inventory_batch.models -- ORM models for bulk adjustment persistence.

Architecture: inventory_batch/models. Imports from inventory_kernel.db.base only.
"""

from inventory_batch.models.batch import AdjustmentBatchModel

__all__ = [
    "AdjustmentBatchModel",
]
