"""inventory_batch.domain -- Pure types for bulk adjustments."""

from inventory_batch.domain.types import (
    MAX_BATCH_SIZE,
    AdjustmentBatch,
    BatchItemError,
    BatchResult,
    BatchStatus,
    BatchUpdate,
    derive_batch_status,
)

__all__ = [
    "MAX_BATCH_SIZE",
    "AdjustmentBatch",
    "BatchItemError",
    "BatchResult",
    "BatchStatus",
    "BatchUpdate",
    "derive_batch_status",
]
