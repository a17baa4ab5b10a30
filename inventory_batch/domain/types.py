"""
inventory_batch.domain.types -- Pure frozen dataclasses for bulk adjustments.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - Every item of a batch shares the batch's ``batch_id``.
    - A batch's status is a pure function of its processed/failed counts.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from inventory_kernel.domain.dtos import InventorySnapshot
from inventory_kernel.exceptions import ValidationError

MAX_BATCH_SIZE = 100
# inventory_records.product_id is String(100).
MAX_PRODUCT_ID_LENGTH = 100


class BatchStatus(str, Enum):
    """Outcome of a bulk adjustment run."""

    COMPLETED = "completed"  # Every item applied
    PARTIALLY_COMPLETED = "partially_completed"  # Some items failed
    FAILED = "failed"  # No item applied


def derive_batch_status(processed: int, failed: int) -> BatchStatus:
    if failed == 0:
        return BatchStatus.COMPLETED
    if processed == 0:
        return BatchStatus.FAILED
    return BatchStatus.PARTIALLY_COMPLETED


@dataclass(frozen=True)
class BatchUpdate:
    """One line of a bulk adjustment.

    ``quantity`` is signed: positive adds stock (ADJUSTMENT_IN), negative
    removes it (ADJUSTMENT_OUT).
    """

    product_id: str
    quantity: int
    reason: str | None = None

    @classmethod
    def coerce(cls, item: BatchUpdate | Mapping[str, Any]) -> BatchUpdate:
        """Accept a BatchUpdate or a mapping with product_id/quantity/reason.

        Raises:
            ValidationError: The line cannot be applied as given.  The
                processor records it against the line's index.
        """
        if isinstance(item, BatchUpdate):
            line = item
        elif isinstance(item, Mapping):
            if "quantity" not in item:
                raise ValidationError(
                    f"Batch item for {item.get('product_id')!r} is missing quantity"
                )
            line = cls(
                product_id=item.get("product_id"),
                quantity=item["quantity"],
                reason=item.get("reason") or None,
            )
        else:
            raise ValidationError(f"Batch item must be a mapping, got {type(item).__name__}")

        product_id = line.product_id
        if not isinstance(product_id, str) or not product_id.strip():
            raise ValidationError(f"Batch item product_id must be a non-empty string, got {product_id!r}")
        if len(product_id) > MAX_PRODUCT_ID_LENGTH:
            raise ValidationError(
                f"Batch item product_id exceeds {MAX_PRODUCT_ID_LENGTH} characters"
            )
        return line


@dataclass(frozen=True)
class BatchItemError:
    """A rejected line.  ``item_index`` is the 0-based input position."""

    item_index: int
    product_id: str | None
    error_code: str
    error: str


@dataclass(frozen=True)
class BatchResult:
    """Returned by ``BulkAdjustmentProcessor.apply_batch()``."""

    batch_id: UUID
    status: BatchStatus
    total_items: int
    processed: int
    errors: tuple[BatchItemError, ...] = ()
    snapshots: tuple[InventorySnapshot, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def failed(self) -> int:
        return len(self.errors)


@dataclass(frozen=True)
class AdjustmentBatch:
    """Immutable snapshot of a persisted batch run."""

    batch_id: UUID
    reason: str
    created_by: str
    status: BatchStatus
    total_items: int
    processed_items: int
    failed_items: int
    started_at: datetime
    completed_at: datetime
    error_summary: str | None = None
