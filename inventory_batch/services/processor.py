"""
BulkAdjustmentProcessor -- many stock corrections under one batch id.

Contract:
    ``apply_batch()`` runs every line through the AdjustmentEngine in its
    own SAVEPOINT.  A rejected line is rolled back to its savepoint and
    reported in ``errors``; it never aborts the other lines.  There is no
    batch-wide rollback of successful lines.

Architecture: inventory_batch/services.  Uses inventory_kernel services;
    nothing in inventory_kernel imports from here.

Invariants enforced:
    - Every movement written by a run carries the run's batch_id and
      reference ("adjustment_batch", batch_id).
    - Lines are applied in product_id order so that concurrent batches
      lock rows in a consistent order; errors report the input index.
    - The run is persisted as one adjustment_batches row, in the same
      transaction as its movements.

Failure modes:
    - ValidationError for an empty batch, an oversized batch or a missing
      batch reason (nothing is applied).
    - BatchNotFoundError from ``get_batch()``.
    - Concurrency failures propagate so the caller retries the whole run.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from inventory_kernel.config import InventoryConfig
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import InventorySnapshot
from inventory_kernel.domain.movement_types import MovementType
from inventory_kernel.exceptions import (
    BatchNotFoundError,
    InvalidQuantityError,
    InventoryKernelError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.adjustment_engine import AdjustmentEngine

from inventory_batch.domain.types import (
    MAX_BATCH_SIZE,
    AdjustmentBatch,
    BatchItemError,
    BatchResult,
    BatchUpdate,
    derive_batch_status,
)
from inventory_batch.models.batch import AdjustmentBatchModel

logger = get_logger("batch.processor")


def _raw_product_id(raw: Any) -> str | None:
    if isinstance(raw, BatchUpdate):
        value = raw.product_id
    elif isinstance(raw, Mapping):
        value = raw.get("product_id")
    else:
        return None
    return None if value is None else str(value)


class BulkAdjustmentProcessor:
    """Applies bulk stock corrections with per-line isolation.

    Non-goals:
        - Does NOT commit -- the caller (BatchOrchestrator or a test) owns
          the transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: InventoryConfig | None = None,
        engine: AdjustmentEngine | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or InventoryConfig()
        self._engine = engine or AdjustmentEngine(session, self._clock, self._config)

    def apply_batch(
        self,
        updates: list[BatchUpdate | Mapping[str, Any]],
        batch_reason: str,
        created_by: str,
    ) -> BatchResult:
        """Apply every line and report which ones failed.

        Args:
            updates: Lines with a signed quantity.  Mappings are accepted
                with ``product_id``, ``quantity`` and optional ``reason``.
            batch_reason: Default movement reason for lines without one.
            created_by: Acting identity recorded on every movement.
        """
        if not updates:
            raise ValidationError("Batch must contain at least one update")
        if len(updates) > MAX_BATCH_SIZE:
            raise ValidationError(
                f"Batch has {len(updates)} updates; maximum is {MAX_BATCH_SIZE}"
            )
        if not batch_reason:
            raise ValidationError("batch_reason is required")

        batch_id = uuid4()
        started_at = self._clock.now()
        errors: list[BatchItemError] = []
        snapshots: dict[int, InventorySnapshot] = {}

        lines: list[tuple[int, BatchUpdate]] = []
        for index, raw in enumerate(updates):
            try:
                lines.append((index, BatchUpdate.coerce(raw)))
            except ValidationError as exc:
                errors.append(BatchItemError(index, _raw_product_id(raw), exc.code, str(exc)))

        for index, line in sorted(lines, key=lambda pair: (pair[1].product_id, pair[0])):
            savepoint = self._session.begin_nested()
            try:
                snapshots[index] = self._apply_line(
                    line, batch_id, batch_reason, created_by
                )
                savepoint.commit()
            except InventoryKernelError as exc:
                savepoint.rollback()
                errors.append(BatchItemError(index, line.product_id, exc.code, str(exc)))
                logger.info(
                    "batch_item_failed",
                    extra={
                        "batch_id": str(batch_id),
                        "item_index": index,
                        "product_id": line.product_id,
                        "error_code": exc.code,
                    },
                )

        errors.sort(key=lambda e: e.item_index)
        processed = len(snapshots)
        status = derive_batch_status(processed, len(errors))
        completed_at = self._clock.now()

        record = AdjustmentBatch(
            batch_id=batch_id,
            reason=batch_reason,
            created_by=created_by,
            status=status,
            total_items=len(updates),
            processed_items=processed,
            failed_items=len(errors),
            started_at=started_at,
            completed_at=completed_at,
            error_summary="; ".join(
                f"{e.product_id}: {e.error}" for e in errors
            ) or None,
        )
        self._session.add(AdjustmentBatchModel.from_dto(record))
        self._session.flush()

        logger.info(
            "batch_completed",
            extra={
                "batch_id": str(batch_id),
                "status": status.value,
                "total_items": len(updates),
                "processed": processed,
                "failed": len(errors),
            },
        )

        return BatchResult(
            batch_id=batch_id,
            status=status,
            total_items=len(updates),
            processed=processed,
            errors=tuple(errors),
            snapshots=tuple(snapshots[i] for i in sorted(snapshots)),
            started_at=started_at,
            completed_at=completed_at,
        )

    def get_batch(self, batch_id: UUID) -> AdjustmentBatch:
        model = self._session.get(AdjustmentBatchModel, batch_id)
        if model is None:
            raise BatchNotFoundError(str(batch_id))
        return model.to_dto()

    def _apply_line(
        self,
        line: BatchUpdate,
        batch_id: UUID,
        batch_reason: str,
        created_by: str,
    ) -> InventorySnapshot:
        quantity = line.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity == 0:
            raise InvalidQuantityError("quantity", quantity)

        movement_type = MovementType.ADJUSTMENT_IN if quantity > 0 else MovementType.ADJUSTMENT_OUT
        return self._engine.adjust(
            line.product_id,
            movement_type,
            abs(quantity),
            created_by=created_by,
            reason=line.reason or batch_reason,
            reference_type="adjustment_batch",
            reference_id=str(batch_id),
            batch_id=batch_id,
        )
