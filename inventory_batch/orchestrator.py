"""
BatchOrchestrator -- transaction owner for bulk adjustments.

Contract:
    Wires BulkAdjustmentProcessor per unit of work and runs each
    ``apply_batch`` call in its own transaction through the kernel's
    bounded retry loop.  Single entry point for bulk corrections.

Architecture: inventory_batch (top-level).  Lives outside the kernel so
    that inventory_kernel never imports inventory_batch.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from inventory_kernel.config import InventoryConfig
from inventory_kernel.db.immutability import register_immutability_listeners
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.logging_config import LogContext
from inventory_kernel.services.retry import run_in_transaction

from inventory_batch.domain.types import AdjustmentBatch, BatchResult, BatchUpdate
from inventory_batch.services.processor import BulkAdjustmentProcessor


class BatchOrchestrator:
    """Runs bulk adjustments, one committed transaction per batch.

    Non-goals:
        - No batch-wide rollback: a partially failed batch still commits
          its successful lines.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: InventoryConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._config = config or InventoryConfig()
        self._clock = clock or SystemClock()
        register_immutability_listeners()

    def create_processor(self, session: Session) -> BulkAdjustmentProcessor:
        return BulkAdjustmentProcessor(session, self._clock, self._config)

    def apply_batch(
        self,
        updates: list[BatchUpdate | Mapping[str, Any]],
        batch_reason: str,
        created_by: str,
    ) -> BatchResult:
        correlation_id = LogContext.get_all().get("correlation_id") or str(uuid4())
        with LogContext.bind(correlation_id=correlation_id, actor_id=created_by):
            return run_in_transaction(
                self._session_factory,
                lambda s: self.create_processor(s).apply_batch(
                    updates, batch_reason, created_by
                ),
                operation="apply_batch",
                entity_type="AdjustmentBatch",
                entity_id=correlation_id,
                max_attempts=self._config.max_retries,
                backoff_seconds=self._config.retry_backoff_seconds,
            )

    def get_batch(self, batch_id: UUID) -> AdjustmentBatch:
        session = self._session_factory()
        try:
            return self.create_processor(session).get_batch(batch_id)
        finally:
            session.close()

    @property
    def clock(self) -> Clock:
        return self._clock
