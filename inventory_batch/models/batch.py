"""
ORM model for bulk adjustment runs.

Contract:
    AdjustmentBatchModel persists one row per ``apply_batch`` call, with
    ``to_dto()`` / ``from_dto()`` round-trip methods.  Movements written by
    the run carry the same id in ``inventory_movements.batch_id``.

Architecture: inventory_batch/models.  Imports from inventory_kernel.db.base only.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UTCDateTime

if TYPE_CHECKING:
    from inventory_batch.domain.types import AdjustmentBatch


class AdjustmentBatchModel(Base):
    __tablename__ = "adjustment_batches"

    __table_args__ = (
        Index("ix_adjustment_batches_status", "status"),
        Index("ix_adjustment_batches_started_at", "started_at"),
    )

    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> AdjustmentBatch:
        from inventory_batch.domain.types import AdjustmentBatch, BatchStatus

        return AdjustmentBatch(
            batch_id=self.id,
            reason=self.reason,
            created_by=self.created_by,
            status=BatchStatus(self.status),
            total_items=self.total_items,
            processed_items=self.processed_items,
            failed_items=self.failed_items,
            started_at=self.started_at,
            completed_at=self.completed_at,
            error_summary=self.error_summary,
        )

    @classmethod
    def from_dto(cls, dto: AdjustmentBatch) -> AdjustmentBatchModel:
        return cls(
            id=dto.batch_id,
            reason=dto.reason,
            created_by=dto.created_by,
            status=dto.status.value,
            total_items=dto.total_items,
            processed_items=dto.processed_items,
            failed_items=dto.failed_items,
            started_at=dto.started_at,
            completed_at=dto.completed_at,
            error_summary=dto.error_summary,
        )
