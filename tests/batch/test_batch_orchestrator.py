"""BatchOrchestrator: one committed transaction per bulk adjustment."""

import json

import pytest
from sqlalchemy.orm.exc import StaleDataError

from inventory_batch.domain.types import BatchStatus, BatchUpdate
from inventory_batch.orchestrator import BatchOrchestrator
from inventory_kernel.domain.dtos import MovementFilter
from inventory_kernel.domain.movement_types import MovementType
from inventory_kernel.exceptions import ConcurrencyConflictError, ValidationError
from inventory_kernel.logging_config import LogContext

from tests.conftest import TEST_ACTOR


@pytest.fixture
def batch_orchestrator(session_factory, config, deterministic_clock) -> BatchOrchestrator:
    return BatchOrchestrator(session_factory, config=config, clock=deterministic_clock)


class TestBatchOrchestrator:
    def test_partial_batch_commits_successful_lines(self, batch_orchestrator, orchestrator):
        orchestrator.adjust("p1", MovementType.INITIAL_STOCK, 10, created_by=TEST_ACTOR)

        result = batch_orchestrator.apply_batch(
            [BatchUpdate("p1", -1000), BatchUpdate("p2", 5)],
            batch_reason="Stocktake",
            created_by=TEST_ACTOR,
        )

        assert result.status == BatchStatus.PARTIALLY_COMPLETED
        assert orchestrator.get_inventory("p1").quantity == 10
        assert orchestrator.get_inventory("p2").quantity == 5

        page = orchestrator.query_movements(MovementFilter(batch_id=result.batch_id))
        assert [m.product_id for m in page.items] == ["p2"]

        stored = batch_orchestrator.get_batch(result.batch_id)
        assert stored.status == BatchStatus.PARTIALLY_COMPLETED
        assert stored.failed_items == 1

    def test_rejected_batch_persists_nothing(self, batch_orchestrator, orchestrator):
        with pytest.raises(ValidationError):
            batch_orchestrator.apply_batch([], batch_reason="Nothing", created_by=TEST_ACTOR)

        assert orchestrator.query_movements().total == 0

    def test_logs_carry_actor_and_batch(self, batch_orchestrator, captured_logs):
        result = batch_orchestrator.apply_batch(
            [BatchUpdate("p1", 2)], batch_reason="Receiving", created_by="clerk-3"
        )

        completed = [r for r in captured_logs() if r["message"] == "batch_completed"][0]
        assert completed["actor_id"] == "clerk-3"
        assert completed["batch_id"] == str(result.batch_id)
        assert "correlation_id" in completed


class _AlwaysStale:
    def apply_batch(self, updates, batch_reason, created_by):
        raise StaleDataError("adjustment_batches version mismatch")


class TestBatchConflicts:
    def test_conflict_keyed_by_correlation_not_reason(
        self, session_factory, config, deterministic_clock, captured_logs, monkeypatch
    ):
        batch_orchestrator = BatchOrchestrator(session_factory, config=config, clock=deterministic_clock)
        monkeypatch.setattr(batch_orchestrator, "create_processor", lambda session: _AlwaysStale())
        reason = "Quarterly stocktake, aisle 7 recount"

        with LogContext.bind(correlation_id="req-77"):
            with pytest.raises(ConcurrencyConflictError) as exc_info:
                batch_orchestrator.apply_batch(
                    [BatchUpdate("p1", 1)], batch_reason=reason, created_by=TEST_ACTOR
                )

        assert exc_info.value.entity_type == "AdjustmentBatch"
        assert exc_info.value.entity_id == "req-77"
        assert exc_info.value.attempts == config.max_retries
        retries = [r for r in captured_logs() if r["message"] == "concurrency_retry"]
        assert retries
        assert all(r["entity_id"] == "req-77" for r in retries)
        assert reason not in json.dumps(captured_logs())
