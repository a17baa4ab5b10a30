"""
Concurrency tests: many threads competing for the same stock.

Every worker goes through InventoryOrchestrator with its own session per
attempt, exactly as concurrent request handlers would.  The invariants
checked afterwards are the ones a checkout relies on: no oversell, the
reserved total never exceeds on-hand, and the ledger chain still
reconciles.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from inventory_kernel.domain.movement_types import MovementType
from inventory_kernel.exceptions import InsufficientStockError

from tests.conftest import TEST_ACTOR

pytestmark = pytest.mark.slow_locks

WORKERS = 16


def _run_concurrently(count: int, fn):
    """Run ``fn(i)`` for i in range(count) across WORKERS threads released together."""
    barrier = threading.Barrier(WORKERS)

    def _worker(indices):
        barrier.wait()
        outcomes = []
        for i in indices:
            try:
                fn(i)
                outcomes.append("ok")
            except InsufficientStockError:
                outcomes.append("short")
        return outcomes

    chunks = [list(range(w, count, WORKERS)) for w in range(WORKERS)]
    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        results = list(pool.map(_worker, chunks))
    return [outcome for chunk in results for outcome in chunk]


class TestNoOversell:
    def test_reservations_never_exceed_stock(self, orchestrator):
        orchestrator.adjust("hot-sku", MovementType.INITIAL_STOCK, 500, created_by=TEST_ACTOR)

        outcomes = _run_concurrently(
            1000, lambda i: orchestrator.reserve("hot-sku", 1, order_id=f"o-{i}")
        )

        assert outcomes.count("ok") == 500
        assert outcomes.count("short") == 500

        snapshot = orchestrator.get_inventory("hot-sku")
        assert snapshot.quantity == 500
        assert snapshot.reserved_quantity == 500
        assert snapshot.available_quantity == 0
        assert orchestrator.reservation_stats().active_count == 500

    def test_sales_never_drive_stock_negative(self, orchestrator):
        orchestrator.adjust("hot-sku", MovementType.INITIAL_STOCK, 100, created_by=TEST_ACTOR)

        outcomes = _run_concurrently(
            160,
            lambda i: orchestrator.adjust("hot-sku", MovementType.SALE, 1, created_by=f"till-{i % 4}"),
        )

        assert outcomes.count("ok") == 100
        assert orchestrator.get_inventory("hot-sku").quantity == 0
        assert orchestrator.verify_chain("hot-sku") == 101


class TestMixedTraffic:
    def test_chain_reconciles_under_mixed_writes(self, orchestrator):
        orchestrator.adjust("sku-1", MovementType.INITIAL_STOCK, 50, created_by=TEST_ACTOR)

        def operation(i):
            if i % 3 == 0:
                orchestrator.adjust("sku-1", MovementType.RESTOCK, 2, created_by=TEST_ACTOR)
            elif i % 3 == 1:
                orchestrator.adjust("sku-1", MovementType.SALE, 1, created_by=TEST_ACTOR)
            else:
                reservation = orchestrator.reserve("sku-1", 1)
                orchestrator.release(reservation.id)

        outcomes = _run_concurrently(96, operation)

        assert outcomes.count("ok") == 96
        snapshot = orchestrator.get_inventory("sku-1")
        assert snapshot.quantity == 50 + 32 * 2 - 32
        assert snapshot.reserved_quantity == 0
        assert orchestrator.replay("sku-1") == snapshot.quantity
        assert orchestrator.verify_chain("sku-1") == 1 + 64

    def test_first_use_race_creates_one_record(self, orchestrator):
        outcomes = _run_concurrently(
            32, lambda i: orchestrator.adjust("fresh-sku", MovementType.RESTOCK, 1, created_by=TEST_ACTOR)
        )

        assert outcomes.count("ok") == 32
        assert orchestrator.get_inventory("fresh-sku").quantity == 32
        assert orchestrator.verify_chain("fresh-sku") == 32
