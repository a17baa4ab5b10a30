"""Tests for the background ReservationSweeper."""

import time

from sqlalchemy import func, select

from inventory_kernel.domain.movement_types import MovementType
from inventory_kernel.models.reservation import Reservation
from inventory_kernel.services.sweeper import ReservationSweeper

from tests.conftest import TEST_ACTOR


class TestTick:
    def test_tick_releases_expired(self, orchestrator, deterministic_clock):
        orchestrator.adjust("sku-1", MovementType.INITIAL_STOCK, 10, created_by=TEST_ACTOR)
        orchestrator.reserve("sku-1", 4, ttl_minutes=5)
        orchestrator.reserve("sku-1", 3, ttl_minutes=30)
        deterministic_clock.advance(minutes=10)

        result = orchestrator.create_sweeper().tick()

        assert result.released_count == 1
        assert result.total_quantity == 4
        assert orchestrator.get_inventory("sku-1").reserved_quantity == 3

    def test_tick_with_nothing_to_do(self, orchestrator):
        result = orchestrator.create_sweeper().tick()

        assert result.released_count == 0
        assert result.products_affected == ()

    def test_tick_failure_is_logged_not_raised(self, captured_logs):
        def broken_factory():
            raise RuntimeError("database unavailable")

        sweeper = ReservationSweeper(broken_factory, interval_seconds=60)

        assert sweeper.tick() is None
        failed = [r for r in captured_logs() if r["message"] == "sweeper_tick_failed"]
        assert failed[0]["exc_type"] == "RuntimeError"


class TestLifecycle:
    def test_interval_defaults_to_config(self, orchestrator, config):
        sweeper = orchestrator.create_sweeper()
        assert sweeper._interval == config.sweep_interval_seconds

    def test_start_and_stop(self, orchestrator, session_factory, deterministic_clock):
        orchestrator.adjust("sku-1", MovementType.INITIAL_STOCK, 2, created_by=TEST_ACTOR)
        orchestrator.reserve("sku-1", 2, ttl_minutes=1)
        deterministic_clock.advance(minutes=2)

        def stored_reservations() -> int:
            session = session_factory()
            try:
                return session.execute(select(func.count()).select_from(Reservation)).scalar_one()
            finally:
                session.rollback()
                session.close()

        sweeper = orchestrator.create_sweeper(interval_seconds=0.05)
        sweeper.start()
        try:
            assert sweeper.is_running
            deadline = time.monotonic() + 5
            while stored_reservations() and time.monotonic() < deadline:
                time.sleep(0.05)
        finally:
            sweeper.stop(timeout=5)

        assert not sweeper.is_running
        assert stored_reservations() == 0

    def test_start_is_idempotent(self, orchestrator):
        sweeper = orchestrator.create_sweeper(interval_seconds=0.05)
        sweeper.start()
        first = sweeper._thread
        sweeper.start()
        try:
            assert sweeper._thread is first
        finally:
            sweeper.stop(timeout=5)
