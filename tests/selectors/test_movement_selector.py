"""Tests for MovementSelector: ledger queries, summaries and chain verification."""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import update

from inventory_kernel.domain.dtos import MovementFilter
from inventory_kernel.domain.movement_types import MovementType
from inventory_kernel.exceptions import (
    InventoryRecordNotFoundError,
    LedgerIntegrityError,
    ValidationError,
)
from inventory_kernel.models.inventory_record import InventoryRecord
from inventory_kernel.models.movement import MovementRecord
from inventory_kernel.selectors.movement_selector import MovementSelector

from tests.conftest import TEST_ACTOR


@pytest.fixture
def selector(session, deterministic_clock, config) -> MovementSelector:
    return MovementSelector(session, deterministic_clock, config)


@pytest.fixture
def ledger_history(adjustment_engine, deterministic_clock):
    """sku-1: +20, -5, +3, -2 one minute apart; sku-2: +7."""
    adjustment_engine.adjust("sku-1", MovementType.INITIAL_STOCK, 20, created_by=TEST_ACTOR)
    deterministic_clock.advance(minutes=1)
    adjustment_engine.adjust("sku-1", MovementType.SALE, 5, created_by="cashier-1")
    deterministic_clock.advance(minutes=1)
    adjustment_engine.adjust(
        "sku-1", MovementType.RETURN, 3, created_by="cashier-1",
        reference_type="order", reference_id="o-1",
    )
    deterministic_clock.advance(minutes=1)
    adjustment_engine.adjust("sku-1", MovementType.DAMAGE, 2, created_by=TEST_ACTOR)
    adjustment_engine.adjust("sku-2", MovementType.PURCHASE, 7, created_by=TEST_ACTOR)


class TestQuery:
    def test_newest_first(self, selector, ledger_history):
        page = selector.query(MovementFilter(product_id="sku-1"))

        assert page.total == 4
        assert [m.sequence for m in page.items] == [4, 3, 2, 1]

    def test_pagination(self, selector, ledger_history):
        first = selector.query(MovementFilter(product_id="sku-1", page=1, limit=3))
        second = selector.query(MovementFilter(product_id="sku-1", page=2, limit=3))

        assert [m.sequence for m in first.items] == [4, 3, 2]
        assert [m.sequence for m in second.items] == [1]
        assert first.pages == 2
        assert first.has_next is True
        assert second.has_next is False

    def test_filters_are_combined(self, selector, ledger_history):
        page = selector.query(MovementFilter(product_id="sku-1", created_by="cashier-1"))
        assert [m.movement_type for m in page.items] == [MovementType.RETURN, MovementType.SALE]

        page = selector.query(MovementFilter(movement_type=MovementType.PURCHASE))
        assert [m.product_id for m in page.items] == ["sku-2"]

        page = selector.query(MovementFilter(reference_type="order", reference_id="o-1"))
        assert page.total == 1

    def test_date_range_is_half_open(self, selector, ledger_history, deterministic_clock):
        start = deterministic_clock.now() - timedelta(minutes=2)
        end = deterministic_clock.now()

        page = selector.query(MovementFilter(product_id="sku-1", start_date=start, end_date=end))

        assert [m.movement_type for m in page.items] == [MovementType.RETURN, MovementType.SALE]

    def test_batch_filter(self, selector, adjustment_engine):
        batch_id = uuid4()
        adjustment_engine.adjust("sku-1", MovementType.RESTOCK, 1, created_by=TEST_ACTOR, batch_id=batch_id)
        adjustment_engine.adjust("sku-1", MovementType.RESTOCK, 1, created_by=TEST_ACTOR)

        page = selector.query(MovementFilter(batch_id=batch_id))

        assert page.total == 1
        assert page.items[0].batch_id == batch_id

    def test_signed_quantity(self, selector, ledger_history):
        items = selector.query(MovementFilter(product_id="sku-1")).items
        assert [m.signed_quantity for m in items] == [-2, 3, -5, 20]

    @pytest.mark.parametrize(
        "filters",
        [MovementFilter(page=0), MovementFilter(limit=0), MovementFilter(limit=100_000)],
    )
    def test_rejects_bad_paging(self, selector, filters):
        with pytest.raises(ValidationError):
            selector.query(filters)

    def test_empty_result(self, selector):
        page = selector.query(MovementFilter(product_id="nothing"))
        assert page.total == 0
        assert page.items == ()
        assert page.pages == 0


class TestSummarize:
    def test_totals_by_direction(self, selector, ledger_history):
        summary = selector.summarize("sku-1", window_days=30)

        assert summary.total_movements == 4
        assert summary.total_inbound == 23
        assert summary.total_outbound == 7
        assert summary.net_change == 16
        assert summary.by_type[MovementType.SALE] == 5
        assert [m.sequence for m in summary.recent_movements] == [4, 3, 2, 1]

    def test_window_excludes_old_movements(self, selector, ledger_history, deterministic_clock):
        deterministic_clock.advance(minutes=60 * 24 * 2)

        summary = selector.summarize("sku-1", window_days=1)

        assert summary.total_movements == 0
        assert summary.net_change == 0
        assert summary.recent_movements == ()

    def test_rejects_non_positive_window(self, selector):
        with pytest.raises(ValidationError):
            selector.summarize("sku-1", window_days=0)


class TestChain:
    def test_replay_matches_counter(self, selector, ledger_history):
        assert selector.replay("sku-1") == 16
        assert selector.verify_chain("sku-1") == 4

    def test_replay_of_unknown_product_is_zero(self, selector):
        assert selector.replay("nothing") == 0

    def test_verify_unknown_product(self, selector):
        with pytest.raises(InventoryRecordNotFoundError):
            selector.verify_chain("nothing")

    def test_detects_counter_drift(self, selector, ledger_history, session):
        session.execute(
            update(InventoryRecord.__table__)
            .where(InventoryRecord.__table__.c.product_id == "sku-1")
            .values(quantity=99)
        )
        session.expire_all()

        with pytest.raises(LedgerIntegrityError) as exc_info:
            selector.verify_chain("sku-1")
        assert exc_info.value.sequence is None
        assert exc_info.value.expected == 99
        assert exc_info.value.actual == 16

    def test_detects_sequence_gap(self, selector, ledger_history, session, deterministic_clock):
        session.add(
            MovementRecord(
                product_id="sku-2",
                sequence=3,
                movement_type=MovementType.RESTOCK.value,
                quantity=1,
                previous_quantity=7,
                new_quantity=8,
                created_by=TEST_ACTOR,
                created_at=deterministic_clock.now(),
            )
        )
        session.flush()

        with pytest.raises(LedgerIntegrityError) as exc_info:
            selector.verify_chain("sku-2")
        assert exc_info.value.sequence == 3
