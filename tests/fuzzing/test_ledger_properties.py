"""
Property tests for the movement ledger.

For any sequence of movements and reservations the engine accepts:
    - replaying the ledger reproduces the on-hand counter,
    - on-hand never goes negative without backorders,
    - live reserved never exceeds on-hand,
    - rejected requests leave no trace.
"""

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.domain.movement_types import inbound_types, outbound_types
from inventory_kernel.exceptions import InsufficientStockError
from inventory_kernel.selectors.inventory_selector import InventorySelector
from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_kernel.services.adjustment_engine import AdjustmentEngine
from inventory_kernel.services.reservation_manager import ReservationManager

from tests.conftest import TEST_ACTOR

PRODUCT = "prop-sku"

movement_step = st.tuples(
    st.just("move"),
    st.sampled_from(sorted(inbound_types() | outbound_types(), key=lambda t: t.value)),
    st.integers(min_value=1, max_value=40),
)
reserve_step = st.tuples(st.just("reserve"), st.integers(min_value=1, max_value=15), st.integers(1, 30))
advance_step = st.tuples(st.just("advance"), st.integers(min_value=1, max_value=20), st.just(0))

steps = st.lists(st.one_of(movement_step, reserve_step, advance_step), min_size=1, max_size=25)


def _in_rolled_back_session(db_engine, fn):
    conn = db_engine.connect()
    trans = conn.begin()
    session = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    try:
        fn(session)
    finally:
        session.close()
        trans.rollback()
        conn.close()


@settings(max_examples=40, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(plan=steps)
def test_ledger_replays_to_counter(db_engine, db_tables, config, plan):
    def scenario(session):
        clock = DeterministicClock()
        engine = AdjustmentEngine(session, clock, config)
        reservations = ReservationManager(session, clock, config, engine=engine)
        movements = MovementSelector(session, clock, config)
        inventory = InventorySelector(session, clock, config)

        accepted = 0
        for kind, first, second in plan:
            if kind == "move":
                try:
                    engine.adjust(PRODUCT, first, second, created_by=TEST_ACTOR)
                    accepted += 1
                except InsufficientStockError:
                    pass
            elif kind == "reserve":
                try:
                    reservations.reserve(PRODUCT, first, ttl_minutes=second)
                except InsufficientStockError:
                    pass
            else:
                clock.advance(minutes=first)

            snapshot = inventory.find(PRODUCT)
            if snapshot is None:
                continue
            assert snapshot.quantity >= 0
            assert 0 <= snapshot.reserved_quantity <= snapshot.quantity

        if inventory.find(PRODUCT) is None:
            assert accepted == 0
            return
        assert movements.replay(PRODUCT) == inventory.get(PRODUCT).quantity
        assert movements.verify_chain(PRODUCT) == accepted

    _in_rolled_back_session(db_engine, scenario)
