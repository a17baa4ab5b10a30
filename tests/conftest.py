"""
Shared fixtures for the inventory test suite.

Two ways to reach the database, never mixed within one test:

``session``
    A Session joined to an outer transaction on its own connection.  Commits
    inside the test release savepoints; everything is rolled back at the end.
    Use it for service and selector tests.

``session_factory``
    A factory whose sessions commit for real, as orchestrators need.  Rows
    are wiped with Core DELETEs at teardown.  Use it for orchestrator,
    batch and concurrency tests.

Set INVENTORY_DATABASE_URL to run against another database (for example
postgresql://inventory@localhost/inventory_test); the default is a
temporary SQLite file.
"""

import json
import logging
import os
import threading
from io import StringIO
from typing import Callable, Generator

import pytest
from sqlalchemy.orm import Session

from inventory_kernel.config import InventoryConfig
from inventory_kernel.db.base import Base
from inventory_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from inventory_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from inventory_kernel.services.adjustment_engine import AdjustmentEngine
from inventory_kernel.services.inventory_store import InventoryRecordStore
from inventory_kernel.services.movement_ledger import MovementLedger
from inventory_kernel.services.orchestrator import InventoryOrchestrator
from inventory_kernel.services.reservation_manager import ReservationManager

TEST_ACTOR = "test-actor"


def pytest_configure(config):
    for marker in (
        "postgres: needs a PostgreSQL database",
        "slow_locks: may block on database write locks",
    ):
        config.addinivalue_line("markers", marker)


# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------


@pytest.fixture(autouse=True, scope="session")
def _json_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _fresh_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs() -> Generator[Callable[[], list[dict]], None, None]:
    """
    Collect ``inventory_kernel`` records emitted during the test.

    Returns a callable that parses what has been logged so far::

        orchestrator.adjust(...)
        assert "stock_adjusted" in [r["message"] for r in captured_logs()]
    """
    buffer = StringIO()
    handler = logging.StreamHandler(buffer)
    handler.setFormatter(StructuredFormatter())
    kernel_logger = logging.getLogger("inventory_kernel")
    saved_level = kernel_logger.level
    kernel_logger.setLevel(logging.DEBUG)
    kernel_logger.addHandler(handler)

    yield lambda: [json.loads(line) for line in buffer.getvalue().splitlines() if line]

    kernel_logger.removeHandler(handler)
    kernel_logger.setLevel(saved_level)


# -----------------------------------------------------------------------------
# Database
# -----------------------------------------------------------------------------


@pytest.fixture(scope="session")
def database_url(tmp_path_factory) -> str:
    url = os.environ.get("INVENTORY_DATABASE_URL")
    if url:
        return url
    return f"sqlite:///{tmp_path_factory.mktemp('inventory_db') / 'inventory_test.db'}"


@pytest.fixture(scope="session")
def db_engine(database_url):
    """One engine per run, pooled wide enough for the concurrency tests."""
    engine = init_engine_from_url(database_url, pool_size=30, max_overflow=20, pool_timeout=30)
    yield engine
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


def _wipe(engine) -> None:
    # Core DELETEs bypass the ORM immutability listeners on movements.
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    connection = db_engine.connect()
    outer = connection.begin()
    test_session = Session(
        bind=connection,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )
    try:
        yield test_session
    finally:
        test_session.close()
        outer.rollback()
        connection.close()


class _TrackedSessions:
    """Session factory that remembers what it handed out and can be shut."""

    def __init__(self, factory):
        self._factory = factory
        self._sessions: list[Session] = []
        self._lock = threading.Lock()
        self._open = True

    def __call__(self) -> Session:
        with self._lock:
            if not self._open:
                raise RuntimeError("session_factory closed (fixture teardown)")
            created = self._factory()
            self._sessions.append(created)
            return created

    def shut(self) -> None:
        with self._lock:
            self._open = False
        for leftover in self._sessions:
            if leftover.in_transaction():
                leftover.rollback()
            leftover.close()


@pytest.fixture
def session_factory(db_engine, db_tables):
    """
    Real-commit sessions.  Teardown refuses new sessions (straggler threads
    get RuntimeError), closes every session handed out, then wipes all rows.
    """
    tracked = _TrackedSessions(get_session_factory())
    yield tracked
    tracked.shut()
    _wipe(db_engine)


# -----------------------------------------------------------------------------
# Clock, config and services
# -----------------------------------------------------------------------------


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def config(database_url) -> InventoryConfig:
    """Defaults, with retry backoff off so conflict tests run fast."""
    return InventoryConfig(database_url=database_url, retry_backoff_seconds=0.0)


@pytest.fixture
def test_actor() -> str:
    return TEST_ACTOR


@pytest.fixture
def store(session, deterministic_clock, config) -> InventoryRecordStore:
    return InventoryRecordStore(session, deterministic_clock, config)


@pytest.fixture
def ledger(session, deterministic_clock, config) -> MovementLedger:
    return MovementLedger(session, deterministic_clock, config)


@pytest.fixture
def adjustment_engine(session, deterministic_clock, config, store, ledger) -> AdjustmentEngine:
    return AdjustmentEngine(session, deterministic_clock, config, store=store, ledger=ledger)


@pytest.fixture
def reservation_manager(
    session, deterministic_clock, config, store, adjustment_engine
) -> ReservationManager:
    return ReservationManager(
        session, deterministic_clock, config, store=store, engine=adjustment_engine
    )


@pytest.fixture
def stock(adjustment_engine):
    """``stock(product_id, quantity)`` books an opening balance."""

    def _stock(product_id: str, quantity: int, unit_cost=None):
        return adjustment_engine.adjust(
            product_id,
            "INITIAL_STOCK",
            quantity,
            created_by=TEST_ACTOR,
            unit_cost=unit_cost,
            reason="Opening balance",
        )

    return _stock


@pytest.fixture
def orchestrator(session_factory, config, deterministic_clock) -> InventoryOrchestrator:
    return InventoryOrchestrator(session_factory, config=config, clock=deterministic_clock)
