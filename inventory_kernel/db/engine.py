"""
Module: inventory_kernel.db.engine
Responsibility: one process-wide engine and session factory for the
    inventory tables, plus the unit-of-work scope used by scripts.
Architecture position: Kernel > DB.  Imports db/base.py only; the
    create/drop helpers import the model modules lazily so the metadata is
    complete.

Locking model:
    - PostgreSQL runs READ COMMITTED.  Writers take SELECT ... FOR UPDATE
      on the inventory record before touching stock.
    - SQLite has no row locks.  Every transaction opens with BEGIN IMMEDIATE,
      which takes the database write lock up front; pysqlite's own implicit
      BEGIN is disabled so savepoints nest correctly.  File databases use WAL
      so readers are not blocked by the writer.
    - InventoryRecord carries a version column on both backends.

Failure modes:
    - RuntimeError from any accessor before init_engine_from_url().
    - OperationalError ("database is locked") when a SQLite writer waits past
      the busy timeout; the retry layer reports it as ConcurrencyConflictError.
"""

import atexit
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from inventory_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_busy_timeout: float = 30.0,
) -> Engine:
    """
    Build the engine and session factory for ``database_url``.

    Calling it again replaces both; the previous engine is not disposed.

    Args:
        database_url: ``postgresql://...`` or ``sqlite:///path.db``.
        echo: Log every SQL statement.
        pool_size, max_overflow, pool_timeout: QueuePool sizing.  Ignored for
            in-memory SQLite, which shares one connection.
        pool_pre_ping, pool_recycle: PostgreSQL connection health.
        sqlite_busy_timeout: Seconds a SQLite writer waits for the write lock.
    """
    global _engine, _session_factory

    url = make_url(database_url)
    pooling = {
        "poolclass": QueuePool,
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_timeout": pool_timeout,
    }

    if url.get_backend_name() == "sqlite":
        _engine = _sqlite_engine(url, echo, sqlite_busy_timeout, pooling)
    else:
        _engine = create_engine(
            url,
            echo=echo,
            pool_pre_ping=pool_pre_ping,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
            **pooling,
        )

    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "database": url.database,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
        },
    )
    return _engine


def _sqlite_engine(url: URL, echo: bool, busy_timeout: float, pooling: dict[str, Any]) -> Engine:
    in_memory = url.database in (None, "", ":memory:")
    connect_args = {"check_same_thread": False, "timeout": busy_timeout}

    if in_memory:
        engine = create_engine(url, echo=echo, poolclass=StaticPool, connect_args=connect_args)
    else:
        engine = create_engine(url, echo=echo, connect_args=connect_args, **pooling)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        pragmas = ["PRAGMA foreign_keys=ON"]
        if not in_memory:
            pragmas.append("PRAGMA journal_mode=WAL")
        cursor = dbapi_connection.cursor()
        try:
            for pragma in pragmas:
                cursor.execute(pragma)
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    The shared sessionmaker.  Hand this to orchestrators; they open one
    session per transaction attempt, so it is safe to share across threads.
    """
    if _session_factory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _session_factory


def get_session() -> Session:
    """A new, unbound-to-any-scope Session from the shared factory."""
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Commit on clean exit, roll back and re-raise on error, always close.

    Usage:
        with session_scope() as session:
            InventoryRecordStore(session, clock, config).get("sku-1")
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_scope_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _load_metadata():
    from inventory_kernel.db.base import Base

    # Model modules register their tables on import.
    import inventory_batch.models  # noqa: F401
    import inventory_kernel.models  # noqa: F401

    return Base.metadata


def create_tables() -> None:
    """Create every inventory and batch table, then arm the immutability listeners."""
    from inventory_kernel.db.immutability import register_immutability_listeners

    metadata = _load_metadata()
    metadata.create_all(get_engine())
    register_immutability_listeners()
    logger.info("tables_created", extra={"tables": sorted(metadata.tables)})


def drop_tables() -> None:
    """Drop every inventory and batch table.  Test and tooling use only."""
    _load_metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
