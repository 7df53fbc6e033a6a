"""
Module: marketplace_kernel.db.engine
Responsibility: the process-wide engine and session factory, the
    commit-or-rollback ``session_scope``, and schema create/drop.
Architecture position: Kernel > DB.  May import from db/base.py and
    models/ (for metadata only).  MUST NOT import from services/,
    selectors/, domain/, or outer layers.

Invariants enforced:
    - Sessions never expire loaded attributes on commit; services return
      DTOs built before the facade commits.
    - PostgreSQL runs at READ COMMITTED.  Capacity and status writes rely
      on conditional UPDATEs and FOR UPDATE locks on one offer row.
    - SQLite (tests, local runs) starts every transaction with
      BEGIN IMMEDIATE, so writers wait on the busy timeout instead of
      failing a lock upgrade.  Foreign keys are on for every connection.

Failure modes:
    - RuntimeError from any accessor before init_engine_from_url().
    - OperationalError when a SQLite writer waits past busy_timeout.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from marketplace_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")


@dataclass(frozen=True)
class _Database:
    engine: Engine
    sessions: sessionmaker[Session]


_db: _Database | None = None


def _require() -> _Database:
    if _db is None:
        raise RuntimeError("Database not initialized; call init_engine_from_url() first.")
    return _db


def _engine_kwargs(
    dialect: str,
    *,
    pool_size: int,
    max_overflow: int,
    pool_timeout: int,
    busy_timeout: int,
) -> dict[str, Any]:
    if dialect == "sqlite":
        # One file shared by worker threads; pysqlite must not pin connections.
        return {"connect_args": {"check_same_thread": False, "timeout": busy_timeout}}
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_timeout": pool_timeout,
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "isolation_level": "READ COMMITTED",
    }


def _use_immediate_transactions(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Autocommit at the driver level; the "begin" listener opens transactions.
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    busy_timeout: int = 30,
) -> Engine:
    """
    Create the engine and session factory used by every later accessor.

    Calling it again replaces the previous engine (the old one is disposed).

    Args:
        database_url: ``postgresql://...`` or ``sqlite:///path.db``.
        echo: Log SQL statements.
        pool_size, max_overflow, pool_timeout: Connection pool (PostgreSQL).
        busy_timeout: Seconds a SQLite writer waits for the write lock.
    """
    global _db

    dialect = make_url(database_url).get_backend_name()
    engine = create_engine(
        database_url,
        echo=echo,
        **_engine_kwargs(
            dialect,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            busy_timeout=busy_timeout,
        ),
    )
    if dialect == "sqlite":
        _use_immediate_transactions(engine)

    reset_engine()
    _db = _Database(engine, sessionmaker(bind=engine, expire_on_commit=False))

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": dialect, "pool_size": pool_size, "echo": echo},
    )
    return engine


def get_engine() -> Engine:
    return _require().engine


def get_session() -> Session:
    """A new session bound to the current engine."""
    return _require().sessions()


def get_session_factory() -> sessionmaker[Session]:
    """The session factory, for code that opens one session per thread."""
    return _require().sessions


@contextmanager
def session_scope() -> Iterator[Session]:
    """Commit when the block exits normally, roll back and re-raise otherwise."""
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


def _metadata():
    from marketplace_kernel.db.base import Base
    import marketplace_kernel.models  # noqa: F401  (registers all tables)

    return Base.metadata


def create_tables() -> None:
    metadata = _metadata()
    metadata.create_all(get_engine())
    logger.info("tables_created", extra={"table_count": len(metadata.sorted_tables)})


def drop_tables() -> None:
    """Drop every marketplace table.  Tests and ``scripts/init_db.py --drop`` only."""
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _db
    if _db is not None:
        _db.engine.dispose()
        _db = None


atexit.register(reset_engine)
