"""Database engine, session management, and FastAPI dependency."""

import logging
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config import get_settings
from db.models import Base

logger = logging.getLogger(__name__)

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None

REQUIRED_TABLES = (
    "creators",
    "video_accruals",
    "creator_ledgers",
    "monthly_reports",
    "withdrawal_requests",
    "audit_log",
    "notification_requests",
    "processing_runs",
)


def configure_sqlite(engine: Engine, wal: bool = False) -> None:
    """Pragmas plus an explicit BEGIN IMMEDIATE on every transaction.

    The write lock is taken at BEGIN, so SAVEPOINTs work and concurrent ledger
    writers serialise the way SELECT ... FOR UPDATE does on Postgres.
    """

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        if wal:
            cur.execute("PRAGMA journal_mode=WAL")
            cur.execute("PRAGMA synchronous=NORMAL")
        cur.execute("PRAGMA busy_timeout=30000")
        cur.close()

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_engine() -> Engine:
    """Get or create the shared database engine."""
    global _engine

    if _engine is None:
        settings = get_settings()
        url = settings.database.url
        opts: dict = {"echo": settings.debug}

        if settings.database.is_postgres:
            opts.update(
                pool_size=settings.database.pool_size,
                pool_timeout=settings.database.pool_timeout,
                pool_recycle=settings.database.pool_recycle,
                pool_pre_ping=True,
            )

        _engine = create_engine(url, **opts)

        if not settings.database.is_postgres:
            configure_sqlite(_engine, wal=settings.database.sqlite_wal)

    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Get or create the session factory."""
    global _session_factory

    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(),
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
    return _session_factory


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Context-managed session with commit/rollback."""
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session."""
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def verify_required_tables(engine: Engine | None = None) -> list[str]:
    """Return list of required tables that are missing."""
    if engine is None:
        engine = get_engine()
    existing = set(inspect(engine).get_table_names())
    return [t for t in REQUIRED_TABLES if t not in existing]


def init_database(engine: Engine | None = None) -> None:
    """Create all tables. Idempotent."""
    if engine is None:
        engine = get_engine()
    missing_before = verify_required_tables(engine)
    Base.metadata.create_all(engine)
    still_missing = verify_required_tables(engine)

    if still_missing:
        raise RuntimeError(f"Schema init failed: missing tables {still_missing}")
    if missing_before:
        logger.info("Schema init: created tables %s", missing_before)
    else:
        logger.info("Schema init: all tables present")


def reset_engine() -> None:
    """For testing: clear cached engine and session factory."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
