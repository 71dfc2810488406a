"""Shared fixtures: in-memory SQLite DB with all tables, plus a file-backed one for threads."""

from collections.abc import Generator
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config import PayoutSettings
from db.connection import configure_sqlite
from db.models import Base


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    eng: Engine = create_engine("sqlite:///:memory:", echo=False)
    configure_sqlite(eng)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session(engine: Engine) -> Generator[Session, None, None]:
    factory: sessionmaker[Session] = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    sess: Session = factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture()
def file_engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """On-disk SQLite so worker threads get their own connections."""
    eng: Engine = create_engine(f"sqlite:///{(tmp_path / 'payouts.db').as_posix()}", echo=False)
    configure_sqlite(eng, wal=True)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(file_engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=file_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture()
def payout_settings() -> PayoutSettings:
    return PayoutSettings(
        lock_period_days=90,
        minimum_withdrawal=Decimal("5.00"),
        max_parallel_creators=4,
        withdrawal_methods=["paypal", "bank"],
    )
