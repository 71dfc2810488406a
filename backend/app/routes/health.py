"""DB health probe behind /health/db."""

import logging
import os

from sqlalchemy import func, inspect, select
from sqlalchemy.engine import Engine

from config import get_settings
from db.connection import REQUIRED_TABLES, get_engine
from db.models import Base
from payouts.services._types import DbInfoDict

logger: logging.Logger = logging.getLogger(__name__)


def _row_counts(engine: Engine, tables: set[str]) -> dict[str, int]:
    counts: dict[str, int] = {}
    with engine.connect() as conn:
        for name in REQUIRED_TABLES:
            if name in tables:
                table = Base.metadata.tables[name]
                counts[name] = conn.execute(select(func.count()).select_from(table)).scalar_one()
    return counts


def get_db_info() -> DbInfoDict:
    """Backend, schema state and payout table sizes. Errors are reported, not raised."""
    info = DbInfoDict(backend_type="unknown", pid=os.getpid())
    try:
        db = get_settings().database
        info["backend_type"] = "postgres" if db.is_postgres else "sqlite"
        info["database_url_or_path"] = db.db_info_for_logging().partition(" @ ")[2]

        engine = get_engine()
        present = set(inspect(engine).get_table_names())
        info["tables_missing"] = [t for t in REQUIRED_TABLES if t not in present]
        info["schema_initialized"] = not info["tables_missing"]
        info["row_counts"] = _row_counts(engine, present)
    except Exception as e:
        logger.exception("Health DB check failed")
        info["error"] = str(e)
        info.setdefault("tables_missing", list(REQUIRED_TABLES))
        info["schema_initialized"] = False
    return info
