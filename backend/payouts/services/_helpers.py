"""Shared utilities for the service layer."""

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import uuid4

# Every JSON TEXT column in this DB stores a dict or a list of dicts.
JsonDict = dict[str, object]
Serializable = Mapping[str, object] | list[Mapping[str, object]]

MONEY_QUANT: Decimal = Decimal("0.000001")
CENTS: Decimal = Decimal("0.01")


def new_id() -> str:
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_iso(dt: datetime) -> str:
    """Fixed-width UTC ISO string, so stored timestamps compare correctly as text."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def now_iso() -> str:
    return to_iso(utc_now())


def parse_iso(raw: str) -> datetime:
    dt = datetime.fromisoformat(raw)
    return dt if dt.tzinfo else dt.replace(tzinfo=UTC)


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Coerce to Decimal at ledger precision. Floats go through str()."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def to_cents(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def period_of(dt: datetime) -> str:
    return f"{dt.year:04d}-{dt.month:02d}"


def previous_period(now: datetime) -> str:
    """The calendar month that closed at the most recent rollover before ``now``."""
    if now.month == 1:
        return f"{now.year - 1:04d}-12"
    return f"{now.year:04d}-{now.month - 1:02d}"


def validate_period(raw: str) -> str:
    """Normalise ``YYYY-MM``; raises ValueError on anything else."""
    try:
        year_s, month_s = raw.split("-")
        year, month = int(year_s), int(month_s)
    except (ValueError, AttributeError):
        raise ValueError(f"Invalid period '{raw}'. Expected YYYY-MM (e.g. 2026-01)")
    if not 1 <= month <= 12 or year < 1970:
        raise ValueError(f"Invalid period '{raw}'. Expected YYYY-MM (e.g. 2026-01)")
    return f"{year:04d}-{month:02d}"


def load_json(raw: str | None) -> JsonDict | None:
    """Deserialize a JSON TEXT column holding a dict."""
    if not raw:
        return None
    result: object = json.loads(raw)
    if isinstance(result, dict):
        return dict(result)
    return None


def load_json_list(raw: str | None) -> list[JsonDict]:
    if not raw:
        return []
    result: object = json.loads(raw)
    if isinstance(result, list):
        return [dict(item) for item in result if isinstance(item, dict)]
    return []


def dump_json(obj: Serializable) -> str:
    return json.dumps(obj, default=str)
