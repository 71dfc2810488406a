"""Application settings for the payout ledger.

Values come from the process environment first, then backend/.env and the
project-root .env. DATABASE_URL picks PostgreSQL; without it the ledger runs
on a local SQLite file (DB_SQLITE_PATH).
"""

import re
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from db.enums import WithdrawalMethod

BACKEND_DIR: Path = Path(__file__).resolve().parent
DEFAULT_SQLITE_FILE: str = "data/payouts.db"
_ENV_FILES: tuple[str, ...] = (str(BACKEND_DIR / ".env"), str(BACKEND_DIR.parent / ".env"))

for _env_file in _ENV_FILES:
    if Path(_env_file).exists():
        load_dotenv(_env_file, override=False)


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DB_", env_file=_ENV_FILES, env_file_encoding="utf-8", extra="ignore"
    )

    database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")
    sqlite_path: str = Field(default=DEFAULT_SQLITE_FILE)
    sqlite_wal: bool = Field(default=True, description="journal_mode=WAL on file databases")
    pool_size: int = Field(default=5, ge=1)
    pool_timeout: int = Field(default=30, ge=1)
    pool_recycle: int = Field(default=1800)

    @field_validator("database_url")
    @classmethod
    def _blank_url_means_sqlite(cls, value: str | None) -> str | None:
        value = (value or "").strip()
        return value or None

    @property
    def is_postgres(self) -> bool:
        return self.database_url is not None

    @property
    def sqlite_file(self) -> Path:
        path = Path(self.sqlite_path.strip() or DEFAULT_SQLITE_FILE)
        return path if path.is_absolute() else (BACKEND_DIR / path).resolve()

    @property
    def url(self) -> str:
        if self.database_url is not None:
            return self.database_url
        self.sqlite_file.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{self.sqlite_file.as_posix()}"

    def db_info_for_logging(self) -> str:
        """Human-readable target with the password masked."""
        if self.database_url is not None:
            return "PostgreSQL @ " + re.sub(r":([^:@]+)@", ":***@", self.database_url)
        return f"SQLite @ {self.sqlite_file.as_posix()}"


class PayoutSettings(BaseSettings):
    """Business rules for reports and withdrawals (PAYOUT_ prefix)."""

    model_config = SettingsConfigDict(
        env_prefix="PAYOUT_", env_file=_ENV_FILES, env_file_encoding="utf-8", extra="ignore"
    )

    lock_period_days: int = Field(default=90, ge=0, description="Days a report stays locked")
    minimum_withdrawal: Decimal = Field(default=Decimal("50.00"), ge=0)
    max_parallel_creators: int = Field(
        default=4, ge=1, description="Upper bound on concurrently processed creators per batch"
    )
    withdrawal_methods: list[str] = Field(
        default_factory=lambda: [m.value for m in WithdrawalMethod]
    )

    @field_validator("minimum_withdrawal")
    @classmethod
    def _to_cents(cls, value: Decimal) -> Decimal:
        return value.quantize(Decimal("0.01"))

    @field_validator("withdrawal_methods")
    @classmethod
    def _known_methods(cls, value: list[str]) -> list[str]:
        known = {m.value for m in WithdrawalMethod}
        methods = [m.strip().lower() for m in value if m.strip()]
        unknown = sorted(set(methods) - known)
        if unknown:
            raise ValueError(f"unknown withdrawal method(s): {', '.join(unknown)}")
        return methods


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PAYOUTS_", env_nested_delimiter="__", extra="ignore"
    )

    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    api_key: str | None = Field(default=None, description="API key for operator endpoints")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"]
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    payout: PayoutSettings = Field(default_factory=PayoutSettings)


@lru_cache
def get_settings() -> Settings:
    return Settings()
