# backend/motoserve/core/config.py
import logging
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment environment name")
    log_level: str = Field(default="INFO", description="Root log level")

    # Persistence
    database_url: str = Field(
        default="sqlite+pysqlite:///./motoserve.db",
        description="SQLAlchemy URL for the primary database",
    )
    database_pool_size: int = Field(default=10, ge=1)
    database_max_overflow: int = Field(default=5, ge=0)
    create_tables_on_startup: bool = Field(
        default=True, description="Run metadata.create_all when the API starts"
    )

    # Distributed locks (optional; an in-process registry is used when unset)
    redis_url: Optional[str] = Field(default=None, description="Redis URL for booking locks")
    lock_namespace: str = Field(default="motoserve", description="Prefix for lock keys")
    booking_lock_ttl_seconds: int = Field(default=90, ge=1)

    # Cancellation economy
    monthly_cancellation_tokens: int = Field(default=3, ge=0)
    first_cancellation_token_cost: int = Field(default=1, ge=0)
    repeat_cancellation_token_cost: int = Field(default=2, ge=0)
    ledger_charge_max_attempts: int = Field(default=3, ge=1)
    cancellation_history_limit: int = Field(default=20, ge=1, le=200)
    business_timezone: str = Field(
        default="UTC",
        description="Timezone whose calendar months bound the token ledger",
    )

    # Worker matching
    quality_min_rating: float = Field(default=3.5, ge=0, le=5)
    fallback_min_rating: float = Field(default=0.0, ge=0, le=5)
    worker_claim_max_attempts: int = Field(default=3, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("business_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return (value or "INFO").upper()

    @model_validator(mode="after")
    def _check_rating_thresholds(self) -> "Settings":
        if self.fallback_min_rating > self.quality_min_rating:
            raise ValueError("fallback_min_rating must not exceed quality_min_rating")
        return self

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def engine_options(self) -> dict[str, Any]:
        """Keyword arguments for create_engine matching the configured dialect."""
        if self.is_sqlite:
            return {"connect_args": {"check_same_thread": False}}
        return {
            "pool_size": self.database_pool_size,
            "max_overflow": self.database_max_overflow,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        }


settings = Settings()
