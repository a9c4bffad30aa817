"""Centralised application configuration using pydantic-settings.

All environment variables are read through the Settings class.
Consumers call ``get_settings()`` to obtain a cached, validated instance.
Tests construct ``Settings(_env_file=None, ...)`` directly for isolation.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# src/ticketsync/config.py  ->  parent x3  ->  project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


# ---------------------------------------------------------------------------
# Sub-models (one per configuration domain)
# ---------------------------------------------------------------------------
class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str | None = None
    echo: bool = False
    use_null_pool: bool = False


class StoreConfig(BaseModel):
    """Which backing store holds snapshots."""

    backend: Literal["postgres", "memory"] = "postgres"


class SnapshotConfig(BaseModel):
    """Snapshot decoding and retry behaviour."""

    fail_open: bool = True
    retry_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=0.1, ge=0)
    retry_max_delay: float = Field(default=2.0, ge=0)

    @model_validator(mode="after")
    def max_delay_covers_base(self) -> SnapshotConfig:
        if self.retry_max_delay < self.retry_base_delay:
            msg = "SNAPSHOT__RETRY_MAX_DELAY must be >= SNAPSHOT__RETRY_BASE_DELAY"
            raise ValueError(msg)
        return self


class AppConfig(BaseModel):
    """Application runtime configuration."""

    host: str = "0.0.0.0"  # nosec B104
    port: int = 3001
    debounce_seconds: float = Field(default=2.0, ge=0)
    log_dir: Path = Path("logs")


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------
class Settings(BaseSettings):
    """Application settings with automatic .env loading and type validation.

    Environment variables use double-underscore delimiter for nesting:
    ``DATABASE__URL``, ``STORE__BACKEND``, ``SNAPSHOT__FAIL_OPEN``, etc.
    """

    model_config = SettingsConfigDict(
        env_file=_PROJECT_ROOT / ".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    database: DatabaseConfig = DatabaseConfig()
    store: StoreConfig = StoreConfig()
    snapshot: SnapshotConfig = SnapshotConfig()
    app: AppConfig = AppConfig()


# ---------------------------------------------------------------------------
# Singleton access
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    settings = Settings()

    env_file = settings.model_config.get("env_file")
    if env_file is not None and Path(str(env_file)).is_file():
        logger.info("Settings loaded .env from: %s", env_file)
    else:
        logger.info("Settings: no .env file found, using env vars and defaults")

    return settings
