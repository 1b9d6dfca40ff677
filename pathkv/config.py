from __future__ import annotations

"""
Configuration loader for pathkv.

- Reads environment variables (optionally from `.env`) via pydantic-settings.
- Exposes a cached `get_settings()` accessor; `Settings(**overrides)` builds an
  uncached instance (tests, embedding applications).

Environment variables
---------------------
    PATHKV_DB_URI               (str, default "sqlite:///:memory:")
    PATHKV_POOL_SIZE            (int, default 8)       : max open connections
    PATHKV_BUSY_TIMEOUT_MS      (int, default 5000)    : SQLite busy handler
    PATHKV_JOURNAL_MODE         (str, default "WAL")
    PATHKV_SYNCHRONOUS          (str, default "NORMAL")
    PATHKV_BATCH_SIZE           (int, default 10000)   : iteration batch size
    PATHKV_TX_MAX_ATTEMPTS      (int, default 16)      : CAS retry budget
    PATHKV_TX_BACKOFF_BASE_MS   (float, default 1)
    PATHKV_TX_BACKOFF_MAX_MS    (float, default 100)
    PATHKV_TX_BEGIN             ("DEFERRED" | "IMMEDIATE", default "DEFERRED")
    PATHKV_CREATE_SCHEMA        (bool, default true)
    PATHKV_LOG_LEVEL            (str, default "INFO")
    PATHKV_LOG_FORMAT           ("json" | "console", default "json")
    PATHKV_METRICS_ENABLED      (bool, default false)
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DB_URI = "sqlite:///:memory:"
DEFAULT_BATCH_SIZE = 10000

_JOURNAL_MODES = {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"}
_SYNC_MODES = {"OFF", "NORMAL", "FULL", "EXTRA"}


class Settings(BaseSettings):
    db_uri: str = Field(DEFAULT_DB_URI, description="Database URI or path")
    pool_size: int = Field(8, ge=1, description="Maximum pooled connections")
    busy_timeout_ms: int = Field(5000, ge=0)
    journal_mode: str = "WAL"
    synchronous: str = "NORMAL"
    create_schema: bool = True

    batch_size: int = Field(DEFAULT_BATCH_SIZE, ge=1)

    tx_max_attempts: int = Field(16, ge=1, description="CAS transaction attempts")
    tx_backoff_base_ms: float = Field(1.0, ge=0)
    tx_backoff_max_ms: float = Field(100.0, ge=0)
    tx_begin: Literal["DEFERRED", "IMMEDIATE"] = "DEFERRED"

    log_level: str = Field("INFO", description="DEBUG, INFO, WARNING, ERROR")
    log_format: Literal["json", "console"] = "json"
    metrics_enabled: bool = False

    model_config = SettingsConfigDict(
        env_prefix="PATHKV_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    @field_validator("journal_mode", "synchronous", "log_level", mode="before")
    @classmethod
    def _upper(cls, v):
        return str(v).strip().upper()

    @field_validator("tx_begin", mode="before")
    @classmethod
    def _upper_begin(cls, v):
        return str(v).strip().upper()

    @field_validator("journal_mode")
    @classmethod
    def _check_journal(cls, v: str) -> str:
        if v not in _JOURNAL_MODES:
            raise ValueError(f"unsupported journal_mode {v!r}")
        return v

    @field_validator("synchronous")
    @classmethod
    def _check_sync(cls, v: str) -> str:
        if v not in _SYNC_MODES:
            raise ValueError(f"unsupported synchronous mode {v!r}")
        return v

    @field_validator("tx_backoff_max_ms")
    @classmethod
    def _check_backoff(cls, v: float, info) -> float:
        base = info.data.get("tx_backoff_base_ms")
        if base is not None and v < base:
            raise ValueError("tx_backoff_max_ms must be >= tx_backoff_base_ms")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings", "DEFAULT_DB_URI", "DEFAULT_BATCH_SIZE"]
