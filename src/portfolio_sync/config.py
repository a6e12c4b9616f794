"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
portfolio sync service, loading and validating environment variables
at startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

_DATABASE_URL_PREFIXES = (
    "postgresql://",
    "postgresql+asyncpg://",
    "sqlite+aiosqlite://",
)


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default="sqlite+aiosqlite:///./portfolio_sync.db",
        alias="DATABASE_URL",
        description="PostgreSQL (or SQLite for local runs) connection string",
    )
    pool_size: int = Field(
        default=5,
        alias="DATABASE_POOL_SIZE",
        ge=1,
        le=100,
        description="Connection pool size (ignored for SQLite)",
    )
    echo: bool = Field(
        default=False,
        alias="DATABASE_ECHO",
        description="Echo SQL statements for debugging",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(_DATABASE_URL_PREFIXES):
            raise ValueError(
                "DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string"
            )
        return v


class SchedulerSettings(BaseSettings):
    """Sync scheduler settings."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_", extra="ignore")

    estimated_job_seconds: int = Field(
        default=30,
        alias="SCHEDULER_ESTIMATED_JOB_SECONDS",
        ge=1,
        le=3600,
        description="Expected duration of one sync job, used for completion estimates",
    )
    error_log_size: int = Field(
        default=50,
        alias="SCHEDULER_ERROR_LOG_SIZE",
        ge=1,
        le=10_000,
        description="Number of recent errors kept in memory by the error sink",
    )
    default_kind: Literal["full", "portfolio-only", "transactions-only", "nfts-only"] = Field(
        default="full",
        alias="SCHEDULER_DEFAULT_KIND",
        description="Sync kind used when a caller does not specify one",
    )


class MetricsSettings(BaseSettings):
    """Portfolio analytics settings."""

    model_config = SettingsConfigDict(env_prefix="METRICS_", extra="ignore")

    risk_free_rate: float = Field(
        default=0.02,
        alias="METRICS_RISK_FREE_RATE",
        ge=0.0,
        le=1.0,
        description="Annual risk-free rate used by the Sharpe ratio",
    )


class ZerionSettings(BaseSettings):
    """Zerion wallet-data API settings."""

    model_config = SettingsConfigDict(env_prefix="ZERION_", extra="ignore")

    api_key: SecretStr | None = Field(
        default=None,
        alias="ZERION_API_KEY",
        description="Zerion API key (required to run sync jobs)",
    )
    base_url: str = Field(
        default="https://api.zerion.io/v1",
        alias="ZERION_BASE_URL",
        description="Zerion REST API base URL",
    )
    timeout_seconds: float = Field(
        default=20.0,
        alias="ZERION_TIMEOUT_SECONDS",
        gt=0.0,
        le=300.0,
        description="HTTP timeout for a single Zerion request",
    )
    currency: str = Field(
        default="usd",
        alias="ZERION_CURRENCY",
        description="Quote currency for portfolio values",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("ZERION_BASE_URL must be an HTTP(S) endpoint")
        return v.rstrip("/")


class Settings(BaseSettings):
    """Root application settings.

    Nested groups are loaded independently so each can carry its own
    environment prefix.
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    scheduler: SchedulerSettings = Field(
        default_factory=lambda: SchedulerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    metrics: MetricsSettings = Field(
        default_factory=lambda: MetricsSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    zerion: ZerionSettings = Field(
        default_factory=lambda: ZerionSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Accept sync jobs without writing snapshots",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "scheduler": {
                "estimated_job_seconds": str(self.scheduler.estimated_job_seconds),
                "error_log_size": str(self.scheduler.error_log_size),
                "default_kind": self.scheduler.default_kind,
            },
            "metrics": {
                "risk_free_rate": str(self.metrics.risk_free_rate),
            },
            "zerion": {
                "base_url": self.zerion.base_url,
                "api_key": "(set)" if self.zerion.api_key else "(not set)",
                "currency": self.zerion.currency,
            },
            "log_level": self.log_level,
            "dry_run": str(self.dry_run),
        }

    def validate_requirements(self) -> str:
        """Refuse to build the Zerion provider without credentials.

        Returns:
            The Zerion API key.

        Raises:
            ValueError: If ZERION_API_KEY is not set.
        """
        api_key = self.zerion.api_key.get_secret_value() if self.zerion.api_key else ""
        if not api_key:
            raise ValueError("ZERION_API_KEY is required to run sync jobs")
        return api_key

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
