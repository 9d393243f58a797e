"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ first
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


DEFAULT_KEY_NAMESPACE = "request:ratelimiter:"


class LimiterSettings(BaseSettings):
    """Sliding window limiter configuration."""

    enabled: bool = Field(
        True,
        description="Enable the settings-driven rate limit dependency",
    )
    backend: Literal["redis", "memory"] = Field(
        "redis",
        description="Counter store backend; 'memory' is per-process only",
    )
    scope: Literal["route", "route_ip", "global"] = Field(
        "route_ip",
        description="Dimension the settings-driven limiter groups requests by",
    )
    window_ms: int = Field(
        60000,
        description="Sliding window size in milliseconds",
        ge=1,
    )
    threshold: int = Field(
        60,
        description="Maximum live events per window (inclusive)",
        ge=1,
    )
    key_namespace: str = Field(
        DEFAULT_KEY_NAMESPACE,
        description="Prefix shared by every scope key in the store",
    )
    fail_open: bool = Field(
        True,
        description="Let requests through when the counter store is unavailable",
    )
    timeout_seconds: float = Field(
        1.0,
        description="Maximum time a request waits for a limiter verdict",
        gt=0,
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Shared counter store connection options."""

    url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL (credentials and TLS via rediss://)",
    )
    socket_timeout_seconds: float = Field(
        0.5,
        description="Timeout for a single Redis command",
        gt=0,
    )
    connect_timeout_seconds: float = Field(
        0.5,
        description="Timeout for establishing a Redis connection",
        gt=0,
    )
    max_connections: int = Field(
        50,
        description="Upper bound on pooled Redis connections per process",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Response header carrying the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


def _build_limiter_settings() -> LimiterSettings:
    return LimiterSettings()


def _build_redis_settings() -> RedisSettings:
    return RedisSettings()


def _build_log_settings() -> LogSettings:
    return LogSettings()


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    limiter: LimiterSettings = Field(default_factory=_build_limiter_settings)
    redis: RedisSettings = Field(default_factory=_build_redis_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
