"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

The Redis URL is deliberately kept as a raw string here. It is validated per
request by the API layer so a bad value surfaces as a 500 response instead of
an import-time crash.
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


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


StoreFailurePolicy = Literal["unavailable", "memory", "open"]
RedisMode = Literal["optional", "required"]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    documentation_url: str = Field(
        "https://barryhenry.com/docs",
        description="Public documentation URL returned in the profile payload",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Fixed-window rate limiting for the public API."""

    enabled: bool = Field(
        True,
        description="Enable rate limiting on /api routes",
    )
    requests: int = Field(
        10,
        description="Maximum requests per window for an identified client (per IP)",
        ge=1,
    )
    anonymous_requests: int = Field(
        1,
        description="Maximum requests per window for the shared anonymous bucket",
        ge=1,
    )
    window_seconds: int = Field(
        60,
        description="Rate limit window size in seconds",
        ge=1,
    )
    store_failure_policy: StoreFailurePolicy = Field(
        "unavailable",
        description=(
            "Behaviour when Redis is configured but unreachable: 'unavailable' answers 503, "
            "'memory' degrades to the in-memory counter, 'open' admits without counting"
        ),
    )
    fail_open: bool = Field(
        True,
        description="Admit requests when the limiter fails for reasons other than connectivity",
    )
    limit_preflight: bool = Field(
        False,
        description="Apply rate limiting to OPTIONS preflight requests",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* headers when throttling",
    )
    sweep_interval_seconds: int = Field(
        300,
        description="Interval between purges of expired in-memory counters",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Connection settings for the Redis counter store."""

    url: str | None = Field(
        None,
        description="Redis connection URL (redis://, rediss:// or unix://)",
    )
    mode: RedisMode = Field(
        "optional",
        description="'required' treats a missing URL as misconfiguration; 'optional' falls back to memory",
    )
    max_retries: int = Field(
        3,
        description="Connection retries after the first failed attempt",
        ge=0,
    )
    backoff_base_seconds: float = Field(
        1.0,
        description="Base delay for exponential backoff between connection attempts",
        ge=0,
    )
    backoff_max_seconds: float = Field(
        300.0,
        description="Upper bound for a single backoff delay",
        ge=0,
    )
    connect_timeout_seconds: float = Field(
        5.0,
        description="Socket connect timeout",
        gt=0,
    )
    socket_timeout_seconds: float = Field(
        5.0,
        description="Socket read/write timeout",
        gt=0,
    )
    key_prefix: str = Field(
        "ratelimit:",
        description="Namespace prepended to every counter key",
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


def _build_app_settings() -> AppSettings:
    """Build app settings from environment.

    Static type checkers treat fields as constructor arguments, which is not how
    BaseSettings is meant to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> RateLimitSettings:
    return RateLimitSettings()  # type: ignore[call-arg]


def _build_redis_settings() -> RedisSettings:
    return RedisSettings()  # type: ignore[call-arg]


def _build_log_settings() -> LogSettings:
    return LogSettings()  # type: ignore[call-arg]


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    redis: RedisSettings = Field(default_factory=_build_redis_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
