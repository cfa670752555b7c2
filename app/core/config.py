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

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    BaseSettings reads its fields from the environment; building it through a
    factory keeps env loading lazy for the nested container.
    """

    return AppSettings()


def _build_log_settings() -> "LogSettings":
    return LogSettings()


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log output: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    environment: str = Field(
        APP_ENV,
        description="Deployment environment; selects the CORS policy",
    )
    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["https://example.com"],
        description="Allowed CORS origins outside development (JSON list)",
    )
    cors_dev_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5001", "https://localhost:5001"],
        description="Allowed CORS origins in development (JSON list)",
    )
    internal_api_key: str | None = Field(
        None,
        description="When set, requests must carry a matching X-Internal-Api-Key header",
    )
    security_headers_enabled: bool = Field(
        True,
        description="Add X-Frame-Options, X-Content-Type-Options and related headers",
    )
    trust_forwarded_for: bool = Field(
        True,
        description="Derive the client partition key from X-Forwarded-For when present",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable rate limiting",
    )
    rate_limit_global_permit_limit: int = Field(
        100,
        description="Requests allowed per window per client for the global policy",
        ge=1,
    )
    rate_limit_global_window_seconds: float = Field(
        60.0,
        description="Global policy window size in seconds",
        gt=0,
    )
    rate_limit_global_queue_limit: int = Field(
        10,
        description="Requests that may wait for the next global window per client",
        ge=0,
    )
    rate_limit_global_queue_order: Literal["oldest_first", "newest_first"] = Field(
        "oldest_first",
        description="Release order for waiting requests: oldest_first or newest_first",
    )
    rate_limit_auth_permit_limit: int = Field(
        5,
        description="Requests allowed per window per client on sensitive endpoints",
        ge=1,
    )
    rate_limit_auth_window_seconds: float = Field(
        300.0,
        description="Sensitive endpoint policy window size in seconds",
        gt=0,
    )
    rate_limit_auth_queue_limit: int = Field(
        0,
        description="Waiting requests allowed on sensitive endpoints (0 rejects directly)",
        ge=0,
    )
    rate_limit_queue_wait_timeout_seconds: float = Field(
        30.0,
        description="Maximum time a queued request waits for admission before rejection",
        ge=0,
    )
    rate_limit_queue_poll_interval_seconds: float = Field(
        0.25,
        description="How often a queued request re-checks the window",
        gt=0,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* headers when throttling",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in {"development", "dev", "local"}


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.

    Environments:
    - development: Local development (permissive CORS for localhost)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
