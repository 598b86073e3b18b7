"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

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


def _build_log_settings() -> "LogSettings":
    return LogSettings()


def _build_app_settings() -> "AppSettings":
    return AppSettings()


def _build_turnstile_settings() -> "TurnstileSettings":
    return TurnstileSettings()


def _build_upstream_settings() -> "UpstreamSettings":
    return UpstreamSettings()


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level (DEBUG, INFO, WARNING, ...)")
    format: str = Field("json", description="Log format: 'json' or 'plain'")
    output: str = Field("stdout", description="Log destination: 'stdout' or 'file'")
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (defaults to logs/app.log)",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep")
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

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable per-IP fixed-window rate limiting",
    )
    rate_limit_requests: int = Field(
        20,
        description="Maximum number of requests allowed per window (per client IP)",
        ge=1,
    )
    rate_limit_window_seconds: int = Field(
        60,
        description="Rate limit window size in seconds",
        ge=1,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers",
    )
    rate_limit_cleanup_interval_seconds: int = Field(
        60,
        description="How often expired limiter entries and cached errors are swept",
        ge=1,
    )

    error_cache_ttl_seconds: int = Field(
        60,
        description="How long a failed upstream request is remembered",
        ge=1,
    )
    error_cache_max_entries: int = Field(
        100,
        description="Maximum number of remembered upstream failures",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class TurnstileSettings(BaseSettings):
    """Cloudflare Turnstile verification configuration.

    When either key is missing the gate still runs and rejects every request
    (fail closed). Only ``skip_verification`` turns the gate off.
    """

    secret_key: str | None = Field(
        None,
        description="Server-side Turnstile secret used for siteverify calls",
    )
    site_key: str | None = Field(
        None,
        description="Public Turnstile site key rendered by the client widget",
    )
    skip_verification: bool = Field(
        False,
        description="Explicit operator override that disables verification",
    )
    verify_url: str = Field(
        "https://challenges.cloudflare.com/turnstile/v0/siteverify",
        description="Turnstile siteverify endpoint",
    )
    timeout_seconds: float = Field(
        10.0,
        description="Timeout for siteverify calls in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="TURNSTILE_",
        case_sensitive=False,
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key and self.site_key)


class UpstreamSettings(BaseSettings):
    """Generative API (image/text/speech/transcription) configuration."""

    image_base_url: str = Field(
        "https://image.pollinations.ai",
        description="Base URL of the image generation API",
    )
    text_base_url: str = Field(
        "https://text.pollinations.ai",
        description="Base URL of the text and speech generation API",
    )
    openai_base_url: str = Field(
        "https://text.pollinations.ai/openai",
        description="OpenAI-compatible endpoint used for transcription",
    )
    api_token: str | None = Field(
        None,
        description="Optional API token sent to the upstream API",
    )
    referrer: str | None = Field(
        None,
        description="Referrer sent to the upstream API when no token is configured",
    )
    image_timeout_seconds: float = Field(30.0, description="Image generation timeout")
    text_timeout_seconds: float = Field(30.0, description="Text generation timeout")
    speech_timeout_seconds: float = Field(30.0, description="Speech synthesis timeout")
    transcription_timeout_seconds: float = Field(
        30.0,
        description="Transcription timeout",
    )
    health_timeout_seconds: float = Field(5.0, description="Health probe timeout")
    quick_health_timeout_seconds: float = Field(
        2.0,
        description="Timeout for the HEAD /api/health load-balancer probe",
    )

    model_config = SettingsConfigDict(
        env_prefix="UPSTREAM_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.

    Environments:
    - development: Local development (error details exposed)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (error details hidden)
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    turnstile: TurnstileSettings = Field(default_factory=_build_turnstile_settings)
    upstream: UpstreamSettings = Field(default_factory=_build_upstream_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
