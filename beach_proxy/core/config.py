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

from pydantic import AliasChoices, BaseModel, Field, model_validator
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


DEFAULT_CACHE_CONTROL = "s-maxage=30, stale-while-revalidate=60"
NO_STORE_CACHE_CONTROL = "no-store"


def _build_upstream_settings() -> "UpstreamSettings":
    """Build upstream settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return UpstreamSettings()  # type: ignore[call-arg]


def _build_proxy_settings() -> "ProxySettings":
    return ProxySettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    See _build_upstream_settings() for rationale about the type ignore.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class UpstreamSettings(BaseSettings):
    """Upstream Solana Beach API configuration.

    The API key is a secret: it is only ever sent in the outbound
    Authorization header and never logged or echoed to clients.
    """

    base_url: str = Field(
        "https://api.solanaview.com",
        description="Base URL of the upstream REST API",
    )
    api_key: str | None = Field(
        None,
        description="Bearer token injected into every upstream request",
        validation_alias=AliasChoices("UPSTREAM_API_KEY", "SOLANA_BEACH_API_KEY"),
    )
    timeout_seconds: float = Field(
        10.0,
        description="Timeout for a single upstream attempt in seconds",
        gt=0,
    )
    max_retries: int = Field(
        3,
        description="Retries after the first attempt on 429/network/timeout failures",
        ge=0,
    )
    initial_delay_seconds: float = Field(
        1.0,
        description="Backoff before the first retry; doubled on each further retry",
        ge=0,
    )
    max_delay_seconds: float = Field(
        30.0,
        description="Upper bound for a single backoff delay",
        ge=0,
    )
    retry_on_server_errors: bool = Field(
        False,
        description="Also retry upstream 5xx responses (otherwise only 429)",
    )

    model_config = SettingsConfigDict(
        env_prefix="UPSTREAM_",
        case_sensitive=False,
        populate_by_name=True,
    )


class EndpointClassSettings(BaseModel):
    """Rate limit and caching policy shared by a group of upstream endpoints."""

    prefixes: list[str] = Field(
        default_factory=list,
        description="Upstream path prefixes belonging to this class",
    )
    requests_per_window: int = Field(
        30,
        description="Maximum upstream calls per endpoint per fixed window",
        ge=1,
    )
    window_seconds: int = Field(
        60,
        description="Fixed window size in seconds (wall-clock aligned)",
        ge=1,
    )
    on_limit: Literal["reject", "wait"] = Field(
        "reject",
        description="Reject with 429, or wait for the window reset and check once more",
    )
    max_wait_seconds: float = Field(
        60.0,
        description="Longest wait accepted by the 'wait' policy before rejecting",
        ge=0,
    )
    cache_ttl_seconds: int = Field(
        60,
        description="TTL for cached upstream payloads (0 disables caching)",
        ge=0,
    )
    cache_control: str = Field(
        DEFAULT_CACHE_CONTROL,
        description="Cache-Control header sent to clients for this class",
    )


def _default_endpoint_classes() -> dict[str, EndpointClassSettings]:
    return {
        "realtime": EndpointClassSettings(
            prefixes=[
                "/v1/network-status",
                "/v2/transactions-per-second",
                "/v2/recent-blocks",
                "/v1/latest-transactions",
                "/v2/market-data",
            ],
            requests_per_window=30,
            window_seconds=60,
            cache_ttl_seconds=10,
            cache_control=NO_STORE_CACHE_CONTROL,
        ),
        "validators": EndpointClassSettings(
            prefixes=["/v1/validators", "/v2/validator-list"],
            requests_per_window=10,
            window_seconds=300,
            cache_ttl_seconds=300,
        ),
        "default": EndpointClassSettings(
            requests_per_window=30,
            window_seconds=60,
            cache_ttl_seconds=60,
        ),
    }


class ProxySettings(BaseSettings):
    """Proxy behavior: endpoint classes, cache sizing and fetch de-duplication.

    ``endpoint_classes`` can be overridden with a JSON object in
    ``PROXY_ENDPOINT_CLASSES``.
    """

    endpoint_classes: dict[str, EndpointClassSettings] = Field(
        default_factory=_default_endpoint_classes,
        description="Endpoint class name to rate limit/cache policy",
    )
    default_class: str = Field(
        "default",
        description="Class used when no prefix matches the requested endpoint",
    )
    cache_max_entries: int | None = Field(
        1024,
        description="Maximum cached payloads (None for unlimited)",
    )
    single_flight_enabled: bool = Field(
        False,
        description="Share one upstream fetch between concurrent misses for the same key",
    )
    expose_upstream_error_details: bool = Field(
        True,
        description="Include the sanitized upstream error body in error responses",
    )

    model_config = SettingsConfigDict(
        env_prefix="PROXY_",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def _check_default_class(self) -> "ProxySettings":
        if self.default_class not in self.endpoint_classes:
            raise ValueError(
                f"default_class '{self.default_class}' is not a configured endpoint class"
            )
        return self


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    admin_api_key_required: bool = Field(
        True,
        description="Whether admin endpoints require an X-API-Key header",
    )
    admin_api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid admin API keys",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed to call the proxy from a browser",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
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
        description="Rotate the log file at this size (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read/propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    upstream: UpstreamSettings = Field(default_factory=_build_upstream_settings)
    proxy: ProxySettings = Field(default_factory=_build_proxy_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
