"""
Pydantic configuration models for TruxTrack.

These models provide type-safe configuration with validation for:
- Application settings
- Browser session settings
- Provider (carrier portal) settings
- Push server settings
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class ProviderType(str, Enum):
    """Supported tracking providers."""

    MINIMAX = "minimax"
    GUILBAULT = "guilbault"


class BrowserType(str, Enum):
    """Browser engines available through Playwright."""

    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


DEFAULT_PROVIDER_URLS = {
    ProviderType.MINIMAX: "https://minimax.tracking.dtms.ca",
    ProviderType.GUILBAULT: "https://grguweb.tmwcloud.com/trace/external.msw",
}


# =============================================================================
# Browser Configuration
# =============================================================================


class BrowserConfig(BaseModel):
    """Settings for the per-attempt browser session."""

    browser: BrowserType = Field(
        default=BrowserType.CHROMIUM,
        description="Browser to use: chromium, firefox, webkit",
    )
    headless: bool = Field(
        default=True,
        description="Run the browser in headless mode",
    )
    launch_timeout_seconds: float = Field(
        default=60.0,
        ge=1.0,
        le=300.0,
        description="Timeout for launching the browser",
    )
    timeout_seconds: float = Field(
        default=60.0,
        ge=1.0,
        le=300.0,
        description="Default timeout for navigation and page actions",
    )
    user_agent: str | None = Field(
        default=None,
        description="Custom user agent string",
    )


# =============================================================================
# Provider Configuration
# =============================================================================


class ProviderConfig(BaseModel):
    """Settings for one tracking provider."""

    name: ProviderType = Field(
        ...,
        description="Provider identifier",
    )
    enabled: bool = Field(
        default=True,
        description="Whether the provider takes part in races",
    )
    url: str | None = Field(
        default=None,
        description="Tracking page URL (defaults to the provider's public page)",
    )
    timeout_seconds: float | None = Field(
        default=90.0,
        gt=0,
        le=600.0,
        description="Give up on detection after this long (None = no limit)",
    )
    max_attempts: int = Field(
        default=2,
        ge=1,
        le=5,
        description="Navigation attempts before reporting no match",
    )

    @property
    def resolved_url(self) -> str:
        return self.url or DEFAULT_PROVIDER_URLS[self.name]


def _default_providers() -> list[ProviderConfig]:
    return [ProviderConfig(name=ProviderType.GUILBAULT), ProviderConfig(name=ProviderType.MINIMAX)]


# =============================================================================
# Server Configuration
# =============================================================================


class ServerConfig(BaseModel):
    """Push server settings."""

    host: str = Field(
        default="127.0.0.1",
        description="Interface to bind",
    )
    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port to listen on",
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed CORS origins",
    )


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    file: Path | None = Field(
        default=None,
        description="Log file path",
    )
    json_format: bool = Field(
        default=True,
        description="Use JSON format for file logs",
    )
    rich_console: bool = Field(
        default=True,
        description="Use Rich for console output",
    )

    @field_validator("level")
    @classmethod
    def level_is_known(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Root application configuration.

    This is the main configuration object loaded from app.yaml.
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    providers: list[ProviderConfig] = Field(default_factory=_default_providers)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @field_validator("providers")
    @classmethod
    def provider_names_unique(cls, v: list[ProviderConfig]) -> list[ProviderConfig]:
        seen: set[ProviderType] = set()
        for provider in v:
            if provider.name in seen:
                raise ValueError(f"Provider configured twice: {provider.name.value}")
            seen.add(provider.name)
        return v

    @property
    def enabled_providers(self) -> list[ProviderConfig]:
        return [p for p in self.providers if p.enabled]
