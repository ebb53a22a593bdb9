"""Configuration loading and validation."""

from .models import (
    # Enums
    BrowserType,
    ProviderType,
    # Config models
    AppConfig,
    BrowserConfig,
    LoggingConfig,
    ProviderConfig,
    ServerConfig,
)
from .loader import ConfigError, load_app_config, write_default_config

__all__ = [
    # Enums
    "BrowserType",
    "ProviderType",
    # Config models
    "AppConfig",
    "BrowserConfig",
    "LoggingConfig",
    "ProviderConfig",
    "ServerConfig",
    # Loaders
    "ConfigError",
    "load_app_config",
    "write_default_config",
]
