"""Configuration package for modelbridge."""

from .factory import ConfigFactory, ConfigurationError, create_config_for_environment, get_current_config
from .models import (
    AppConfig,
    DiscoveryConfig,
    Environment,
    LogLevel,
    ProviderConfig,
    ProviderType,
    ServerConfig,
    ToolsConfig,
)
from .settings import Settings, get_config, load_settings
from .source import ConfigSource
from .validation import validate_config

__all__ = [
    # Main configuration interfaces
    "get_current_config",
    "get_config",
    "ConfigSource",

    # Factory functions
    "ConfigFactory",
    "ConfigurationError",
    "create_config_for_environment",

    # Models and enums
    "AppConfig",
    "DiscoveryConfig",
    "Environment",
    "LogLevel",
    "ProviderConfig",
    "ProviderType",
    "ServerConfig",
    "ToolsConfig",

    # Utilities
    "Settings",
    "load_settings",
    "validate_config",
]
