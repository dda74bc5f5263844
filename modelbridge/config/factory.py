"""Configuration factory for different environments."""

import os
from typing import Optional

from .models import AppConfig, Environment, LogLevel
from .settings import get_config
from .validation import validate_config


class ConfigurationError(Exception):
    """Configuration error exception."""
    pass


class ConfigFactory:
    """Factory for creating environment-specific configurations."""

    @staticmethod
    def create_config(environment: Optional[Environment] = None) -> AppConfig:
        """Create configuration for the specified environment.

        Args:
            environment: Target environment. If None, uses ENVIRONMENT env var.

        Returns:
            AppConfig: Validated application configuration.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        original_env = os.environ.get("ENVIRONMENT")
        if environment:
            os.environ["ENVIRONMENT"] = environment.value

        try:
            config = get_config()

            if config.environment == Environment.DEVELOPMENT:
                config = ConfigFactory._apply_development_overrides(config)
            elif config.environment == Environment.TESTING:
                config = ConfigFactory._apply_testing_overrides(config)
            elif config.environment == Environment.PRODUCTION:
                config = ConfigFactory._apply_production_overrides(config)

            validation_errors = validate_config(config)
            if validation_errors:
                error_msg = "Configuration validation failed:\n" + "\n".join(validation_errors)
                raise ConfigurationError(error_msg)

            return config

        finally:
            if environment and original_env is not None:
                os.environ["ENVIRONMENT"] = original_env
            elif environment and original_env is None:
                os.environ.pop("ENVIRONMENT", None)

    @staticmethod
    def _apply_development_overrides(config: AppConfig) -> AppConfig:
        """Apply development environment overrides."""
        config.debug = True
        return config

    @staticmethod
    def _apply_testing_overrides(config: AppConfig) -> AppConfig:
        """Apply testing environment overrides."""
        config.debug = False

        # Tests never wait on background timers
        config.discovery.refresh_interval = 86400.0
        config.discovery.health_check_interval = 86400.0
        return config

    @staticmethod
    def _apply_production_overrides(config: AppConfig) -> AppConfig:
        """Apply production environment overrides."""
        config.debug = False

        if config.server.log_level == LogLevel.DEBUG:
            config.server.log_level = LogLevel.INFO

        return config


def create_config_for_environment(env: Environment) -> AppConfig:
    """Create configuration for a specific environment."""
    return ConfigFactory.create_config(env)


def get_current_config() -> AppConfig:
    """Get configuration for the current environment.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    return ConfigFactory.create_config()
