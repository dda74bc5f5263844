"""Configuration validation with clear error messages."""

from typing import List

from .models import AppConfig, Environment, LogLevel, ProviderType


ALLOWED_HOSTS = ("127.0.0.1", "localhost", "0.0.0.0", "::1")


def validate_config(config: AppConfig) -> List[str]:
    """Validate application configuration and return list of error messages.

    Numeric limits are already clamped by the configuration models, so this
    only reports problems that cannot be corrected automatically.

    Args:
        config: Application configuration to validate.

    Returns:
        List of validation error messages. Empty list if valid.
    """
    errors = []

    errors.extend(_validate_server_config(config))
    errors.extend(_validate_provider_config(config))
    errors.extend(_validate_environment_config(config))

    return errors


def _validate_server_config(config: AppConfig) -> List[str]:
    """Validate server configuration."""
    errors = []

    if not config.server.host or not config.server.host.strip():
        errors.append("API host cannot be empty.")
    elif config.server.host not in ALLOWED_HOSTS:
        errors.append(
            f"API host '{config.server.host}' is not allowed. "
            f"Use one of: {', '.join(ALLOWED_HOSTS)}."
        )

    return errors


def _validate_provider_config(config: AppConfig) -> List[str]:
    """Validate chat model provider configuration."""
    errors = []

    if config.provider.provider_type == ProviderType.OPENAI:
        if not config.provider.api_key and not config.provider.base_url:
            errors.append(
                "An API key is required for the openai provider unless a local "
                "PROVIDER_BASE_URL is configured. Set PROVIDER_API_KEY or OPENAI_API_KEY."
            )
        elif config.provider.api_key and len(config.provider.api_key) < 10:
            errors.append("Provider API key appears to be too short. Please check your API key.")

    if not config.provider.vendor or not config.provider.vendor.strip():
        errors.append("Provider vendor label cannot be empty. Set PROVIDER_VENDOR.")

    return errors


def _validate_environment_config(config: AppConfig) -> List[str]:
    """Validate environment-specific configuration requirements."""
    errors = []

    if config.environment == Environment.PRODUCTION:
        if config.debug:
            errors.append("Debug mode should be disabled in production.")

        if config.server.log_level == LogLevel.DEBUG:
            errors.append(
                "Debug logging should be avoided in production. "
                "Use INFO or higher log level."
            )

    return errors
