"""Factory for creating chat model provider instances."""

import logging
from typing import Callable, Dict, List

from modelbridge.config.factory import ConfigurationError
from modelbridge.config.models import ProviderConfig, ProviderType
from modelbridge.models.interfaces import IChatModelProvider
from .mock_provider import MockChatModelProvider
from .openai_provider import OpenAIChatModelProvider


logger = logging.getLogger(__name__)


ProviderBuilder = Callable[[ProviderConfig], IChatModelProvider]


def _create_openai(config: ProviderConfig) -> IChatModelProvider:
    return OpenAIChatModelProvider(config)


def _create_mock(config: ProviderConfig) -> IChatModelProvider:
    return MockChatModelProvider(vendor=config.vendor)


class ChatModelProviderFactory:
    """Factory for creating chat model provider instances."""

    _providers: Dict[str, ProviderBuilder] = {
        ProviderType.OPENAI.value: _create_openai,
        ProviderType.MOCK.value: _create_mock,
    }

    @classmethod
    def register_provider(cls, provider_type: str, builder: ProviderBuilder) -> None:
        """Register a builder ``(ProviderConfig) -> IChatModelProvider``."""
        if not callable(builder):
            raise ConfigurationError(f"Provider builder for {provider_type} must be callable")

        cls._providers[provider_type] = builder
        logger.info(f"Registered chat model provider: {provider_type}")

    @classmethod
    def create(cls, config: ProviderConfig) -> IChatModelProvider:
        """Create the provider named by ``config.provider_type``.

        Raises:
            ConfigurationError: If the type is unknown or the provider fails to build.
        """
        provider_type = getattr(config.provider_type, "value", config.provider_type)

        if provider_type not in cls._providers:
            raise ConfigurationError(
                f"Unknown provider type: {provider_type}. "
                f"Available providers: {cls.get_available_providers()}"
            )

        try:
            logger.info(f"Creating {provider_type} provider instance")
            provider = cls._providers[provider_type](config)
        except Exception as e:
            logger.error(f"Failed to create {provider_type} provider: {e}")
            raise ConfigurationError(f"Failed to initialize {provider_type} provider: {str(e)}") from e

        if not isinstance(provider, IChatModelProvider):
            raise ConfigurationError(f"Provider {provider_type} does not implement IChatModelProvider")
        return provider

    @classmethod
    def get_available_providers(cls) -> List[str]:
        return list(cls._providers.keys())
