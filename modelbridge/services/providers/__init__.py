"""Chat model provider implementations and factory."""

from .error_handler import ErrorContext, handle_provider_errors, to_bridge_error
from .factory import ChatModelProviderFactory
from .mock_provider import MockChatModelHandle, MockChatModelProvider, MockResponseStream
from .openai_provider import OpenAIChatModelHandle, OpenAIChatModelProvider, map_openai_error

__all__ = [
    "ChatModelProviderFactory",
    "ErrorContext",
    "handle_provider_errors",
    "to_bridge_error",
    "MockChatModelHandle",
    "MockChatModelProvider",
    "MockResponseStream",
    "OpenAIChatModelHandle",
    "OpenAIChatModelProvider",
    "map_openai_error",
]
