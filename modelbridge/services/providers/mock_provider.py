"""In-memory provider with scripted models, for local development and tests."""

import asyncio
import logging
import re
from typing import AsyncIterator, Dict, List, Optional

from modelbridge.models.interfaces import (
    CancellationToken,
    ChatMessage,
    ChatModelError,
    ChatRole,
    ChatResponseStream,
    IChatModelHandle,
    IChatModelProvider,
    RequestOptions,
)


logger = logging.getLogger(__name__)


class MockResponseStream(ChatResponseStream):
    """Yields scripted fragments, optionally failing after the last one."""

    def __init__(
        self,
        fragments: List[str],
        error: Optional[ChatModelError] = None,
        delay: float = 0.0,
        cancellation: Optional[CancellationToken] = None
    ):
        self._fragments = fragments
        self._error = error
        self._delay = delay
        self._cancellation = cancellation

    @property
    def text(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        for fragment in self._fragments:
            if self._cancellation and self._cancellation.is_cancelled:
                return
            if self._delay:
                await asyncio.sleep(self._delay)
            yield fragment

        if self._error is not None:
            raise self._error


class MockChatModelHandle(IChatModelHandle):
    """A scripted model.

    Without a scripted ``reply`` the model echoes the last user message.
    ``request_error`` is raised from ``send_request``; ``stream_error`` is
    raised by the stream after all fragments were delivered.
    """

    def __init__(
        self,
        model_id: str,
        max_input_tokens: int,
        max_output_tokens: Optional[int] = None,
        vendor: str = "mock",
        family: Optional[str] = None,
        version: str = "1.0",
        reply: Optional[List[str]] = None,
        request_error: Optional[ChatModelError] = None,
        stream_error: Optional[ChatModelError] = None,
        delay: float = 0.0
    ):
        self._id = model_id
        self._family = family or model_id
        self._vendor = vendor
        self._version = version
        self._max_output_tokens = max_output_tokens
        self.limit = max_input_tokens
        self.reachable = True
        self.reply = reply
        self.request_error = request_error
        self.stream_error = stream_error
        self.delay = delay
        self.requests: List[Dict] = []

    @property
    def id(self) -> str:
        return self._id

    @property
    def family(self) -> str:
        return self._family

    @property
    def vendor(self) -> str:
        return self._vendor

    @property
    def version(self) -> str:
        return self._version

    @property
    def max_input_tokens(self) -> int:
        if not self.reachable:
            raise ChatModelError(f"Model {self._id} is unreachable")
        return self.limit

    @property
    def max_output_tokens(self) -> Optional[int]:
        return self._max_output_tokens

    async def send_request(
        self,
        messages: List[ChatMessage],
        options: Optional[RequestOptions] = None,
        cancellation: Optional[CancellationToken] = None
    ) -> ChatResponseStream:
        self.requests.append({"messages": messages, "options": options or RequestOptions()})

        if self.request_error is not None:
            raise self.request_error

        fragments = self.reply if self.reply is not None else self._echo(messages)
        return MockResponseStream(fragments, self.stream_error, self.delay, cancellation)

    @staticmethod
    def _echo(messages: List[ChatMessage]) -> List[str]:
        prompt = ""
        for message in reversed(messages):
            if message.role == ChatRole.USER:
                prompt = message.text
                break

        # Split on word boundaries, keeping the whitespace with each word
        return re.findall(r"\S+\s*", f"Echo: {prompt}")


def default_models(vendor: str = "mock") -> List[MockChatModelHandle]:
    """A small mixed pool: one model per tier when probed."""
    return [
        MockChatModelHandle("gpt-4o", 128000, 16384, vendor=vendor, family="gpt-4o"),
        MockChatModelHandle("claude-3.5-sonnet", 200000, 8192, vendor=vendor, family="claude-3.5"),
        MockChatModelHandle("gpt-3.5-turbo", 16385, 4096, vendor=vendor, family="gpt-3.5"),
        MockChatModelHandle("local-small", 8192, vendor=vendor, family="local"),
    ]


class MockChatModelProvider(IChatModelProvider):
    """Provider serving :class:`MockChatModelHandle` instances from memory."""

    def __init__(self, models: Optional[List[MockChatModelHandle]] = None, vendor: str = "mock"):
        self.models: List[MockChatModelHandle] = list(models) if models is not None else default_models(vendor)
        self.listing_error: Optional[Exception] = None
        self.list_calls = 0

        logger.info("Initialized mock provider", extra={"model_count": len(self.models)})

    @property
    def provider_name(self) -> str:
        return "mock"

    async def select_chat_models(self, vendor: Optional[str] = None) -> List[IChatModelHandle]:
        self.list_calls += 1
        if self.listing_error is not None:
            raise self.listing_error
        return [model for model in self.models if vendor is None or model.vendor == vendor]

    def add_model(self, model: MockChatModelHandle) -> None:
        self.models.append(model)

    def remove_model(self, model_id: str) -> None:
        self.models = [model for model in self.models if model.id != model_id]

    def get_model(self, model_id: str) -> Optional[MockChatModelHandle]:
        for model in self.models:
            if model.id == model_id:
                return model
        return None
