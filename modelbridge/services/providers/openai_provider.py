"""OpenAI-compatible provider implementation."""

import base64
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from modelbridge.config.models import ProviderConfig
from modelbridge.models.interfaces import (
    CancellationToken,
    ChatMessage,
    ChatModelError,
    ChatModelErrorCode,
    ChatResponseStream,
    DataPart,
    IChatModelHandle,
    IChatModelProvider,
    RequestOptions,
    TextPart,
)
from .error_handler import ErrorContext, handle_provider_errors


logger = logging.getLogger(__name__)

CONTEXT_LENGTH_FIELDS = ("context_length", "context_window", "max_input_tokens")
OUTPUT_LENGTH_FIELDS = ("max_output_tokens", "max_completion_tokens")


def map_openai_error(error: Exception) -> ChatModelError:
    """Classify an OpenAI SDK exception as a typed provider error."""
    if isinstance(error, ChatModelError):
        return error

    message = str(error)
    if isinstance(error, (openai.PermissionDeniedError, openai.AuthenticationError)):
        return ChatModelError(message, ChatModelErrorCode.NO_PERMISSIONS)
    if isinstance(error, openai.NotFoundError):
        return ChatModelError(message, ChatModelErrorCode.NOT_FOUND)
    if isinstance(error, openai.BadRequestError):
        code = getattr(error, "code", None) or ""
        if code == "context_length_exceeded" or "context_length_exceeded" in message:
            return ChatModelError(message, ChatModelErrorCode.CONTEXT_LENGTH_EXCEEDED)
        if code == "content_filter" or "content_filter" in message:
            return ChatModelError(message, ChatModelErrorCode.BLOCKED)
    return ChatModelError(message, ChatModelErrorCode.UNKNOWN)


def _to_openai_message(message: ChatMessage) -> Dict[str, Any]:
    parts: List[Dict[str, Any]] = []
    for part in message.content:
        if isinstance(part, TextPart):
            parts.append({"type": "text", "text": part.value})
        elif isinstance(part, DataPart):
            encoded = base64.b64encode(part.data).decode("ascii")
            parts.append({
                "type": "image_url",
                "image_url": {"url": f"data:{part.mime_type};base64,{encoded}"},
            })

    payload: Dict[str, Any] = {"role": message.role.value}
    if len(parts) == 1 and parts[0]["type"] == "text":
        payload["content"] = parts[0]["text"]
    else:
        payload["content"] = parts
    if message.name:
        payload["name"] = message.name
    return payload


class OpenAIResponseStream(ChatResponseStream):
    """Adapts an SDK completion stream to a plain fragment iterator."""

    def __init__(self, stream: Any, cancellation: Optional[CancellationToken] = None):
        self._stream = stream
        self._cancellation = cancellation

    @property
    def text(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        try:
            async for chunk in self._stream:
                if self._cancellation and self._cancellation.is_cancelled:
                    break
                if not chunk.choices:
                    continue

                choice = chunk.choices[0]
                if choice.finish_reason == "content_filter":
                    raise ChatModelError("Response blocked by content filter", ChatModelErrorCode.BLOCKED)
                if choice.delta and choice.delta.content:
                    yield choice.delta.content
        except ChatModelError:
            raise
        except openai.OpenAIError as e:
            raise map_openai_error(e) from e
        finally:
            await self._stream.close()


class OpenAIChatModelHandle(IChatModelHandle):
    """Handle to one model listed by an OpenAI-compatible endpoint."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model_id: str,
        vendor: str,
        max_input_tokens: int,
        max_output_tokens: Optional[int] = None,
        version: Optional[str] = None
    ):
        self._client = client
        self._id = model_id
        self._vendor = vendor
        self._max_input_tokens = max_input_tokens
        self._max_output_tokens = max_output_tokens
        self._version = version or model_id

    @property
    def id(self) -> str:
        return self._id

    @property
    def family(self) -> str:
        return self._id

    @property
    def vendor(self) -> str:
        return self._vendor

    @property
    def version(self) -> str:
        return self._version

    @property
    def max_input_tokens(self) -> int:
        return self._max_input_tokens

    @property
    def max_output_tokens(self) -> Optional[int]:
        return self._max_output_tokens

    async def send_request(
        self,
        messages: List[ChatMessage],
        options: Optional[RequestOptions] = None,
        cancellation: Optional[CancellationToken] = None
    ) -> ChatResponseStream:
        options = options or RequestOptions()

        kwargs: Dict[str, Any] = {}
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        if options.top_p is not None:
            kwargs["top_p"] = options.top_p
        if options.max_tokens is not None:
            kwargs["max_tokens"] = options.max_tokens
        if options.stop:
            kwargs["stop"] = options.stop
        if options.tools:
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.input_schema,
                    },
                }
                for tool in options.tools
            ]

        async with ErrorContext("send_request", "openai", {"model": self._id}, logger=logger):
            try:
                stream = await self._client.chat.completions.create(
                    model=self._id,
                    messages=[_to_openai_message(message) for message in messages],
                    stream=True,
                    **kwargs
                )
            except openai.OpenAIError as e:
                raise map_openai_error(e) from e

        return OpenAIResponseStream(stream, cancellation)


class OpenAIChatModelProvider(IChatModelProvider):
    """Provider backed by the OpenAI SDK, usable with any compatible endpoint."""

    def __init__(self, config: ProviderConfig):
        self.config = config

        # Provider calls are never retried
        self.client = AsyncOpenAI(
            api_key=config.api_key or "not-needed",
            base_url=config.base_url,
            max_retries=0
        )

        logger.info(
            "Initialized OpenAI-compatible provider",
            extra={"base_url": config.base_url or "default", "vendor": config.vendor}
        )

    @property
    def provider_name(self) -> str:
        return "openai"

    @handle_provider_errors("openai")
    async def select_chat_models(self, vendor: Optional[str] = None) -> List[IChatModelHandle]:
        if vendor is not None and vendor != self.config.vendor:
            return []

        try:
            page = await self.client.models.list()
        except openai.OpenAIError as e:
            raise map_openai_error(e) from e

        handles: List[IChatModelHandle] = []
        for model in page.data:
            extra = model.model_extra or {}
            handles.append(OpenAIChatModelHandle(
                client=self.client,
                model_id=model.id,
                vendor=self.config.vendor,
                max_input_tokens=self._first_int(extra, CONTEXT_LENGTH_FIELDS) or self.config.default_max_input_tokens,
                max_output_tokens=self._first_int(extra, OUTPUT_LENGTH_FIELDS),
                version=str(extra["version"]) if extra.get("version") else None,
            ))
        return handles

    @staticmethod
    def _first_int(values: Dict[str, Any], keys: tuple) -> Optional[int]:
        for key in keys:
            value = values.get(key)
            if isinstance(value, int) and not isinstance(value, bool) and value > 0:
                return value
        return None

    async def close(self) -> None:
        await self.client.close()
