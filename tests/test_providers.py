"""Tests for provider adapters, provider error mapping and the event bus."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import openai
import pytest

from modelbridge.config import ConfigurationError, ProviderConfig, ProviderType
from modelbridge.models.errors import (
    ErrorCodes,
    NotFoundError,
    PermissionDeniedError,
    ProviderError,
    ValidationError,
)
from modelbridge.models.events import ToolRegistered
from modelbridge.models.interfaces import (
    CancellationToken,
    ChatMessage,
    ChatModelError,
    ChatModelErrorCode,
    ChatRole,
    TextPart,
)
from modelbridge.services.events import EventBus
from modelbridge.services.providers import (
    ChatModelProviderFactory,
    MockChatModelProvider,
    OpenAIChatModelProvider,
    handle_provider_errors,
    map_openai_error,
    to_bridge_error,
)
from modelbridge.services.providers.openai_provider import OpenAIResponseStream


def status_error(error_class: type, status: int, body=None) -> Exception:
    request = httpx.Request("POST", "https://api.example.com/v1/chat/completions")
    response = httpx.Response(status, request=request)
    return error_class("upstream said no", response=response, body=body)


def chunk(content=None, finish_reason=None):
    delta = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)])


class FakeSdkStream:
    """Stands in for the SDK's async completion stream."""

    def __init__(self, chunks, error=None):
        self.chunks = chunks
        self.error = error
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for item in self.chunks:
            yield item
        if self.error is not None:
            raise self.error

    async def close(self):
        self.closed = True


class TestToBridgeError:
    """Tests for mapping provider errors to client errors."""

    @pytest.mark.parametrize(
        "code, error_class, status, error_code",
        [
            (ChatModelErrorCode.NO_PERMISSIONS, PermissionDeniedError, 403, ErrorCodes.PROVIDER_PERMISSION_DENIED),
            (ChatModelErrorCode.BLOCKED, PermissionDeniedError, 403, ErrorCodes.PROVIDER_CONTENT_BLOCKED),
            (ChatModelErrorCode.NOT_FOUND, NotFoundError, 404, ErrorCodes.PROVIDER_MODEL_NOT_FOUND),
            (ChatModelErrorCode.CONTEXT_LENGTH_EXCEEDED, ValidationError, 400, ErrorCodes.CONTEXT_LENGTH_EXCEEDED),
            (ChatModelErrorCode.UNKNOWN, ProviderError, 502, ErrorCodes.PROVIDER_ERROR),
        ],
    )
    def test_typed_errors(self, code, error_class, status: int, error_code: str) -> None:
        error = to_bridge_error(ChatModelError("upstream", code), provider="mock")

        assert isinstance(error, error_class)
        assert error.status_code == status
        assert error.code == error_code
        assert "upstream" in error.message

    def test_untyped_error_is_502(self) -> None:
        error = to_bridge_error(RuntimeError("socket closed"), provider="mock")

        assert isinstance(error, ProviderError)
        assert error.status_code == 502
        assert error.details["provider"] == "mock"

    def test_bridge_errors_pass_through(self) -> None:
        original = NotFoundError("gone")
        assert to_bridge_error(original) is original


class TestMapOpenAIError:
    """Tests for classifying OpenAI SDK exceptions."""

    def test_permission_and_auth(self) -> None:
        assert map_openai_error(status_error(openai.PermissionDeniedError, 403)).code == ChatModelErrorCode.NO_PERMISSIONS
        assert map_openai_error(status_error(openai.AuthenticationError, 401)).code == ChatModelErrorCode.NO_PERMISSIONS

    def test_not_found(self) -> None:
        assert map_openai_error(status_error(openai.NotFoundError, 404)).code == ChatModelErrorCode.NOT_FOUND

    def test_bad_request_codes(self) -> None:
        context = status_error(openai.BadRequestError, 400, body={"code": "context_length_exceeded"})
        blocked = status_error(openai.BadRequestError, 400, body={"code": "content_filter"})
        other = status_error(openai.BadRequestError, 400, body={"code": "invalid_value"})

        assert map_openai_error(context).code == ChatModelErrorCode.CONTEXT_LENGTH_EXCEEDED
        assert map_openai_error(blocked).code == ChatModelErrorCode.BLOCKED
        assert map_openai_error(other).code == ChatModelErrorCode.UNKNOWN

    def test_server_error(self) -> None:
        assert map_openai_error(status_error(openai.InternalServerError, 500)).code == ChatModelErrorCode.UNKNOWN


class TestOpenAIProvider:
    """Tests for the OpenAI-compatible adapter without network access."""

    @pytest.fixture
    def provider(self) -> OpenAIChatModelProvider:
        return OpenAIChatModelProvider(ProviderConfig(api_key="sk-test-key-123456", vendor="openai"))

    async def test_listing_reads_context_sizes(self, provider: OpenAIChatModelProvider) -> None:
        page = SimpleNamespace(data=[
            SimpleNamespace(id="gpt-4o", model_extra={"context_window": 128000, "max_output_tokens": 16384}),
            SimpleNamespace(id="local", model_extra={}),
        ])
        provider.client.models.list = AsyncMock(return_value=page)

        handles = await provider.select_chat_models()

        assert [handle.id for handle in handles] == ["gpt-4o", "local"]
        assert handles[0].max_input_tokens == 128000
        assert handles[0].max_output_tokens == 16384
        assert handles[1].max_input_tokens == 128000
        assert handles[1].max_output_tokens is None
        assert all(handle.vendor == "openai" for handle in handles)

    async def test_other_vendor_lists_nothing(self, provider: OpenAIChatModelProvider) -> None:
        provider.client.models.list = AsyncMock()

        assert await provider.select_chat_models(vendor="copilot") == []
        provider.client.models.list.assert_not_called()

    async def test_listing_failure_is_typed(self, provider: OpenAIChatModelProvider) -> None:
        provider.client.models.list = AsyncMock(side_effect=status_error(openai.AuthenticationError, 401))

        with pytest.raises(ChatModelError) as exc_info:
            await provider.select_chat_models()

        assert exc_info.value.code == ChatModelErrorCode.NO_PERMISSIONS

    async def test_stream_yields_content(self) -> None:
        sdk_stream = FakeSdkStream([chunk("Hel"), chunk(None), chunk("lo"), chunk(None, "stop")])

        fragments = [text async for text in OpenAIResponseStream(sdk_stream).text]

        assert fragments == ["Hel", "lo"]
        assert sdk_stream.closed

    async def test_stream_content_filter(self) -> None:
        sdk_stream = FakeSdkStream([chunk("a"), chunk(None, "content_filter")])

        with pytest.raises(ChatModelError) as exc_info:
            [text async for text in OpenAIResponseStream(sdk_stream).text]

        assert exc_info.value.code == ChatModelErrorCode.BLOCKED

    async def test_stream_stops_when_cancelled(self) -> None:
        token = CancellationToken()
        token.cancel()
        sdk_stream = FakeSdkStream([chunk("a"), chunk("b")])

        fragments = [text async for text in OpenAIResponseStream(sdk_stream, token).text]

        assert fragments == []
        assert sdk_stream.closed


class TestMockProvider:
    """Tests for the in-memory provider."""

    async def test_vendor_filter(self) -> None:
        provider = MockChatModelProvider(vendor="mock")

        assert len(await provider.select_chat_models()) == 4
        assert len(await provider.select_chat_models(vendor="mock")) == 4
        assert await provider.select_chat_models(vendor="other") == []

    async def test_echo_reply(self) -> None:
        provider = MockChatModelProvider()
        message = ChatMessage(role=ChatRole.USER, content=[TextPart(value="Hi there")])
        stream = await provider.get_model("gpt-4o").send_request([message])

        assert "".join([text async for text in stream.text]) == "Echo: Hi there"


class TestProviderFactory:
    """Tests for ChatModelProviderFactory."""

    def test_creates_mock(self) -> None:
        provider = ChatModelProviderFactory.create(ProviderConfig(provider_type=ProviderType.MOCK, vendor="local"))

        assert isinstance(provider, MockChatModelProvider)
        assert provider.models[0].vendor == "local"

    def test_unknown_type(self) -> None:
        config = ProviderConfig.model_construct(provider_type="carrier-pigeon")

        with pytest.raises(ConfigurationError) as exc_info:
            ChatModelProviderFactory.create(config)

        assert "Unknown provider type" in str(exc_info.value)

    def test_builder_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def broken(config):
            raise RuntimeError("no sdk")

        monkeypatch.setitem(ChatModelProviderFactory._providers, "broken", broken)

        with pytest.raises(ConfigurationError):
            ChatModelProviderFactory.create(ProviderConfig.model_construct(provider_type="broken"))

    def test_register_requires_callable(self) -> None:
        with pytest.raises(ConfigurationError):
            ChatModelProviderFactory.register_provider("bad", "not callable")


class TestHandleProviderErrors:
    """Tests for the provider error decorator."""

    async def test_wraps_unexpected_errors(self) -> None:
        @handle_provider_errors("test")
        async def failing():
            raise ValueError("bad payload")

        with pytest.raises(ChatModelError) as exc_info:
            await failing()

        assert exc_info.value.code == ChatModelErrorCode.UNKNOWN
        assert "bad payload" in exc_info.value.message

    async def test_typed_errors_pass_through(self) -> None:
        original = ChatModelError("gone", ChatModelErrorCode.NOT_FOUND)

        @handle_provider_errors("test")
        async def failing():
            raise original

        with pytest.raises(ChatModelError) as exc_info:
            await failing()

        assert exc_info.value is original


class TestEventBus:
    """Tests for EventBus."""

    def test_failing_listener_is_isolated(self) -> None:
        bus = EventBus()
        seen = []

        def broken(event):
            raise RuntimeError("listener bug")

        bus.subscribe(broken)
        bus.subscribe(seen.append)

        bus.publish(ToolRegistered(tool_id="calculator"))

        assert [event.tool_id for event in seen] == ["calculator"]

    def test_unsubscribe(self) -> None:
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe(seen.append)

        unsubscribe()
        bus.publish(ToolRegistered(tool_id="calculator"))

        assert seen == []
        assert bus.listener_count == 0
