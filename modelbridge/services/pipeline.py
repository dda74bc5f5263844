"""End-to-end handling of one chat completion request."""

import logging
from typing import Any, AsyncIterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..logging.config import get_logger
from ..logging.utils import RequestLogger, bind_request_logger
from ..models.capabilities import ModelCapabilities
from ..models.context import EnhancedRequestContext
from ..models.errors import (
    AuthenticationError,
    ErrorCodes,
    ServiceUnavailableError,
    ValidationError,
)
from ..models.interfaces import (
    CancellationToken,
    ChatMessage,
    ChatResponseStream,
    IChatModelProvider,
    RequestOptions,
)
from ..models.requests import ChatCompletionRequest
from ..models.responses import ChatCompletionResponse
from .converter import (
    MessageConverter,
    build_criteria,
    build_request_context,
    create_completion_response,
    estimate_tokens,
)
from .discovery.pool_manager import ModelPoolManager
from .discovery.selector import ModelSelector
from .providers.error_handler import to_bridge_error
from .streaming import StreamingTranslator
from .tool_service import ToolService
from .validator import RequestValidator, check_max_tokens


def check_context_budget(context: EnhancedRequestContext, model: ModelCapabilities) -> None:
    """Reject a request whose estimated prompt does not fit the selected model."""
    if context.estimated_tokens > model.max_input_tokens:
        raise ValidationError(
            f"Request exceeds model context limit ({context.estimated_tokens} > {model.max_input_tokens} tokens)",
            param="messages",
            code=ErrorCodes.CONTEXT_LENGTH_EXCEEDED,
        )


class PreparedRequest(BaseModel):
    """A request that passed every check up to dispatch."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    request: ChatCompletionRequest
    context: EnhancedRequestContext
    model: ModelCapabilities
    messages: List[ChatMessage]
    options: RequestOptions
    cancellation: CancellationToken = Field(default_factory=CancellationToken)
    logger: Any = Field(default=None, exclude=True, repr=False)


class ChatCompletionPipeline:
    """Validate, route, convert and dispatch chat completion requests.

    Everything up to and including dispatch happens before any response
    bytes are sent, so every failure there becomes a structured error.
    Once a stream has started, failures are logged and reported in-band.
    """

    def __init__(
        self,
        pool_manager: ModelPoolManager,
        provider: IChatModelProvider,
        tool_service: ToolService,
        selector: Optional[ModelSelector] = None,
        converter: Optional[MessageConverter] = None,
        expected_vendor: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.pool_manager = pool_manager
        self.provider = provider
        self.tool_service = tool_service
        self.selector = selector or ModelSelector(pool_manager.get_pool)
        self.converter = converter or MessageConverter()
        self.validator = RequestValidator(model_lookup=pool_manager.get_model)
        self.expected_vendor = expected_vendor
        self.logger = logger or get_logger("pipeline")

    async def prepare(
        self,
        body: Any,
        request_id: str,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> PreparedRequest:
        """Run every stage before dispatch.

        Raises:
            ModelBridgeError: On the first failed stage.
        """
        log = bind_request_logger(self.logger, request_id)

        request = self.validator.validate(body)

        context = build_request_context(request_id, request, client_ip, user_agent)
        criteria = build_criteria(context, request)
        log.debug(
            "Request context built",
            extra={
                "requested_model": context.model,
                "estimated_tokens": context.estimated_tokens,
                "has_images": context.has_images,
                "has_functions": context.has_functions,
            }
        )

        model = self.selector.select(criteria)
        if model is None:
            raise ServiceUnavailableError(
                "No suitable model available for request requirements",
                code=ErrorCodes.NO_SUITABLE_MODEL,
            )
        context.bind_model(model)
        log = log.bind(model_id=model.id)
        if request.max_tokens is not None:
            check_max_tokens(request.max_tokens, model)

        await self._check_access(log)

        check_context_budget(context, model)
        messages = await self.converter.convert(request.messages, model)

        options = RequestOptions(
            tools=self.tool_service.prepare_tools(model, request.requested_functions()),
            temperature=request.temperature,
            top_p=request.top_p,
            max_tokens=request.max_tokens,
            stop=request.stop_sequences,
            justification=f"modelbridge request {request_id}",
        )

        log.info(
            f"Routing request to {model.id}",
            extra={"streaming": context.is_streaming, "tool_count": len(options.tools)}
        )
        return PreparedRequest(
            request=request,
            context=context,
            model=model,
            messages=messages,
            options=options,
            logger=log,
        )

    async def _check_access(self, log: RequestLogger) -> None:
        try:
            reachable = await self.provider.select_chat_models(vendor=self.expected_vendor)
        except Exception as e:
            log.warning(f"Provider access check failed: {e}")
            raise AuthenticationError(
                f"Provider access required: {e}",
                code=ErrorCodes.PROVIDER_ACCESS_REQUIRED,
            ) from e

        if not reachable:
            raise AuthenticationError(
                "Provider access required. No chat models are currently available"
                + (f" for vendor {self.expected_vendor}" if self.expected_vendor else ""),
                code=ErrorCodes.PROVIDER_ACCESS_REQUIRED,
            )

    async def dispatch(self, prepared: PreparedRequest) -> ChatResponseStream:
        """Send the converted request to the selected model.

        Raises:
            ModelBridgeError: The provider's refusal, mapped to a client error.
        """
        try:
            return await prepared.model.handle.send_request(
                prepared.messages, prepared.options, prepared.cancellation
            )
        except Exception as e:
            self._record(prepared, success=False)
            error = to_bridge_error(e, self.provider.provider_name)
            prepared.logger.warning(
                f"Provider refused request: {error.message}",
                extra={"status_code": error.status_code}
            )
            raise error from e

    async def complete(self, prepared: PreparedRequest) -> ChatCompletionResponse:
        """Dispatch and collect the whole reply into one completion."""
        response = await self.dispatch(prepared)

        fragments = []
        try:
            async for fragment in response.text:
                fragments.append(fragment)
        except Exception as e:
            self._record(prepared, success=False)
            raise to_bridge_error(e, self.provider.provider_name) from e

        content = "".join(fragments)
        self._record(prepared, success=True)

        completion = create_completion_response(content, prepared.context, prepared.model)
        prepared.logger.info(
            "Completion collected",
            extra={
                "completion_tokens": estimate_tokens(content),
                "duration_ms": round(prepared.context.elapsed_ms, 2),
            }
        )
        return completion

    async def open_stream(self, prepared: PreparedRequest) -> AsyncIterator[str]:
        """Dispatch, then return the SSE body for the reply."""
        response = await self.dispatch(prepared)
        return self._stream_body(prepared, response)

    async def _stream_body(self, prepared: PreparedRequest, response: ChatResponseStream) -> AsyncIterator[str]:
        translator = StreamingTranslator(prepared.context, prepared.model, logger=prepared.logger)
        finished = False
        try:
            async for event in translator.translate(response.text):
                yield event
            finished = True
        finally:
            if not finished:
                # Client went away; stop the provider from producing more
                prepared.cancellation.cancel()
                prepared.logger.info("Client disconnected, stream cancelled")
            self._record(prepared, success=finished and not translator.failed)
            prepared.logger.info(
                "Stream finished",
                extra={
                    "chunk_count": translator.chunk_count,
                    "duration_ms": round(prepared.context.elapsed_ms, 2),
                }
            )

    def _record(self, prepared: PreparedRequest, success: bool) -> None:
        self.pool_manager.record_request(prepared.model.id, prepared.context.elapsed_ms, success)
