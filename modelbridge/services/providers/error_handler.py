"""Error handling utilities for chat model providers."""

import logging
import time
from functools import wraps
from typing import Any, Callable, Dict, Optional, TypeVar

from modelbridge.models.errors import (
    ErrorCodes,
    ModelBridgeError,
    NotFoundError,
    PermissionDeniedError,
    ProviderError,
    ValidationError,
)
from modelbridge.models.interfaces import ChatModelError, ChatModelErrorCode


logger = logging.getLogger(__name__)

T = TypeVar('T')


class ErrorContext:
    """Async context manager that logs a provider operation and its duration."""

    def __init__(
        self,
        operation: str,
        provider: str,
        context: Optional[Dict[str, Any]] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.operation = operation
        self.provider = provider
        self.context = context or {}
        self.logger = logger or logging.getLogger(__name__)
        self.start_time: Optional[float] = None

    @property
    def duration_ms(self) -> float:
        if self.start_time is None:
            return 0.0
        return (time.time() - self.start_time) * 1000

    async def __aenter__(self):
        self.start_time = time.time()
        self.logger.debug(f"Starting {self.operation} for provider {self.provider}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        duration_ms = round(self.duration_ms, 2)

        if exc_type is None:
            self.logger.debug(f"Completed {self.operation} for provider {self.provider} in {duration_ms}ms")
        else:
            self.logger.error(
                f"Failed {self.operation} for provider {self.provider} after {duration_ms}ms: {exc_val}",
                extra={
                    "operation": self.operation,
                    "provider": self.provider,
                    "duration_ms": duration_ms,
                    "error_type": exc_type.__name__,
                    "error_context": self.context,
                }
            )

        return False


def handle_provider_errors(provider_name: str):
    """Decorator that turns unexpected exceptions into ``ChatModelError``.

    ``ChatModelError`` raised by the wrapped coroutine passes through as-is.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            async with ErrorContext(func.__name__, provider_name):
                try:
                    return await func(*args, **kwargs)
                except ChatModelError:
                    raise
                except Exception as e:
                    raise ChatModelError(
                        f"Unexpected error in {func.__name__}: {str(e)}",
                        ChatModelErrorCode.UNKNOWN
                    ) from e

        return wrapper
    return decorator


def to_bridge_error(exc: BaseException, provider: Optional[str] = None) -> ModelBridgeError:
    """Map a provider failure onto the client-facing error hierarchy.

    NoPermissions and Blocked become 403, NotFound 404, ContextLengthExceeded
    400. Everything else, typed or not, is a 502.
    """
    if isinstance(exc, ModelBridgeError):
        return exc

    if isinstance(exc, ChatModelError):
        if exc.code == ChatModelErrorCode.NO_PERMISSIONS:
            return PermissionDeniedError(
                f"Provider permission denied: {exc.message}",
                code=ErrorCodes.PROVIDER_PERMISSION_DENIED,
            )
        if exc.code == ChatModelErrorCode.BLOCKED:
            return PermissionDeniedError(
                f"Request blocked by provider: {exc.message}",
                code=ErrorCodes.PROVIDER_CONTENT_BLOCKED,
            )
        if exc.code == ChatModelErrorCode.NOT_FOUND:
            return NotFoundError(
                f"Model not found: {exc.message}",
                code=ErrorCodes.PROVIDER_MODEL_NOT_FOUND,
            )
        if exc.code == ChatModelErrorCode.CONTEXT_LENGTH_EXCEEDED:
            return ValidationError(
                f"Context length exceeded: {exc.message}",
                param="messages",
                code=ErrorCodes.CONTEXT_LENGTH_EXCEEDED,
            )
        return ProviderError(f"Provider error: {exc.message}", provider=provider)

    return ProviderError(f"Provider error: {str(exc)}", provider=provider)
