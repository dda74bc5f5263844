"""Logging utilities and helper functions."""

import asyncio
import functools
import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar

from .config import get_logger

F = TypeVar('F', bound=Callable[..., Any])


class RequestLogger(logging.LoggerAdapter):
    """Logger adapter that stamps every record with request-scoped fields.

    Fields passed in ``extra`` at the call site win over the bound context.
    """

    def __init__(self, logger: logging.Logger, request_id: str, **context: Any):
        super().__init__(logger, {"request_id": request_id, **context})

    @property
    def request_id(self) -> str:
        return self.extra["request_id"]

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def bind(self, **context: Any) -> "RequestLogger":
        """Return a child adapter with additional bound fields."""
        merged = {**self.extra, **context}
        request_id = merged.pop("request_id")
        return RequestLogger(self.logger, request_id, **merged)


def bind_request_logger(logger: logging.Logger, request_id: str, **context: Any) -> RequestLogger:
    """Scope a component logger to one request."""
    if isinstance(logger, logging.LoggerAdapter):
        logger = logger.logger
    return RequestLogger(logger, request_id, **context)


def log_function_call(
    logger_name: Optional[str] = None,
    log_args: bool = False,
    log_result: bool = False,
    log_performance: bool = True
) -> Callable[[F], F]:
    """Decorator to log coroutine calls with optional arguments and results."""

    def decorator(func: F) -> F:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError(f"log_function_call expects a coroutine function, got {func.__name__}")

        logger = get_logger(logger_name or func.__module__.split('.')[-1])

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.time()

            log_extra: Dict[str, Any] = {"function": func.__name__}
            if log_args:
                log_extra.update({
                    "call_args": str(args[1:]) if len(args) > 1 else None,
                    "call_kwargs": kwargs if kwargs else None,
                })

            logger.debug(f"Calling function: {func.__name__}", extra=log_extra)

            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                error_extra = dict(log_extra)
                error_extra.update({
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                    "exception_type": type(exc).__name__,
                    "exception_message": str(exc),
                })
                logger.error(f"Function failed: {func.__name__}", extra=error_extra, exc_info=exc)
                raise

            completion_extra = dict(log_extra)
            if log_performance:
                completion_extra["duration_ms"] = round((time.time() - start_time) * 1000, 2)
            if log_result:
                completion_extra["result"] = str(result)

            logger.debug(f"Function completed: {func.__name__}", extra=completion_extra)
            return result

        return wrapper

    return decorator
