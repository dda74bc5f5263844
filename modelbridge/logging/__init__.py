"""Logging module for structured logging and monitoring."""

from .config import get_logger, log_exception, log_performance, set_log_level, setup_logging
from .formatters import JSONFormatter, StructuredFormatter
from .middleware import ErrorLoggingMiddleware, LoggingMiddleware
from .utils import RequestLogger, bind_request_logger, log_function_call

__all__ = [
    "setup_logging",
    "set_log_level",
    "get_logger",
    "log_exception",
    "log_performance",
    "LoggingMiddleware",
    "ErrorLoggingMiddleware",
    "StructuredFormatter",
    "JSONFormatter",
    "RequestLogger",
    "bind_request_logger",
    "log_function_call",
]
