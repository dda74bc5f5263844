"""Logging configuration and setup."""

import logging
import logging.config
import os
import sys
from typing import Any, Dict, Optional

from modelbridge.config.models import Environment, LogLevel


LOGGER_NAMESPACE = "modelbridge"


def get_logging_config(
    environment: Environment,
    log_level: LogLevel,
    enable_json: bool = False
) -> Dict[str, Any]:
    """Get logging configuration based on environment and settings."""

    if environment == Environment.PRODUCTION or enable_json:
        formatter_class = "modelbridge.logging.formatters.JSONFormatter"
    else:
        formatter_class = "modelbridge.logging.formatters.StructuredFormatter"

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": formatter_class,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level.value,
                "formatter": "structured",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            LOGGER_NAMESPACE: {
                "level": log_level.value,
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn": {
                "level": log_level.value,
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn.access": {
                "level": log_level.value,
                "handlers": ["console"],
                "propagate": False,
            },
            "fastapi": {
                "level": log_level.value,
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {
            "level": log_level.value,
            "handlers": ["console"],
        },
    }

    if environment == Environment.PRODUCTION:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level.value,
            "formatter": "structured",
            "filename": "logs/modelbridge.log",
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
        }

        for logger_config in config["loggers"].values():
            logger_config["handlers"].append("file")
        config["root"]["handlers"].append("file")

    return config


def effective_log_level(log_level: LogLevel, enable_logging: bool = True) -> LogLevel:
    """Only errors are logged when logging is switched off."""
    return log_level if enable_logging else LogLevel.ERROR


def setup_logging(
    environment: Environment = Environment.DEVELOPMENT,
    log_level: LogLevel = LogLevel.INFO,
    enable_json: bool = False,
    enable_logging: bool = True
) -> None:
    """Setup logging configuration for the application."""

    if environment == Environment.PRODUCTION:
        os.makedirs("logs", exist_ok=True)

    level = effective_log_level(log_level, enable_logging)
    config = get_logging_config(environment, level, enable_json)
    logging.config.dictConfig(config)

    logger = logging.getLogger(f"{LOGGER_NAMESPACE}.logging")
    logger.info(
        "Logging configured",
        extra={
            "environment": environment.value,
            "log_level": level.value,
            "json_format": enable_json,
        }
    )


def set_log_level(log_level: LogLevel, enable_logging: bool = True) -> None:
    """Change the level of the application loggers and their handlers at runtime."""
    level = effective_log_level(log_level, enable_logging)
    app_logger = logging.getLogger(LOGGER_NAMESPACE)
    app_logger.setLevel(level.value)
    for handler in app_logger.handlers:
        handler.setLevel(level.value)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


def log_exception(
    logger: logging.Logger,
    message: str,
    exc_info: Optional[BaseException] = None,
    extra: Optional[Dict[str, Any]] = None
) -> None:
    """Log an exception with detailed context."""
    log_extra = dict(extra or {})

    if exc_info:
        log_extra.update({
            "exception_type": type(exc_info).__name__,
            "exception_message": str(exc_info),
        })

    logger.error(message, extra=log_extra, exc_info=exc_info)


def log_performance(
    logger: logging.Logger,
    operation: str,
    duration: float,
    extra: Optional[Dict[str, Any]] = None
) -> None:
    """Log performance metrics for an operation."""
    log_extra = dict(extra or {})
    log_extra.update({
        "operation": operation,
        "duration_ms": round(duration * 1000, 2),
        "performance": True,
    })

    logger.info(f"Operation completed: {operation}", extra=log_extra)
