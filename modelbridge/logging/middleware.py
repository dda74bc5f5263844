"""Logging middleware for FastAPI request/response logging."""

import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .config import get_logger


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP address from request headers."""
    # Check for forwarded headers first (for reverse proxies)
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        # Take the first IP in the chain
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return None


def _server_state(request: Request):
    return getattr(request.app.state, "server_state", None)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Assigns request ids, counts requests, and logs each request's outcome."""

    def __init__(self, app, logger_name: str = "middleware"):
        super().__init__(app)
        self.logger = get_logger(logger_name)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        method = request.method
        path = request.url.path
        user_agent = request.headers.get("user-agent")
        client_ip = get_client_ip(request)

        state = _server_state(request)
        if state is not None:
            state.request_count += 1

        self.logger.info(
            f"Incoming request: {method} {path}",
            extra={
                "request_id": request_id,
                "method": method,
                "path": path,
                "query_params": str(request.query_params) if request.query_params else None,
                "user_agent": user_agent,
                "client_ip": client_ip,
                "request_type": "incoming",
            }
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            if state is not None:
                state.error_count += 1

            self.logger.error(
                f"Request failed: {method} {path}",
                extra={
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                    "client_ip": client_ip,
                    "request_type": "failed",
                    "exception_type": type(exc).__name__,
                    "exception_message": str(exc),
                },
                exc_info=exc
            )
            raise

        self.logger.info(
            f"Request completed: {method} {path} - {response.status_code}",
            extra={
                "request_id": request_id,
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": round((time.time() - start_time) * 1000, 2),
                "client_ip": client_ip,
                "request_type": "completed",
            }
        )

        # Add request ID to response headers for tracing
        response.headers["X-Request-ID"] = request_id
        return response


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Logs error responses and counts them on the server state."""

    def __init__(self, app, logger_name: str = "errors"):
        super().__init__(app)
        self.logger = get_logger(logger_name)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        if response.status_code >= 400:
            state = _server_state(request)
            if state is not None:
                state.error_count += 1

            log_level = "warning" if response.status_code < 500 else "error"
            getattr(self.logger, log_level)(
                f"HTTP error response: {response.status_code}",
                extra={
                    "request_id": getattr(request.state, "request_id", None),
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "client_ip": get_client_ip(request),
                }
            )

        return response
