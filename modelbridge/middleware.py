"""CORS and concurrency-cap middleware."""

from typing import AsyncIterator, Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.background import BackgroundTask, BackgroundTasks
from starlette.middleware.base import BaseHTTPMiddleware

from .logging.config import get_logger
from .models.context import ServerState
from .models.errors import ErrorCodes, RateLimitError


CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Requested-With",
    "Access-Control-Max-Age": "86400",
}


class CORSHeadersMiddleware(BaseHTTPMiddleware):
    """Adds permissive CORS headers to every response and answers any OPTIONS with 200."""

    def __init__(self, app, api_version: str = "1.0.0"):
        super().__init__(app)
        self.extra_headers = {
            **CORS_HEADERS,
            "X-API-Version": api_version,
            "X-Enhanced-Features": "multimodal,functions,dynamic-models",
        }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method == "OPTIONS":
            response = Response(status_code=200)
        else:
            response = await call_next(request)

        for name, value in self.extra_headers.items():
            response.headers[name] = value
        return response


class ConcurrencyLimiter:
    """Counts in-flight requests against an adjustable cap. Not a queue."""

    def __init__(self, limit: int, state: Optional[ServerState] = None):
        self.limit = limit
        self.active = 0
        self.state = state

    def try_acquire(self) -> bool:
        if self.active >= self.limit:
            return False
        self.active += 1
        self._publish()
        return True

    def release(self) -> None:
        self.active = max(0, self.active - 1)
        self._publish()

    def set_limit(self, limit: int) -> None:
        self.limit = limit

    def _publish(self) -> None:
        if self.state is not None:
            self.state.active_connections = self.active


class ConcurrencyLimitMiddleware(BaseHTTPMiddleware):
    """Rejects requests over the cap with 429 before they reach any handler.

    A streaming response keeps its slot until its body is fully sent or the
    client goes away.
    """

    def __init__(self, app, limiter: ConcurrencyLimiter):
        super().__init__(app)
        self.limiter = limiter
        self.logger = get_logger("middleware.concurrency")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.limiter.try_acquire():
            self.logger.warning(
                "Concurrency limit reached, rejecting request",
                extra={
                    "request_id": getattr(request.state, "request_id", None),
                    "active_requests": self.limiter.active,
                    "limit": self.limiter.limit,
                }
            )
            error = RateLimitError("Rate limit exceeded", code=ErrorCodes.RATE_LIMIT_EXCEEDED)
            return JSONResponse(status_code=error.status_code, content=error.to_response().model_dump())

        try:
            response = await call_next(request)
        except BaseException:
            self.limiter.release()
            raise

        release = SlotRelease(self.limiter)
        response.body_iterator = self._release_after(response.body_iterator, release)
        response.background = chain_background(response.background, release)
        return response

    async def _release_after(self, body: AsyncIterator[bytes], release: "SlotRelease") -> AsyncIterator[bytes]:
        try:
            async for chunk in body:
                yield chunk
        finally:
            release()


class SlotRelease:
    """Releases one limiter slot at most once, whichever path gets there first.

    A body generator that is never started never runs its ``finally``, so the
    response background task releases the slot as well.
    """

    def __init__(self, limiter: ConcurrencyLimiter):
        self.limiter = limiter
        self.released = False

    def __call__(self) -> None:
        if self.released:
            return
        self.released = True
        self.limiter.release()

    async def after_response(self) -> None:
        self()


def chain_background(existing: Optional[BackgroundTask], release: SlotRelease) -> BackgroundTask:
    if existing is None:
        return BackgroundTask(release.after_response)
    tasks = BackgroundTasks()
    tasks.add_task(existing)
    tasks.add_task(release.after_response)
    return tasks
