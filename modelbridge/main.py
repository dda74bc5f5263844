"""
Main FastAPI application entry point.
"""

import asyncio
import logging
import sys
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import AppConfig, ConfigSource, get_current_config
from .logging import (
    ErrorLoggingMiddleware,
    LoggingMiddleware,
    get_logger,
    log_exception,
    set_log_level,
    setup_logging,
)
from .logging.middleware import get_client_ip
from .middleware import ConcurrencyLimiter, ConcurrencyLimitMiddleware, CORSHeadersMiddleware
from .models.capabilities import ModelCapabilities
from .models.context import ServerState
from .models.errors import (
    ErrorCodes,
    InternalServerError,
    MethodNotAllowedError,
    ModelBridgeError,
    NotFoundError,
    RequestTimeoutError,
    ValidationError,
)
from .models.interfaces import IChatModelProvider
from .models.requests import ToolCall
from .services.converter import IMAGE_MIME_TYPES, create_models_response
from .services.discovery import CapabilityProber, ModelDiscoveryError, ModelPoolManager
from .services.events import EventBus, log_event
from .services.pipeline import ChatCompletionPipeline
from .services.providers import ChatModelProviderFactory
from .services.streaming import SSE_HEADERS, SSE_MEDIA_TYPE
from .services.tool_service import ToolService
from .services.validator import parse_json_body
from .tools import ToolFactory


MAX_REQUEST_BODY_BYTES = 50 * 1024 * 1024

FEATURES = {
    "dynamic_model_discovery": True,
    "multimodal_support": True,
    "function_calling": True,
    "auto_model_selection": True,
    "real_time_model_refresh": True,
}

router = APIRouter()


def _error_response(error: ModelBridgeError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_response().model_dump())


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _capability_counts(models: List[ModelCapabilities]) -> Dict[str, int]:
    return {
        "with_vision": sum(1 for model in models if model.supports_vision),
        "with_tools": sum(1 for model in models if model.supports_tools),
        "with_multimodal": sum(1 for model in models if model.supports_multimodal),
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    config: AppConfig = app.state.config_source.config
    state: ServerState = app.state.server_state
    pool_manager: ModelPoolManager = app.state.pool_manager

    # Startup
    try:
        setup_logging(
            environment=config.environment,
            log_level=config.server.log_level,
            enable_json=(config.environment.value == "production"),
            enable_logging=config.server.enable_logging,
        )
    except Exception as e:
        # Use basic logging if structured logging setup fails
        logging.basicConfig(level=logging.ERROR)
        logging.error(f"Failed to initialize logging: {e}", exc_info=e)
        raise

    logger = get_logger("main")
    logger.info(
        "Starting modelbridge",
        extra={
            "environment": config.environment.value,
            "debug_mode": config.debug,
            "provider_type": config.provider.provider_type.value,
            "api_host": config.server.host,
            "api_port": config.server.port,
            "max_concurrent_requests": config.server.max_concurrent_requests,
            "startup": True,
        }
    )

    try:
        await pool_manager.discover_all()
    except ModelDiscoveryError as e:
        # Serve with an empty pool; the refresh timer or endpoint can recover
        logger.error(f"Initial model discovery failed: {e.message}")

    pool_manager.start()
    state.is_running = True
    state.start_time = datetime.utcnow()
    state.host = config.server.host
    state.port = config.server.port

    yield

    # Shutdown
    state.is_running = False
    await pool_manager.stop()
    await app.state.provider.close()
    logger.info("Shutting down modelbridge", extra={"shutdown": True})


def create_app(
    config: Optional[AppConfig] = None,
    provider: Optional[IChatModelProvider] = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Application configuration, loaded from the environment when None
        provider: Chat model provider, built from ``config.provider`` when None

    Raises:
        ConfigurationError: If the configuration is invalid or the provider
            cannot be built.
    """
    config = config or get_current_config()
    config_source = ConfigSource(config, loader=get_current_config)

    event_bus = EventBus()
    event_bus.subscribe(log_event(get_logger("events")))

    state = ServerState(host=config.server.host, port=config.server.port)
    limiter = ConcurrencyLimiter(config.server.max_concurrent_requests, state=state)

    provider = provider or ChatModelProviderFactory.create(config.provider)
    pool_manager = ModelPoolManager(
        provider,
        prober=CapabilityProber(),
        event_bus=event_bus,
        refresh_interval=config.discovery.refresh_interval,
        health_check_interval=config.discovery.health_check_interval,
    )
    tool_service = ToolService(
        ToolFactory.create_default_registry(event_bus=event_bus, timeout=config.tools.timeout)
    )
    pipeline = ChatCompletionPipeline(
        pool_manager,
        provider,
        tool_service,
        expected_vendor=config.provider.expected_vendor,
    )

    app = FastAPI(
        title="modelbridge",
        description="OpenAI-compatible chat completion gateway over a dynamic model pool",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.config_source = config_source
    app.state.event_bus = event_bus
    app.state.server_state = state
    app.state.limiter = limiter
    app.state.provider = provider
    app.state.pool_manager = pool_manager
    app.state.tool_service = tool_service
    app.state.pipeline = pipeline

    def apply_config(old: AppConfig, new: AppConfig) -> None:
        limiter.set_limit(new.server.max_concurrent_requests)
        tool_service.registry.timeout = new.tools.timeout
        pipeline.expected_vendor = new.provider.expected_vendor
        set_log_level(new.server.log_level, new.server.enable_logging)
        if new.discovery != old.discovery:
            pool_manager.update_intervals(
                refresh_interval=new.discovery.refresh_interval,
                health_check_interval=new.discovery.health_check_interval,
            )

    config_source.subscribe(apply_config)

    # Last added runs first: CORS, logging, error logging, then the concurrency cap
    app.add_middleware(ConcurrencyLimitMiddleware, limiter=limiter)
    app.add_middleware(ErrorLoggingMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CORSHeadersMiddleware, api_version=__version__)

    _register_exception_handlers(app)
    app.include_router(router)
    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ModelBridgeError)
    async def handle_bridge_error(request: Request, exc: ModelBridgeError):
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        param = ".".join(str(part) for part in first.get("loc", ())[1:]) or None
        return _error_response(ValidationError(first.get("msg", "Invalid request"), param=param))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _error_response(NotFoundError("Endpoint not found", code=ErrorCodes.ENDPOINT_NOT_FOUND))
        if exc.status_code == 405:
            return _error_response(MethodNotAllowedError("Method not allowed", code=ErrorCodes.METHOD_NOT_ALLOWED))

        error = ModelBridgeError(str(exc.detail))
        error.status_code = exc.status_code
        return _error_response(error)


@router.post("/v1/chat/completions")
async def chat_completions(request: Request):
    """OpenAI-compatible chat completion, streaming or collected."""
    logger = get_logger("endpoints")
    pipeline: ChatCompletionPipeline = request.app.state.pipeline
    timeout = request.app.state.config_source.get("server.request_timeout", 120.0)
    request_id = _request_id(request)

    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > MAX_REQUEST_BODY_BYTES:
        raise ValidationError("Request body too large", code=ErrorCodes.REQUEST_TOO_LARGE)

    raw = await request.body()
    if len(raw) > MAX_REQUEST_BODY_BYTES:
        raise ValidationError("Request body too large", code=ErrorCodes.REQUEST_TOO_LARGE)

    body = parse_json_body(raw)

    async def handle():
        prepared = await pipeline.prepare(
            body,
            request_id,
            client_ip=get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        if prepared.context.is_streaming:
            return StreamingResponse(
                await pipeline.open_stream(prepared),
                media_type=SSE_MEDIA_TYPE,
                headers=SSE_HEADERS,
            )
        completion = await pipeline.complete(prepared)
        return JSONResponse(content=completion.model_dump(exclude_none=True))

    try:
        return await asyncio.wait_for(handle(), timeout=timeout)
    except ModelBridgeError:
        raise
    except asyncio.TimeoutError:
        logger.warning(f"Request timed out after {timeout}s", extra={"request_id": request_id})
        raise RequestTimeoutError("Request timeout", code=ErrorCodes.REQUEST_TIMEOUT)
    except Exception as e:
        log_exception(logger, "Unexpected error handling chat completion", e, extra={"request_id": request_id})
        raise InternalServerError("Internal server error", code=ErrorCodes.INTERNAL_SERVER_ERROR) from e


@router.get("/v1/models")
async def list_models(request: Request):
    """Every model in the current pool, in OpenAI list form."""
    pool_manager: ModelPoolManager = request.app.state.pool_manager
    return create_models_response(pool_manager.get_all_models()).model_dump()


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint with server counters and pool counts."""
    state: ServerState = request.app.state.server_state
    pool_manager: ModelPoolManager = request.app.state.pool_manager
    models = pool_manager.get_all_models()

    return {
        "status": "ok",
        "timestamp": datetime.utcnow().isoformat(),
        "server": {
            "running": state.is_running,
            "uptime": state.uptime,
            "requests": state.request_count,
            "errors": state.error_count,
            "active_connections": state.active_connections,
        },
        "models": {
            **pool_manager.get_pool().counts(),
            "supports_vision": sum(1 for model in models if model.supports_vision),
            "supports_tools": sum(1 for model in models if model.supports_tools),
        },
    }


@router.get("/status")
async def status(request: Request):
    """Detailed server, pool, tool and provider status."""
    logger = get_logger("endpoints")
    state: ServerState = request.app.state.server_state
    pool_manager: ModelPoolManager = request.app.state.pool_manager
    tool_service: ToolService = request.app.state.tool_service
    pipeline: ChatCompletionPipeline = request.app.state.pipeline
    provider: IChatModelProvider = request.app.state.provider

    try:
        reachable = await provider.select_chat_models(vendor=pipeline.expected_vendor)
        provider_status: Dict[str, Any] = {"available": bool(reachable), "models": len(reachable)}
    except Exception as e:
        logger.warning(f"Provider status check failed: {e}", extra={"request_id": _request_id(request)})
        provider_status = {"available": False, "models": 0, "error": str(e)}

    return {
        "server": {
            **state.model_dump(mode="json"),
            "uptime": state.uptime,
            "version": __version__,
        },
        "models": {
            **pool_manager.get_pool().counts(),
            **_capability_counts(pool_manager.get_all_models()),
            "last_updated": pool_manager.get_pool().last_updated.isoformat(),
        },
        "tools": tool_service.get_registry_stats(),
        "features": FEATURES,
        "provider": {"name": provider.provider_name, **provider_status},
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.post("/v1/models/refresh")
async def refresh_models(request: Request):
    """Run a discovery pass now."""
    logger = get_logger("endpoints")
    pool_manager: ModelPoolManager = request.app.state.pool_manager
    logger.info("Manual model refresh requested", extra={"request_id": _request_id(request)})

    try:
        model_count = await pool_manager.refresh()
    except ModelDiscoveryError as e:
        raise InternalServerError(f"Model refresh failed: {e.message}", code=ErrorCodes.DISCOVERY_FAILED) from e

    return {
        "success": True,
        "message": "Models refreshed successfully",
        "model_count": model_count,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/v1/capabilities")
async def capabilities(request: Request):
    """Server features and aggregate capabilities of the healthy pool."""
    pool = request.app.state.pool_manager.get_pool()
    healthy = [*pool.primary, *pool.secondary, *pool.fallback]

    return {
        "server": {"version": __version__, "features": FEATURES},
        "models": {
            "total": len(healthy),
            **_capability_counts(healthy),
            "max_context_tokens": max((model.max_input_tokens for model in healthy), default=0),
        },
        "supported_formats": {
            "images": sorted({extension[1:] for extension in IMAGE_MIME_TYPES}),
            "image_input": ["base64", "url", "file"],
            "functions": True,
            "tools": True,
            "streaming": True,
        },
    }


@router.get("/v1/tools")
async def list_tools(request: Request):
    """Registered tools with their definitions and counters."""
    tool_service: ToolService = request.app.state.tool_service
    return {"object": "list", "data": tool_service.list_tools()}


@router.post("/v1/tools/execute")
async def execute_tool(request: Request, tool_call: ToolCall):
    """Run one tool call. Tool failures are reported with ``success: false``."""
    tool_service: ToolService = request.app.state.tool_service
    return await tool_service.execute_tool_call(tool_call, _request_id(request))


def run() -> None:
    """Run the development server."""
    import uvicorn

    # Load configuration for development server
    try:
        dev_config = get_current_config()

        uvicorn.run(
            "modelbridge.main:create_app",
            factory=True,
            host=dev_config.server.host,
            port=dev_config.server.port,
            reload=dev_config.debug,
            log_level=dev_config.server.log_level.value.lower(),
        )
    except Exception as e:
        print(f"Failed to start server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
