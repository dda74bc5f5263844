"""Model pool manager: discovery, tiering, health checks and metrics."""

import asyncio
import logging
import time
from datetime import datetime
from typing import Dict, List, Optional

from modelbridge.logging.config import get_logger, log_performance
from modelbridge.logging.utils import log_function_call
from modelbridge.models.capabilities import ModelCapabilities, ModelMetrics, ModelPool
from modelbridge.models.events import HealthChanged, ModelDiscovered, PoolRefreshed
from modelbridge.models.interfaces import IChatModelProvider
from modelbridge.services.events import EventBus
from .prober import CapabilityProber, ModelProbeError
from .selector import capability_score


DEFAULT_REFRESH_INTERVAL = 300.0
DEFAULT_HEALTH_CHECK_INTERVAL = 600.0
LARGE_CONTEXT_THRESHOLD = 64000


class ModelDiscoveryError(Exception):
    """Raised when the provider cannot enumerate its models."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


def classify_tier(model: ModelCapabilities) -> str:
    """Name of the pool tier a probed model belongs to."""
    if not model.is_healthy:
        return "unhealthy"
    if model.supports_vision and model.supports_tools:
        return "primary"
    if model.supports_tools or model.context_window > LARGE_CONTEXT_THRESHOLD:
        return "secondary"
    return "fallback"


def build_pool(models: List[ModelCapabilities]) -> ModelPool:
    """Partition models into tiers, each ranked by capability score."""
    tiers: Dict[str, List[ModelCapabilities]] = {
        "primary": [],
        "secondary": [],
        "fallback": [],
        "unhealthy": [],
    }
    for model in models:
        tiers[classify_tier(model)].append(model)

    for tier in tiers.values():
        tier.sort(key=capability_score, reverse=True)

    return ModelPool(**tiers, last_updated=datetime.utcnow())


class ModelPoolManager:
    """Owns the probed model pool.

    The pool is rebuilt from scratch on every discovery pass and published
    with a single assignment, so readers always see a complete snapshot.
    Health checks only flip ``is_healthy`` on the live records; a model
    changes tier on the next discovery pass.
    """

    def __init__(
        self,
        provider: IChatModelProvider,
        prober: Optional[CapabilityProber] = None,
        event_bus: Optional[EventBus] = None,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        health_check_interval: float = DEFAULT_HEALTH_CHECK_INTERVAL,
        logger: Optional[logging.Logger] = None
    ):
        self.provider = provider
        self.logger = logger or get_logger("discovery")
        self.prober = prober or CapabilityProber()
        self.event_bus = event_bus or EventBus()
        self.refresh_interval = refresh_interval
        self.health_check_interval = health_check_interval

        self._pool = ModelPool()
        self._metrics: Dict[str, ModelMetrics] = {}
        self._refresh_task: Optional[asyncio.Task] = None
        self._health_task: Optional[asyncio.Task] = None

    @property
    def pool(self) -> ModelPool:
        return self._pool

    def get_pool(self) -> ModelPool:
        return self._pool

    def get_all_models(self) -> List[ModelCapabilities]:
        return self._pool.all_models()

    def get_model(self, model_id: str) -> Optional[ModelCapabilities]:
        for model in self._pool.all_models():
            if model.id == model_id:
                return model
        return None

    async def discover_all(self) -> List[ModelCapabilities]:
        """Probe every model the provider exposes and swap in a new pool.

        Raises:
            ModelDiscoveryError: If the provider cannot list its models.
        """
        start_time = time.time()

        try:
            handles = await self.provider.select_chat_models()
        except Exception as e:
            self.logger.error(f"Model enumeration failed: {e}", exc_info=e)
            raise ModelDiscoveryError(f"Failed to enumerate models: {e}", cause=e) from e

        models: List[ModelCapabilities] = []
        for handle in handles:
            try:
                models.append(await self.prober.probe(handle))
            except ModelProbeError as e:
                self.logger.warning(f"Skipping model: {e.message}")
            except Exception as e:
                self.logger.error(f"Unexpected error probing model: {e}", exc_info=e)

        pool = build_pool(models)
        self._pool = pool

        for tier_name in ("primary", "secondary", "fallback", "unhealthy"):
            for model in getattr(pool, tier_name):
                self.event_bus.publish(ModelDiscovered(model_id=model.id, tier=tier_name))

        counts = pool.counts()
        self.event_bus.publish(PoolRefreshed(**counts))

        log_performance(self.logger, "model_discovery", time.time() - start_time, extra=counts)
        return models

    @log_function_call("discovery")
    async def refresh(self) -> int:
        """Run a discovery pass now and return the number of pooled models."""
        models = await self.discover_all()
        return len(models)

    async def check_health(self) -> None:
        """Re-read each pooled model's input limit and flip health on change."""
        for model in self._pool.all_models():
            reason: Optional[str] = None
            try:
                limit = model.handle.max_input_tokens if model.handle is not None else 0
                healthy = int(limit) > 0
                if not healthy:
                    reason = f"max_input_tokens is {limit}"
            except Exception as e:
                healthy = False
                reason = f"handle unreachable: {e}"

            if healthy == model.is_healthy:
                continue

            model.is_healthy = healthy
            model.last_tested_at = datetime.utcnow()
            self.logger.warning(
                f"Model {model.id} is now {'healthy' if healthy else 'unhealthy'}",
                extra={"model_id": model.id, "reason": reason}
            )
            self.event_bus.publish(HealthChanged(model_id=model.id, is_healthy=healthy, reason=reason))

    def record_request(self, model_id: str, duration_ms: float, success: bool) -> None:
        """Sample the outcome of one request served by ``model_id``."""
        metrics = self._metrics.setdefault(model_id, ModelMetrics())
        metrics.record(duration_ms, success)

        model = self.get_model(model_id)
        if model is not None:
            model.response_time = duration_ms
            model.success_rate = metrics.success_rate

    def get_metrics(self, model_id: Optional[str] = None):
        if model_id is not None:
            return self._metrics.get(model_id)
        return dict(self._metrics)

    def start(self) -> None:
        """Start the rediscovery and health check timers."""
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(
                self._run_periodically("refresh", lambda: self.refresh_interval, self.discover_all)
            )
        if self._health_task is None:
            self._health_task = asyncio.create_task(
                self._run_periodically("health_check", lambda: self.health_check_interval, self.check_health)
            )
        self.logger.info(
            "Discovery timers started",
            extra={
                "refresh_interval": self.refresh_interval,
                "health_check_interval": self.health_check_interval,
            }
        )

    async def stop(self) -> None:
        """Cancel the timers and wait for them to finish."""
        tasks = [task for task in (self._refresh_task, self._health_task) if task is not None]
        self._refresh_task = None
        self._health_task = None

        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    @property
    def is_running(self) -> bool:
        return self._refresh_task is not None

    def update_intervals(
        self,
        refresh_interval: Optional[float] = None,
        health_check_interval: Optional[float] = None
    ) -> None:
        """Apply new timer intervals, restarting timers that are running."""
        if refresh_interval is not None:
            self.refresh_interval = refresh_interval
        if health_check_interval is not None:
            self.health_check_interval = health_check_interval

        if self.is_running:
            for task in (self._refresh_task, self._health_task):
                if task is not None:
                    task.cancel()
            self._refresh_task = None
            self._health_task = None
            self.start()

    async def _run_periodically(self, name: str, interval, operation) -> None:
        while True:
            await asyncio.sleep(interval())
            try:
                await operation()
            except Exception as e:
                self.logger.error(f"Periodic {name} failed: {e}", extra={"timer": name}, exc_info=e)
