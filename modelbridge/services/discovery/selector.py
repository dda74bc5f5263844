"""Per-request model selection over the current pool snapshot."""

import logging
from typing import Callable, List, Optional

from modelbridge.logging.config import get_logger
from modelbridge.models.capabilities import DynamicModelCriteria, ModelCapabilities, ModelPool, SortKey


def capability_score(model: ModelCapabilities) -> float:
    """Rank of a model: context size plus feature bonuses plus reliability."""
    success_rate = model.success_rate if model.success_rate is not None else 0.5
    return (
        model.max_input_tokens / 1000
        + 50 * model.supports_vision
        + 30 * model.supports_tools
        + 20 * model.supports_multimodal
        + 100 * success_rate
    )


class ModelSelector:
    """Filters and ranks candidates from the primary and secondary tiers.

    Fallback and unhealthy models are never auto-selected. Sorting is stable,
    so ties keep their pool order and repeated calls on the same snapshot
    return the same model.
    """

    def __init__(self, pool_source: Callable[[], ModelPool], logger: Optional[logging.Logger] = None):
        self._pool_source = pool_source
        self.logger = logger or get_logger("discovery.selector")

    def select(self, criteria: DynamicModelCriteria) -> Optional[ModelCapabilities]:
        candidates = self.candidates(criteria)
        if not candidates:
            self.logger.debug("No candidate model matches criteria", extra={"criteria": criteria.model_dump()})
            return None
        return candidates[0]

    def candidates(self, criteria: DynamicModelCriteria) -> List[ModelCapabilities]:
        """All eligible models, best first."""
        pool = self._pool_source()
        models = [model for model in [*pool.primary, *pool.secondary] if self._matches(model, criteria)]

        if criteria.preferred_models:
            preferred = [model for model in models if model.id in criteria.preferred_models]
            if preferred:
                models = preferred

        return sorted(models, key=self._sort_key(criteria.sort_by))

    @staticmethod
    def _matches(model: ModelCapabilities, criteria: DynamicModelCriteria) -> bool:
        if not model.is_healthy:
            return False
        if model.id in criteria.exclude_models:
            return False
        for capability in criteria.required_capabilities:
            if not getattr(model, capability, False):
                return False
        if criteria.min_context_tokens is not None and model.max_input_tokens < criteria.min_context_tokens:
            return False
        if criteria.requires_vision and not model.supports_vision:
            return False
        if criteria.requires_tools and not model.supports_tools:
            return False
        return True

    @staticmethod
    def _sort_key(sort_by: SortKey) -> Callable[[ModelCapabilities], float]:
        if sort_by == SortKey.PERFORMANCE:
            return lambda model: model.response_time or 0.0
        if sort_by == SortKey.TOKENS:
            return lambda model: -model.max_input_tokens
        if sort_by == SortKey.HEALTH:
            return lambda model: -(model.success_rate or 0.0)
        return lambda model: -capability_score(model)
