"""Model capability records, the tiered model pool, and routing criteria."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ModelCapabilities(BaseModel):
    """Everything known about one backend model after probing."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Identity
    id: str = Field(..., description="Provider model identifier")
    name: str = Field(..., description="Display name")
    family: str = Field("", description="Model family")
    vendor: str = Field("", description="Model vendor")
    version: str = Field("", description="Model version")

    # Limits
    max_input_tokens: int = Field(..., ge=0, description="Maximum prompt tokens")
    max_output_tokens: int = Field(..., ge=0, description="Maximum completion tokens")
    context_window: int = Field(..., ge=0, description="Context window in tokens")

    # Features
    supports_vision: bool = False
    supports_tools: bool = False
    supports_function_calling: bool = False
    supports_streaming: bool = True
    supports_multimodal: bool = False
    supported_image_formats: List[str] = Field(default_factory=list)
    max_image_size: Optional[int] = Field(default=None, description="Largest accepted image in bytes")
    max_images_per_request: Optional[int] = None

    # Health and performance
    is_healthy: bool = True
    last_tested_at: datetime = Field(default_factory=datetime.utcnow)
    response_time: Optional[float] = Field(default=None, description="Most recent response time in ms")
    success_rate: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    handle: Any = Field(default=None, exclude=True, repr=False, description="Opaque provider handle")

    @property
    def effective_output_limit(self) -> int:
        """Largest max_tokens a request may ask of this model."""
        return self.max_output_tokens or int(self.max_input_tokens * 0.5)

    def summary(self) -> Dict[str, Any]:
        """Public view of the record, without the handle."""
        return self.model_dump(mode="json")


class ModelPool(BaseModel):
    """Four disjoint, ordered tiers of probed models."""

    primary: List[ModelCapabilities] = Field(default_factory=list)
    secondary: List[ModelCapabilities] = Field(default_factory=list)
    fallback: List[ModelCapabilities] = Field(default_factory=list)
    unhealthy: List[ModelCapabilities] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=datetime.utcnow)

    def all_models(self) -> List[ModelCapabilities]:
        return [*self.primary, *self.secondary, *self.fallback, *self.unhealthy]

    def counts(self) -> Dict[str, int]:
        return {
            "total": len(self.primary) + len(self.secondary) + len(self.fallback) + len(self.unhealthy),
            "primary": len(self.primary),
            "secondary": len(self.secondary),
            "fallback": len(self.fallback),
            "unhealthy": len(self.unhealthy),
        }


class SortKey(str, Enum):
    """Ranking applied to candidate models."""
    PERFORMANCE = "performance"
    TOKENS = "tokens"
    HEALTH = "health"
    CAPABILITIES = "capabilities"


class DynamicModelCriteria(BaseModel):
    """Per-request filter and ranking specification."""

    preferred_models: List[str] = Field(default_factory=list)
    required_capabilities: List[str] = Field(
        default_factory=list,
        description="Names of boolean ModelCapabilities fields that must be true"
    )
    min_context_tokens: Optional[int] = None
    requires_vision: bool = False
    requires_tools: bool = False
    exclude_models: List[str] = Field(default_factory=list)
    sort_by: SortKey = SortKey.CAPABILITIES


class ModelMetrics(BaseModel):
    """Per-model usage counters kept by the pool manager."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_response_time: float = 0.0
    last_used: Optional[datetime] = None
    current_load: int = 0

    @property
    def success_rate(self) -> Optional[float]:
        if not self.total_requests:
            return None
        return self.successful_requests / self.total_requests

    def record(self, duration_ms: float, success: bool) -> None:
        self.total_requests += 1
        if success:
            self.successful_requests += 1
        else:
            self.failed_requests += 1
        self.average_response_time = (
            (self.average_response_time * (self.total_requests - 1) + duration_ms)
            / self.total_requests
        )
        self.last_used = datetime.utcnow()
