"""Tagged events published by the pool manager and the tool registry."""

from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field


class BaseEvent(BaseModel):
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ModelDiscovered(BaseEvent):
    type: Literal["model_discovered"] = "model_discovered"
    model_id: str
    tier: str


class HealthChanged(BaseEvent):
    type: Literal["health_changed"] = "health_changed"
    model_id: str
    is_healthy: bool
    reason: Optional[str] = None


class PoolRefreshed(BaseEvent):
    type: Literal["pool_refreshed"] = "pool_refreshed"
    total: int
    primary: int
    secondary: int
    fallback: int
    unhealthy: int


class ToolRegistered(BaseEvent):
    type: Literal["tool_registered"] = "tool_registered"
    tool_id: str


class ToolExecuted(BaseEvent):
    type: Literal["tool_executed"] = "tool_executed"
    tool_id: str
    execution_time: float
    result: Any = None


class ToolFailed(BaseEvent):
    type: Literal["tool_failed"] = "tool_failed"
    tool_id: str
    error: str
    execution_time: float = 0.0


Event = Union[ModelDiscovered, HealthChanged, PoolRefreshed, ToolRegistered, ToolExecuted, ToolFailed]
