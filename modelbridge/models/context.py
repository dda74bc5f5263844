"""Per-request routing context, server state, and tool data structures."""

import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .capabilities import ModelCapabilities


class EnhancedRequestContext(BaseModel):
    """Everything the pipeline learns about one request while routing it."""

    request_id: str = Field(..., description="Unique request identifier")
    model: str = Field(..., description="Requested model name or auto-select")
    is_streaming: bool = False
    has_images: bool = False
    has_functions: bool = False
    estimated_tokens: int = 0
    selected_model: Optional[ModelCapabilities] = None
    start_time: float = Field(default_factory=time.time)
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None

    def bind_model(self, model: ModelCapabilities) -> None:
        if self.selected_model is not None:
            raise RuntimeError(f"Request {self.request_id} already bound to {self.selected_model.id}")
        self.selected_model = model

    @property
    def elapsed_ms(self) -> float:
        return (time.time() - self.start_time) * 1000


class ServerState(BaseModel):
    """Counters describing the running server."""

    is_running: bool = False
    host: str = "127.0.0.1"
    port: int = 8001
    start_time: Optional[datetime] = None
    request_count: int = 0
    error_count: int = 0
    active_connections: int = 0

    @property
    def uptime(self) -> float:
        """Seconds since start."""
        if not self.start_time:
            return 0.0
        return (datetime.utcnow() - self.start_time).total_seconds()


class ToolDefinition(BaseModel):
    """Definition of a tool that a model can call."""

    name: str = Field(..., description="Unique name of the tool")
    description: str = Field(..., description="Description of what the tool does")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="JSON schema for tool parameters")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "calculator",
            "description": "Evaluate an arithmetic expression",
            "parameters": {
                "type": "object",
                "properties": {
                    "expression": {"type": "string", "description": "Expression to evaluate"}
                },
                "required": ["expression"]
            }
        }
    })


class ToolMetadata(BaseModel):
    category: str = "general"
    description: str = ""
    version: str = "1.0.0"
    author: str = "modelbridge"
    requires_auth: bool = False
    rate_limited: bool = False


class ToolRegistryEntry(BaseModel):
    """A registered tool with its handler and usage counters."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    definition: ToolDefinition
    handler: Callable[..., Any] = Field(exclude=True, repr=False)
    metadata: ToolMetadata = Field(default_factory=ToolMetadata)
    is_enabled: bool = True
    usage_count: int = 0
    error_count: int = 0
    last_used: Optional[datetime] = None
