"""Tool execution context."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ToolExecutionContext(BaseModel):
    """Describes who is calling a tool and on behalf of which request."""

    request_id: str = Field(..., description="Request that triggered the call")
    model_id: Optional[str] = Field(default=None, description="Model that emitted the tool call")
    user_id: Optional[str] = Field(default=None, description="End-user identifier if the client sent one")
    tool_call_id: Optional[str] = Field(default=None, description="Id of the tool call being answered")
    execution_metadata: Dict[str, Any] = Field(default_factory=dict, description="Additional execution metadata")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="When the context was created")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "request_id": "9f0c1a2e-5d1b-4b8e-9d7e-2f3c4b5a6d7e",
            "model_id": "gpt-4o",
            "user_id": "user_456",
            "tool_call_id": "call_abc123",
            "execution_metadata": {},
            "created_at": "2024-01-01T12:00:00Z"
        }
    })
