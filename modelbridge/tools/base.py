"""Base tool interface and execution structures."""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.context import ToolDefinition, ToolMetadata


class ToolExecutionStatus(str, Enum):
    """Status of tool execution."""
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"


class ToolResult(BaseModel):
    """Result of tool execution."""

    status: ToolExecutionStatus = Field(..., description="Execution status")
    result: Optional[Any] = Field(default=None, description="Tool execution result")
    error_message: Optional[str] = Field(default=None, description="Error message if execution failed")
    error_code: Optional[str] = Field(default=None, description="Machine-readable failure reason")
    execution_time: float = Field(0.0, description="Time taken to execute the tool in seconds")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="When the execution completed")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "status": "success",
            "result": {"expression": "2+3*4", "result": 14},
            "error_message": None,
            "error_code": None,
            "execution_time": 0.001,
            "timestamp": "2024-01-01T12:00:00Z"
        }
    })

    @property
    def success(self) -> bool:
        return self.status == ToolExecutionStatus.SUCCESS

    def to_payload(self) -> Dict[str, Any]:
        """The ``{success, result}`` / ``{success, error}`` shape returned to callers."""
        if self.success:
            return {"success": True, "result": self.result}
        return {"success": False, "error": self.error_message}


class ToolExecutionError(Exception):
    """Exception raised during tool execution."""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "TOOL_EXECUTION_ERROR"
        self.details = details or {}


class BaseTool(ABC):
    """Abstract base class for built-in tools.

    ``execute`` returns the raw result; the registry wraps it in a
    :class:`ToolResult` and does the accounting.
    """

    def __init__(self, name: str, description: str, parameters_schema: Dict[str, Any],
                 metadata: Optional[ToolMetadata] = None):
        self.name = name
        self.description = description
        self.parameters_schema = parameters_schema
        self.metadata = metadata or ToolMetadata(description=description)

    @abstractmethod
    async def execute(self, parameters: Dict[str, Any], context: Optional['ToolExecutionContext'] = None) -> Any:
        """Execute the tool with given parameters and context.

        Args:
            parameters: Tool parameters validated against the schema
            context: Execution context describing the calling request

        Returns:
            JSON-serialisable result

        Raises:
            ToolExecutionError: If execution fails
        """
        pass

    def get_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters_schema,
        )


def validate_parameters(schema: Dict[str, Any], parameters: Dict[str, Any]) -> Dict[str, Any]:
    """Validate parameters against a JSON-schema-like spec.

    Checks required parameters and the basic types of declared ones; extra
    parameters pass through untouched.

    Raises:
        ToolExecutionError: If validation fails
    """
    required_params = schema.get("required", [])
    properties = schema.get("properties", {})

    for param in required_params:
        if param not in parameters:
            raise ToolExecutionError(
                f"Missing required parameter: {param}",
                error_code="MISSING_PARAMETER",
                details={"parameter": param, "required": required_params}
            )

    type_checks = {
        "string": (str,),
        "number": (int, float),
        "integer": (int,),
        "boolean": (bool,),
        "object": (dict,),
        "array": (list,),
    }

    for param_name, param_value in parameters.items():
        param_type = properties.get(param_name, {}).get("type")
        expected = type_checks.get(param_type)
        if expected is None:
            continue

        # bool is an int subclass but never a valid number here
        is_bool = isinstance(param_value, bool)
        if not isinstance(param_value, expected) or (is_bool and param_type in ("number", "integer")):
            raise ToolExecutionError(
                f"Parameter {param_name} must be of type {param_type}",
                error_code="INVALID_PARAMETER_TYPE",
                details={"parameter": param_name, "expected_type": param_type, "actual_type": type(param_value).__name__}
            )

        allowed = properties[param_name].get("enum")
        if allowed and param_value not in allowed:
            raise ToolExecutionError(
                f"Parameter {param_name} must be one of: {', '.join(map(str, allowed))}",
                error_code="INVALID_PARAMETER_VALUE",
                details={"parameter": param_name, "allowed": allowed}
            )

    return dict(parameters)
