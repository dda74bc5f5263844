"""Tool sandbox: registry, execution context and built-in tools."""

from .base import BaseTool, ToolResult, ToolExecutionError, ToolExecutionStatus, validate_parameters
from .registry import ToolRegistry
from .context import ToolExecutionContext
from .factory import ToolFactory
from .implementations import CalculatorTool, DateTimeTool, FileInfoTool

__all__ = [
    "BaseTool",
    "ToolResult",
    "ToolExecutionError",
    "ToolExecutionStatus",
    "validate_parameters",
    "ToolRegistry",
    "ToolExecutionContext",
    "ToolFactory",
    "CalculatorTool",
    "DateTimeTool",
    "FileInfoTool",
]
