"""Built-in tool implementations."""

from .calculator import (
    ArithmeticEvaluator,
    CalculatorTool,
    DivisionByZeroError,
    ExpressionError,
    UnbalancedParenthesesError,
    evaluate,
)
from .datetime_tool import DateTimeTool
from .file_info import FileInfoTool, PathRejectedError, PathValidator

__all__ = [
    "ArithmeticEvaluator",
    "CalculatorTool",
    "DateTimeTool",
    "DivisionByZeroError",
    "ExpressionError",
    "FileInfoTool",
    "PathRejectedError",
    "PathValidator",
    "UnbalancedParenthesesError",
    "evaluate",
]
