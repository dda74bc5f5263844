"""Calculator tool backed by a recursive-descent arithmetic evaluator."""

import math
import re
from typing import Any, Dict, Optional, Union

from ...models.context import ToolMetadata
from ..base import BaseTool, ToolExecutionError
from ..context import ToolExecutionContext


class ExpressionError(ToolExecutionError):
    """Raised when an expression cannot be evaluated."""

    def __init__(self, message: str, error_code: str = "SYNTAX_ERROR", position: Optional[int] = None):
        details = {"position": position} if position is not None else {}
        super().__init__(message, error_code=error_code, details=details)
        self.position = position


class DivisionByZeroError(ExpressionError):
    def __init__(self, position: Optional[int] = None):
        super().__init__("Division by zero", "DIVISION_BY_ZERO", position)


class UnbalancedParenthesesError(ExpressionError):
    def __init__(self, position: Optional[int] = None):
        super().__init__("Unbalanced parentheses", "UNBALANCED_PARENTHESES", position)


class ArithmeticEvaluator:
    """Evaluates ``+ - * /`` expressions with parentheses and unary signs.

    Grammar::

        expression := term (('+' | '-') term)*
        term       := factor (('*' | '/') factor)*
        factor     := ('+' | '-') factor | primary
        primary    := number | '(' expression ')'

    Input is first reduced to the characters ``0-9 + - * / ( ) .`` and
    whitespace. The evaluator only ever reads that cleaned string.
    """

    DISALLOWED = re.compile(r"[^0-9+\-*/().\s]")
    MAX_LENGTH = 10000
    MAX_DEPTH = 100

    def __init__(self):
        self._text = ""
        self._pos = 0
        self._depth = 0

    @classmethod
    def sanitize(cls, expression: str) -> str:
        return cls.DISALLOWED.sub("", expression)

    def evaluate(self, expression: str) -> float:
        """Evaluate ``expression``.

        Raises:
            ExpressionError: On empty input, malformed syntax, unbalanced
                parentheses, division by zero or a non-finite result.
        """
        cleaned = self.sanitize(expression).strip()
        if not cleaned:
            raise ExpressionError("Expression cannot be empty", "EMPTY_EXPRESSION")
        if len(cleaned) > self.MAX_LENGTH:
            raise ExpressionError(f"Expression longer than {self.MAX_LENGTH} characters", "EXPRESSION_TOO_LONG")

        self._check_parentheses(cleaned)

        self._text = cleaned
        self._pos = 0
        self._depth = 0

        value = self._parse_expression()
        self._skip_whitespace()
        if self._pos < len(self._text):
            raise ExpressionError(
                f"Unexpected '{self._text[self._pos]}' at position {self._pos}",
                "TRAILING_INPUT",
                self._pos
            )

        if not math.isfinite(value):
            raise ExpressionError("Result is not a finite number", "NON_FINITE_RESULT")
        return value

    @staticmethod
    def _check_parentheses(text: str) -> None:
        depth = 0
        for index, char in enumerate(text):
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth < 0:
                    raise UnbalancedParenthesesError(index)
        if depth != 0:
            raise UnbalancedParenthesesError(len(text))

    def _skip_whitespace(self) -> None:
        while self._pos < len(self._text) and self._text[self._pos].isspace():
            self._pos += 1

    def _peek(self) -> Optional[str]:
        self._skip_whitespace()
        if self._pos < len(self._text):
            return self._text[self._pos]
        return None

    def _parse_expression(self) -> float:
        value = self._parse_term()
        while True:
            op = self._peek()
            if op not in ("+", "-"):
                return value
            self._pos += 1
            right = self._parse_term()
            value = value + right if op == "+" else value - right

    def _parse_term(self) -> float:
        value = self._parse_factor()
        while True:
            op = self._peek()
            if op not in ("*", "/"):
                return value
            op_pos = self._pos
            self._pos += 1
            right = self._parse_factor()
            if op == "*":
                value = value * right
            else:
                if right == 0:
                    raise DivisionByZeroError(op_pos)
                value = value / right

    def _parse_factor(self) -> float:
        self._depth += 1
        if self._depth > self.MAX_DEPTH:
            raise ExpressionError("Expression is nested too deeply", "NESTING_TOO_DEEP", self._pos)
        try:
            char = self._peek()
            if char in ("+", "-"):
                self._pos += 1
                operand = self._parse_factor()
                return operand if char == "+" else -operand
            return self._parse_primary()
        finally:
            self._depth -= 1

    def _parse_primary(self) -> float:
        char = self._peek()
        if char is None:
            raise ExpressionError("Unexpected end of expression", "SYNTAX_ERROR", self._pos)

        if char == "(":
            self._pos += 1
            value = self._parse_expression()
            if self._peek() != ")":
                raise ExpressionError(f"Expected ')' at position {self._pos}", "SYNTAX_ERROR", self._pos)
            self._pos += 1
            return value

        if char.isdigit() or char == ".":
            return self._parse_number()

        raise ExpressionError(f"Unexpected '{char}' at position {self._pos}", "SYNTAX_ERROR", self._pos)

    def _parse_number(self) -> float:
        start = self._pos
        seen_digit = False
        seen_point = False
        while self._pos < len(self._text):
            char = self._text[self._pos]
            if char.isdigit():
                seen_digit = True
            elif char == "." and not seen_point:
                seen_point = True
            else:
                break
            self._pos += 1

        if not seen_digit:
            raise ExpressionError(f"Malformed number at position {start}", "INVALID_NUMBER", start)
        return float(self._text[start:self._pos])


def evaluate(expression: str) -> float:
    """Evaluate an arithmetic expression with a fresh evaluator."""
    return ArithmeticEvaluator().evaluate(expression)


class CalculatorTool(BaseTool):
    """Tool for performing arithmetic without any dynamic code evaluation."""

    def __init__(self):
        parameters_schema = {
            "type": "object",
            "properties": {
                "expression": {
                    "type": "string",
                    "description": "Arithmetic expression to evaluate (e.g., '2 + 3 * 4')"
                },
                "precision": {
                    "type": "integer",
                    "description": "Number of decimal places for the result (default: 10)",
                    "minimum": 0,
                    "maximum": 15,
                    "default": 10
                }
            },
            "required": ["expression"]
        }

        super().__init__(
            name="calculator",
            description="Evaluate an arithmetic expression. Supports +, -, *, / and parentheses.",
            parameters_schema=parameters_schema,
            metadata=ToolMetadata(
                category="math",
                description="Perform mathematical calculations",
                version="1.0.0",
            ),
        )

    async def execute(self, parameters: Dict[str, Any], context: Optional[ToolExecutionContext] = None) -> Dict[str, Any]:
        expression = parameters["expression"]
        precision = max(0, min(15, parameters.get("precision", 10)))

        value = evaluate(expression)

        result: Union[int, float] = round(value, precision)
        if float(result).is_integer():
            result = int(result)

        return {
            "expression": expression,
            "result": result,
            "precision": precision,
        }
