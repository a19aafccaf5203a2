"""Arithmetic calculator tool."""

import ast
import logging
import math
import operator
from typing import TYPE_CHECKING, Union

from pydantic import BaseModel, Field

from toolloop.tools.base import Tool
from toolloop.tools.models import ToolExecutionResult

if TYPE_CHECKING:
    from toolloop.agent.models import AgentContext

logger = logging.getLogger(__name__)

Number = Union[int, float]

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

# Keeps ``9 ** 9 ** 9`` and friends from pinning the event loop
MAX_EXPONENT = 1000
MAX_RESULT_BITS = 4096


class CalculatorInput(BaseModel):
    """Input for the calculator tool."""

    expression: str = Field(
        min_length=1,
        max_length=500,
        description="Arithmetic expression, e.g. '25 + 17' or '(3 + 4) * 2 ** 3'",
    )


def evaluate_expression(expression: str) -> Number:
    """Evaluate an arithmetic expression without executing code.

    Only numeric literals, parentheses and + - * / // % ** are accepted.

    Raises:
        ValueError: If the expression is malformed or uses anything else
        ZeroDivisionError: On division by zero
        OverflowError: If a float result is out of range
    """
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise ValueError(f"Malformed expression: {expression!r}") from e
    return _evaluate(tree.body)


def _evaluate(node: ast.AST) -> Number:
    if isinstance(node, ast.Constant) and type(node.value) in (int, float):
        return node.value

    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        left = _evaluate(node.left)
        right = _evaluate(node.right)
        _check_size(node.op, left, right)
        result = _BINARY_OPERATORS[type(node.op)](left, right)
        if isinstance(result, complex):
            raise ValueError("Result is not a real number")
        return result

    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_evaluate(node.operand))

    raise ValueError(f"Unsupported expression element: {type(node).__name__}")


def _check_size(op: ast.operator, left: Number, right: Number) -> None:
    """Refuse operations whose result would be too large to compute quickly."""
    if isinstance(op, ast.Pow):
        if abs(right) > MAX_EXPONENT:
            raise ValueError(f"Exponent {right} exceeds limit of {MAX_EXPONENT}")
        if abs(left) > 1 and right > 0 and right * math.log2(abs(left)) > MAX_RESULT_BITS:
            raise ValueError(f"Result size exceeds limit of {MAX_RESULT_BITS} bits")
    elif isinstance(op, ast.Mult) and isinstance(left, int) and isinstance(right, int):
        if abs(left).bit_length() + abs(right).bit_length() > MAX_RESULT_BITS:
            raise ValueError(f"Result size exceeds limit of {MAX_RESULT_BITS} bits")


def format_number(value: Number) -> str:
    """Format a result, dropping the fractional part of whole floats."""
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


class CalculatorTool(Tool[CalculatorInput]):
    """Evaluate arithmetic expressions.

    Safe: expressions are walked as an AST, never passed to eval().
    """

    @property
    def name(self) -> str:
        return "calculator"

    @property
    def description(self) -> str:
        return (
            "Evaluate an arithmetic expression and return the numeric result. "
            "Supports + - * / // % ** and parentheses over integer and decimal numbers."
        )

    @property
    def input_schema(self) -> type[CalculatorInput]:
        return CalculatorInput

    async def execute(
        self, input: CalculatorInput, context: "AgentContext"
    ) -> ToolExecutionResult:
        try:
            value = evaluate_expression(input.expression)
        except ZeroDivisionError:
            return ToolExecutionResult.fail("Division by zero")
        except OverflowError:
            return ToolExecutionResult.fail("Result is out of range")
        except ValueError as e:
            return ToolExecutionResult.fail(str(e))

        logger.debug(f"calculator: {input.expression} = {value}")
        return ToolExecutionResult.ok(format_number(value))
