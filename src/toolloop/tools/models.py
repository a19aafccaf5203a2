"""Data models for tool use system."""

import json
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


class ToolExecutionResult(BaseModel):
    """Normalized outcome of running one tool.

    A failure always carries an error message and empty content.
    """

    success: bool
    content: str = ""
    error: Optional[str] = None

    @model_validator(mode="after")
    def _check_outcome(self) -> "ToolExecutionResult":
        if not self.success:
            if self.content:
                raise ValueError("Failed tool results must have empty content")
            if not self.error:
                raise ValueError("Failed tool results must carry an error")
        return self

    @classmethod
    def ok(cls, content: str) -> "ToolExecutionResult":
        """Create a successful result."""
        return cls(success=True, content=content)

    @classmethod
    def fail(cls, error: str) -> "ToolExecutionResult":
        """Create a failed result."""
        return cls(success=False, content="", error=error or "Unknown error")

    def __str__(self) -> str:
        """String representation."""
        if not self.success:
            return f"Error: {self.error}"
        return self.content[:200] + ("..." if len(self.content) > 200 else "")


class ToolCall(BaseModel):
    """Represents a tool call requested by the model."""

    id: str  # Links the tool-role reply to the request
    name: str
    input: dict[str, Any] = Field(default_factory=dict)

    def __str__(self) -> str:
        """String representation."""
        return f"{self.name}({', '.join(f'{k}={v}' for k, v in self.input.items())})"


class ToolCallSummary(BaseModel):
    """Display-oriented summary of one executed tool call."""

    function_name: str
    arguments: Optional[Any] = None
    result_summary: str
    execution_time_ms: float
    success: bool
    error: Optional[str] = None


def _safe_json_copy(value: Any) -> Any:
    """Deep-copy a value through JSON, or None if it is not serializable."""
    try:
        return json.loads(json.dumps(value))
    except (TypeError, ValueError):
        return None


def _summarize_result(result: Any, error: Optional[str]) -> str:
    if error:
        return f"Error: {error}"
    if result is None:
        return "Operation completed"
    if isinstance(result, (list, tuple)):
        count = len(result)
        return f"Found {count} item{'' if count == 1 else 's'}"
    if isinstance(result, dict):
        count = len(result)
        if count:
            return f"Retrieved data with {count} field{'' if count == 1 else 's'}"
        return "Operation completed successfully"
    if isinstance(result, str):
        return f"{result[:100]}..." if len(result) > 100 else result
    return "Operation completed successfully"


def create_tool_call_summary(
    function_name: str,
    arguments: Any,
    result: Any,
    execution_time_ms: float,
    success: bool,
    error: Optional[str] = None,
) -> ToolCallSummary:
    """Create a tool call summary for display.

    Args:
        function_name: Name of the tool that ran
        arguments: Tool input (copied through JSON, None if not serializable)
        result: Tool result content, None on failure
        execution_time_ms: Execution time in milliseconds
        success: Whether the call succeeded
        error: Error message on failure

    Returns:
        ToolCallSummary with a human-readable result summary
    """
    return ToolCallSummary(
        function_name=function_name,
        arguments=_safe_json_copy(arguments),
        result_summary=_summarize_result(result, error),
        execution_time_ms=execution_time_ms,
        success=success,
        error=error,
    )
