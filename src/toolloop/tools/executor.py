"""Tool execution with input validation and approval gating."""

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from toolloop.tools.base import Tool
from toolloop.tools.models import ToolExecutionResult

if TYPE_CHECKING:
    from toolloop.agent.models import AgentContext

logger = logging.getLogger(__name__)

APPROVAL_REQUIRED_ERROR = "Tool execution requires approval"


def format_validation_error(error: ValidationError) -> str:
    """Render a pydantic ValidationError as one line."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "input"
        parts.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "; ".join(parts)


async def execute_agent_tool(
    tool: Tool,
    raw_input: dict[str, Any],
    context: "AgentContext",
) -> ToolExecutionResult:
    """Validate, gate and run one tool call.

    Every failure mode (invalid input, approval required, an exception
    from the tool body) is returned as a failed ToolExecutionResult.

    Args:
        tool: Tool to run
        raw_input: Input as supplied by the model
        context: Context of the agent run

    Returns:
        ToolExecutionResult, never raises
    """
    try:
        parsed = tool.parse_input(raw_input)
    except ValidationError as e:
        logger.debug(f"Invalid input for tool {tool.name}: {e}")
        return ToolExecutionResult.fail(f"Invalid input: {format_validation_error(e)}")

    try:
        needs_approval = await tool.approval.requires_approval(parsed, context)
    except Exception as e:
        logger.warning(f"Approval check failed for tool {tool.name}: {e}")
        return ToolExecutionResult.fail(f"Approval check failed: {e}")

    if needs_approval:
        logger.info(f"Tool {tool.name} requires approval, not executing")
        return ToolExecutionResult.fail(APPROVAL_REQUIRED_ERROR)

    try:
        result = await tool.execute(parsed, context)
    except Exception as e:
        logger.error(f"Tool execution failed: {tool.name}: {e}", exc_info=True)
        return ToolExecutionResult.fail(str(e) or "Unknown error")

    if not isinstance(result, ToolExecutionResult):
        return ToolExecutionResult.fail(
            f"Tool '{tool.name}' returned {type(result).__name__}, expected ToolExecutionResult"
        )
    return result
