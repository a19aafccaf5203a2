"""Tool use system for toolloop agents.

Tools are typed by a pydantic input model, validated before they run,
optionally gated behind an approval policy, and always report their
outcome as a ToolExecutionResult instead of raising.
"""

from toolloop.tools.base import (
    ApprovalPolicy,
    DynamicApproval,
    FunctionTool,
    StaticApproval,
    Tool,
    approval_policy,
    tool,
)
from toolloop.tools.executor import APPROVAL_REQUIRED_ERROR, execute_agent_tool
from toolloop.tools.models import (
    ToolCall,
    ToolCallSummary,
    ToolExecutionResult,
    create_tool_call_summary,
)
from toolloop.tools.registry import ToolRegistry

__all__ = [
    "Tool",
    "FunctionTool",
    "tool",
    "ApprovalPolicy",
    "StaticApproval",
    "DynamicApproval",
    "approval_policy",
    "execute_agent_tool",
    "APPROVAL_REQUIRED_ERROR",
    "ToolCall",
    "ToolCallSummary",
    "ToolExecutionResult",
    "create_tool_call_summary",
    "ToolRegistry",
]
