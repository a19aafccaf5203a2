"""Agent execution loop for tool use.

This module provides the agent loop that enables iterative tool execution:
- Call the model with the available tools
- Execute requested tools and feed results back
- Stop when a stop condition matches
- Stream events with backpressure during execution
"""

from toolloop.agent.channel import AgentStream, ChannelClosedError, EventChannel, ResultFuture
from toolloop.agent.loop import ToolLoopAgent
from toolloop.agent.models import (
    AgentConfig,
    AgentContext,
    AgentResult,
    AgentStep,
    AgentStreamEvent,
    AgentUsage,
    EventType,
    GenerateOptions,
    PrepareStepInfo,
    PrepareStepResult,
    StepResponse,
    StepToolExecution,
    StepUsage,
    StopReason,
    ToolCallingMode,
)
from toolloop.agent.parser import ToolCallParser
from toolloop.agent.stop_conditions import (
    StopCondition,
    StopEvaluation,
    all_of,
    any_of,
    custom,
    default_stop_conditions,
    evaluate_stop_conditions,
    finish_reason_stop,
    has_tool_call,
    max_duration,
    max_tokens,
    no_tool_calls,
    step_count_is,
)
from toolloop.agent.stream_parser import StreamParser, parse_sse_line

__all__ = [
    "ToolLoopAgent",
    "AgentStream",
    "EventChannel",
    "ResultFuture",
    "ChannelClosedError",
    "AgentConfig",
    "AgentContext",
    "AgentResult",
    "AgentStep",
    "AgentStreamEvent",
    "AgentUsage",
    "EventType",
    "GenerateOptions",
    "PrepareStepInfo",
    "PrepareStepResult",
    "StepResponse",
    "StepToolExecution",
    "StepUsage",
    "StopReason",
    "ToolCallingMode",
    "ToolCallParser",
    "StreamParser",
    "parse_sse_line",
    "StopCondition",
    "StopEvaluation",
    "all_of",
    "any_of",
    "custom",
    "default_stop_conditions",
    "evaluate_stop_conditions",
    "finish_reason_stop",
    "has_tool_call",
    "max_duration",
    "max_tokens",
    "no_tool_calls",
    "step_count_is",
]
