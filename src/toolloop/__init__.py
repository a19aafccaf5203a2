"""
toolloop - multi-step tool-calling agent loop

Runs a model against a set of typed tools until a stop condition matches,
either to completion or as a stream of events.
"""

from importlib.metadata import PackageNotFoundError, version

from toolloop.agent import (
    AgentConfig,
    AgentContext,
    AgentResult,
    AgentStream,
    GenerateOptions,
    ToolLoopAgent,
)
from toolloop.tools import Tool, ToolExecutionResult, ToolRegistry, tool

try:
    __version__ = version("toolloop")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = [
    "__version__",
    "ToolLoopAgent",
    "AgentConfig",
    "AgentContext",
    "AgentResult",
    "AgentStream",
    "GenerateOptions",
    "Tool",
    "ToolExecutionResult",
    "ToolRegistry",
    "tool",
]
