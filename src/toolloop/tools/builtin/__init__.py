"""Built-in tools for toolloop agents.

- calculator: safe arithmetic evaluation
- current_time: current date and time in a time zone
"""

import logging

from toolloop.tools.builtin.calculator import CalculatorInput, CalculatorTool
from toolloop.tools.builtin.clock import CurrentTimeInput, CurrentTimeTool
from toolloop.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def register_builtin_tools(registry: ToolRegistry) -> None:
    """Register all built-in tools.

    Args:
        registry: ToolRegistry to register tools in
    """
    registry.register(CalculatorTool())
    registry.register(CurrentTimeTool())
    logger.info(f"Registered {len(registry)} built-in tools")


__all__ = [
    "CalculatorInput",
    "CalculatorTool",
    "CurrentTimeInput",
    "CurrentTimeTool",
    "register_builtin_tools",
]
