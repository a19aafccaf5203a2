"""Tool registry for managing available tools."""

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Optional, Union

from toolloop.tools.base import Tool

logger = logging.getLogger(__name__)

ToolSource = Union["ToolRegistry", Mapping[str, Tool], Iterable[Tool], None]


class ToolRegistry:
    """Name-keyed collection of the tools an agent may call.

    Built once from the caller's configuration; the agent loop only reads it.
    """

    def __init__(self, tools: Optional[Iterable[Tool]] = None):
        """Initialize the tool registry.

        Args:
            tools: Optional initial tools

        Raises:
            ValueError: If two tools share a name
        """
        self._tools: dict[str, Tool] = {}
        for tool in tools or ():
            self.register(tool)

    @classmethod
    def from_tools(cls, source: ToolSource) -> "ToolRegistry":
        """Build a registry from a registry, a name-keyed mapping or an iterable.

        A registry is returned as is. Mapping keys must match the tool names.

        Raises:
            ValueError: On duplicate names or a key/name mismatch
        """
        if isinstance(source, ToolRegistry):
            return source
        if source is None:
            return cls()
        if isinstance(source, Mapping):
            for key, tool in source.items():
                if key != tool.name:
                    raise ValueError(f"Tool registered as '{key}' is named '{tool.name}'")
            return cls(source.values())
        return cls(source)

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Raises:
            ValueError: If tool name already registered
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")

        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def unregister(self, name: str) -> bool:
        """Unregister a tool.

        Returns:
            True if tool was unregistered, False if not found
        """
        if name in self._tools:
            del self._tools[name]
            logger.debug(f"Unregistered tool: {name}")
            return True
        return False

    def get(self, name: str) -> Optional[Tool]:
        """Get a tool by name, or None if not found."""
        return self._tools.get(name)

    def list_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def list_tool_names(self) -> list[str]:
        return list(self._tools.keys())

    def get_tool_definitions(self) -> list[dict[str, Any]]:
        """Get tool definitions in OpenAI function-calling format."""
        return [tool.get_tool_definition() for tool in self._tools.values()]

    def __len__(self) -> int:
        """Get number of registered tools."""
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        """Check if tool is registered."""
        return name in self._tools

    def __iter__(self):
        return iter(self._tools.values())

    def __str__(self) -> str:
        """String representation."""
        return f"ToolRegistry({len(self._tools)} tools)"

    def __repr__(self) -> str:
        """Representation."""
        tools = ", ".join(self._tools.keys())
        return f"<ToolRegistry tools=[{tools}]>"
