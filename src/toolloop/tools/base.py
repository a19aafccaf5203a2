"""Base classes for tool implementation."""

import inspect
import json
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar, Union

from pydantic import BaseModel

from toolloop.tools.models import ToolExecutionResult

if TYPE_CHECKING:
    from toolloop.agent.models import AgentContext

InputT = TypeVar("InputT", bound=BaseModel)

ApprovalPredicate = Callable[[Any, "AgentContext"], Union[bool, Awaitable[bool]]]


@dataclass(frozen=True)
class StaticApproval:
    """Approval requirement fixed at definition time."""

    required: bool = False

    async def requires_approval(self, input: BaseModel, context: "AgentContext") -> bool:
        return self.required


@dataclass(frozen=True)
class DynamicApproval:
    """Approval requirement decided per call from the parsed input and context."""

    predicate: ApprovalPredicate

    async def requires_approval(self, input: BaseModel, context: "AgentContext") -> bool:
        decision = self.predicate(input, context)
        if inspect.isawaitable(decision):
            decision = await decision
        return bool(decision)


ApprovalPolicy = Union[StaticApproval, DynamicApproval]


def approval_policy(needs_approval: Union[bool, ApprovalPredicate, None]) -> ApprovalPolicy:
    """Resolve a ``needs_approval`` setting into an approval policy.

    Args:
        needs_approval: None/False (never), True (always), or a sync or async
                        predicate over (parsed input, context)

    Returns:
        StaticApproval or DynamicApproval
    """
    if needs_approval is None or isinstance(needs_approval, bool):
        return StaticApproval(required=bool(needs_approval))
    if callable(needs_approval):
        return DynamicApproval(predicate=needs_approval)
    raise TypeError(f"needs_approval must be a bool or a callable, got {type(needs_approval)!r}")


class Tool(ABC, Generic[InputT]):
    """Base class for all tools.

    Tools are actions the agent can invoke beyond text generation. Each
    tool defines:
    - Name and description (for the model to understand when to use it)
    - Input schema (a pydantic model, validated before execution)
    - Execution logic
    - Approval policy (whether a call must be approved before it runs)
    """

    def __init__(self):
        """Initialize the tool."""
        self._validate_definition()

    @property
    @abstractmethod
    def name(self) -> str:
        """Tool name (must be unique within a registry)."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Description of what the tool does (for the model)."""
        pass

    @property
    @abstractmethod
    def input_schema(self) -> type[InputT]:
        """Pydantic model describing and validating the tool input."""
        pass

    @property
    def approval(self) -> ApprovalPolicy:
        """Approval policy. Tools run without approval by default."""
        return StaticApproval(required=False)

    def parse_input(self, raw_input: dict[str, Any]) -> InputT:
        """Validate raw model-supplied input.

        Raises:
            pydantic.ValidationError: If the input does not match the schema
        """
        return self.input_schema.model_validate(raw_input)

    def get_input_schema(self) -> dict[str, Any]:
        """Get JSON schema for tool input.

        Returns:
            JSON schema derived from the input model
        """
        schema = self.input_schema.model_json_schema()
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return schema

    def get_tool_definition(self) -> dict[str, Any]:
        """Get tool definition in OpenAI function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.get_input_schema(),
            },
        }

    @abstractmethod
    async def execute(self, input: InputT, context: "AgentContext") -> ToolExecutionResult:
        """Execute the tool with validated input.

        Args:
            input: Parsed and validated input
            context: Context of the agent run

        Returns:
            ToolExecutionResult with content or error
        """
        pass

    def _validate_definition(self) -> None:
        """Validate tool definition is correct.

        Raises:
            ValueError: If tool definition is invalid
        """
        if not self.name:
            raise ValueError("Tool name cannot be empty")

        if not self.description:
            raise ValueError("Tool description cannot be empty")

        if not (isinstance(self.input_schema, type) and issubclass(self.input_schema, BaseModel)):
            raise ValueError(f"Tool '{self.name}' input_schema must be a pydantic model class")

    def __str__(self) -> str:
        """String representation."""
        return f"Tool({self.name})"

    def __repr__(self) -> str:
        """Representation."""
        return f"<Tool name={self.name} approval={self.approval!r}>"


ExecuteFn = Callable[[Any, "AgentContext"], Any]


class FunctionTool(Tool[InputT]):
    """Tool built from a plain (sync or async) function.

    The function receives the parsed input and the run context. A returned
    ToolExecutionResult is passed through; a string becomes the success
    content; anything else is serialized to JSON.
    """

    def __init__(
        self,
        name: str,
        description: str,
        input_schema: type[InputT],
        execute: ExecuteFn,
        needs_approval: Union[bool, ApprovalPredicate, None] = None,
    ):
        self._name = name
        self._description = description
        self._input_schema = input_schema
        self._execute = execute
        self._approval = approval_policy(needs_approval)
        super().__init__()

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def input_schema(self) -> type[InputT]:
        return self._input_schema

    @property
    def approval(self) -> ApprovalPolicy:
        return self._approval

    async def execute(self, input: InputT, context: "AgentContext") -> ToolExecutionResult:
        if inspect.iscoroutinefunction(self._execute):
            value = await self._execute(input, context)
        else:
            value = self._execute(input, context)

        if isinstance(value, ToolExecutionResult):
            return value
        if isinstance(value, str):
            return ToolExecutionResult.ok(value)
        return ToolExecutionResult.ok(json.dumps(value, default=str))


def tool(
    name: str,
    description: str,
    input_schema: type[InputT],
    needs_approval: Union[bool, ApprovalPredicate, None] = None,
) -> Callable[[ExecuteFn], FunctionTool[InputT]]:
    """Decorator turning a function into a FunctionTool.

    Example:
        @tool("echo", "Echo the text back", EchoInput)
        async def echo(input: EchoInput, context: AgentContext) -> str:
            return input.text
    """

    def decorator(fn: ExecuteFn) -> FunctionTool[InputT]:
        return FunctionTool(
            name=name,
            description=description,
            input_schema=input_schema,
            execute=fn,
            needs_approval=needs_approval,
        )

    return decorator

