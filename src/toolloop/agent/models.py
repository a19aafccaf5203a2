"""Data models for agent execution."""

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from toolloop.providers.models import CallOptions, ModelCapabilities
from toolloop.tools.models import ToolCall, ToolCallSummary, ToolExecutionResult
from toolloop.tools.registry import ToolRegistry


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class AgentContext(BaseModel):
    """Per-run context shared with every tool call.

    Immutable once created. Each run gets its own context.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    user_id: str
    request_id: str
    conversation_id: Optional[str] = None
    start_time: float = Field(description="Epoch seconds at context creation")
    abort_signal: Optional[asyncio.Event] = Field(
        default=None,
        description="Cooperative cancellation signal; set means abort",
    )
    user_context: Optional[dict[str, Any]] = None

    @classmethod
    def create(
        cls,
        user_id: str,
        request_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
        abort_signal: Optional[asyncio.Event] = None,
        user_context: Optional[dict[str, Any]] = None,
    ) -> "AgentContext":
        """Create a context, generating a request id and fixing the start time."""
        return cls(
            user_id=user_id,
            request_id=request_id or uuid.uuid4().hex,
            conversation_id=conversation_id,
            start_time=time.time(),
            abort_signal=abort_signal,
            user_context=user_context,
        )

    @property
    def is_aborted(self) -> bool:
        """Whether cancellation has been requested."""
        return self.abort_signal is not None and self.abort_signal.is_set()


class ToolCallingMode(str, Enum):
    """Where tool calls are read from."""

    NATIVE = "native"  # Transport's native tool-call field
    TEXT = "text"  # JSON embedded in the generated text
    OFF = "off"  # Never


class StopReason(str, Enum):
    """Category of the condition that ended a run."""

    MAX_STEPS = "max_steps"
    NO_TOOL_CALLS = "no_tool_calls"
    FINISH_REASON = "finish_reason"
    MAX_TOKENS = "max_tokens"
    MAX_DURATION = "max_duration"
    STOP_CONDITION = "stop_condition"
    ABORTED = "aborted"


class StepUsage(BaseModel):
    """Token usage of one model call."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @computed_field
    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class StepResponse(BaseModel):
    """What the model produced in one step."""

    content: str = ""
    reasoning: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None
    usage: Optional[StepUsage] = None
    finish_reason: Optional[str] = None


class StepToolExecution(BaseModel):
    """One executed tool call within a step."""

    tool_name: str
    tool_call_id: str
    input: dict[str, Any] = Field(default_factory=dict)
    output: ToolExecutionResult
    duration_ms: float = 0.0


class AgentStep(BaseModel):
    """One model call plus the tool executions it triggered."""

    step_number: int = Field(ge=1)
    timestamp: str = Field(default_factory=utc_now_iso)
    ai_response: StepResponse
    tool_results: Optional[list[StepToolExecution]] = None
    is_terminal: bool = False
    stop_reason: Optional[StopReason] = None

    @property
    def tool_call_count(self) -> int:
        return len(self.ai_response.tool_calls or [])


class AgentUsage(BaseModel):
    """Token usage accumulated over a run."""

    total_prompt_tokens: int = 0
    total_completion_tokens: int = 0

    @computed_field
    @property
    def total_tokens(self) -> int:
        return self.total_prompt_tokens + self.total_completion_tokens


class AgentResult(BaseModel):
    """Aggregated result of one agent run."""

    text: str = ""
    thinking: Optional[str] = None
    steps: list[AgentStep] = Field(default_factory=list)
    usage: AgentUsage = Field(default_factory=AgentUsage)
    tool_call_summaries: list[ToolCallSummary] = Field(default_factory=list)

    @property
    def stop_reason(self) -> Optional[StopReason]:
        """Reason recorded on the terminal step, if any."""
        return self.steps[-1].stop_reason if self.steps else None


class EventType(str, Enum):
    """Agent stream event types."""

    THOUGHT = "thought"  # Reasoning delta
    TEXT_CHUNK = "text-chunk"  # Generated text delta
    TOOL_CALL_START = "tool-call-start"
    TOOL_CALL_COMPLETE = "tool-call-complete"
    TOOL_CALL_ERROR = "tool-call-error"
    STEP_COMPLETE = "step-complete"
    DONE = "done"  # Run finished, carries the AgentResult
    ERROR = "error"  # Run failed


class AgentStreamEvent(BaseModel):
    """Event emitted while a streaming run progresses."""

    model_config = ConfigDict(use_enum_values=True)

    event_type: EventType = Field(description="Type of event")
    timestamp: str = Field(default_factory=utc_now_iso, description="ISO format timestamp")

    content: Optional[str] = Field(default=None, description="Text or reasoning delta")
    tool_name: Optional[str] = None
    tool_call_id: Optional[str] = None
    arguments: Optional[dict[str, Any]] = Field(default=None, description="Tool input")
    result: Optional[ToolExecutionResult] = Field(default=None, description="Tool outcome")
    duration_ms: Optional[float] = None
    error: Optional[str] = None
    step: Optional[AgentStep] = None
    agent_result: Optional[AgentResult] = Field(default=None, description="Final result (done)")


Instructions = Union[str, Callable[["AgentContext"], Union[str, Awaitable[str]]]]


@dataclass
class PrepareStepInfo:
    """What a prepare_step hook sees before each model call."""

    step_number: int
    steps: list[AgentStep]
    model: str
    tools: ToolRegistry
    messages: list[dict[str, Any]]
    call_options: CallOptions
    context: AgentContext


@dataclass
class PrepareStepResult:
    """Overrides for a single iteration. None keeps the run default."""

    model: Optional[str] = None
    tools: Optional[ToolRegistry] = None
    messages: Optional[list[dict[str, Any]]] = None
    call_options: Optional[CallOptions] = None


PrepareStep = Callable[
    [PrepareStepInfo],
    Union[Optional[PrepareStepResult], Awaitable[Optional[PrepareStepResult]]],
]


class AgentConfig(BaseModel):
    """Configuration for agent execution."""

    model_config = ConfigDict(arbitrary_types_allowed=True, protected_namespaces=())

    model: str = Field(description="Model identifier passed to the transport")

    instructions: Optional[Instructions] = Field(
        default=None,
        description="System prompt, or a (sync or async) function of the context",
    )

    tool_calling_mode: ToolCallingMode = Field(
        default=ToolCallingMode.NATIVE,
        description="Tool calling mode: native, text, or off",
    )

    stop_when: Any = Field(
        default=None,
        description="StopCondition or sequence of them (None = default conditions)",
    )

    call_options: CallOptions = Field(
        default_factory=CallOptions,
        description="Default per-call options",
    )

    model_capabilities: dict[str, ModelCapabilities] = Field(
        default_factory=dict,
        description="Declared capabilities per model id, checked before each call",
    )

    prepare_step: Optional[PrepareStep] = Field(
        default=None,
        description="Hook returning per-iteration overrides",
    )

    @field_validator("stop_when")
    @classmethod
    def _check_stop_when(cls, value: Any) -> Any:
        if value is None or callable(value):
            return value
        if isinstance(value, (list, tuple)) and all(callable(v) for v in value):
            return list(value)
        raise ValueError("stop_when must be a stop condition or a sequence of them")


class GenerateOptions(BaseModel):
    """Input of one agent run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    prompt: str
    context: AgentContext
    messages: Optional[list[dict[str, Any]]] = Field(
        default=None,
        description="Prior conversation; copied, never mutated",
    )
    call_options: Optional[CallOptions] = Field(
        default=None,
        description="Options merged over AgentConfig.call_options for this run",
    )
