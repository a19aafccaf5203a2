"""
Provider data models for toolloop.

Defines the transport-facing response types, per-call options and the
declared capabilities of a model.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):
    """Valid message roles."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FinishReason(str, Enum):
    """Why the model stopped generating."""

    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"


class InputModality(str, Enum):
    """Input modalities a model may accept."""

    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    FILE = "file"


class OutputModality(str, Enum):
    """Output modalities a model may produce."""

    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"


@dataclass
class TokenUsage:
    """Token usage statistics."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __post_init__(self) -> None:
        if self.total_tokens == 0:
            self.total_tokens = self.prompt_tokens + self.completion_tokens


@dataclass
class ToolCallRequest:
    """A native tool call as returned by the transport.

    ``arguments`` is the raw JSON string produced by the model.
    """

    id: str
    name: str
    arguments: str = "{}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to an OpenAI-compatible ``tool_calls`` entry."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class AIResponse:
    """Unified blocking completion response."""

    content: str = ""
    tool_calls: list[ToolCallRequest] | None = None
    usage: TokenUsage | None = None
    reasoning: str | None = None
    finish_reason: str | None = None


@dataclass
class AIStreamResponse:
    """Streaming completion: raw server-sent-event bytes plus an input estimate."""

    stream: AsyncIterator[bytes]
    estimated_input_tokens: int = 0


# =============================================================================
# Call Options
# =============================================================================


class CallOptions(BaseModel):
    """Per-call options forwarded to the model transport."""

    model_config = ConfigDict(extra="allow")

    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1)
    tools: list[dict[str, Any]] | None = None
    tool_choice: str | dict[str, Any] | None = None
    response_format: dict[str, Any] | None = None
    stream: bool = False

    def merged(self, override: "CallOptions | None") -> "CallOptions":
        """Return a copy with every field explicitly set on ``override`` applied."""
        if override is None:
            return self.model_copy()
        return self.model_copy(update=override.model_dump(exclude_unset=True))

    def to_request_kwargs(self) -> dict[str, Any]:
        """Render as keyword arguments for a completion request.

        ``stream`` is excluded; transports decide it from the call they serve.
        """
        return self.model_dump(exclude_none=True, exclude={"stream"})


# =============================================================================
# Model Capabilities
# =============================================================================


class ModalitySupport(BaseModel):
    """Input and output modalities a model supports."""

    input: list[InputModality] = Field(default_factory=lambda: [InputModality.TEXT])
    output: list[OutputModality] = Field(default_factory=lambda: [OutputModality.TEXT])


class ReasoningConfig(BaseModel):
    """Reasoning ("thinking") support of a model."""

    supported: bool = False
    mode: Literal["always", "never", "prompt-controlled", "provider-controlled"] | None = None


class ModelCapabilities(BaseModel):
    """Declared capabilities of a model, supplied by configuration."""

    model_config = ConfigDict(extra="allow")

    modalities: ModalitySupport = Field(default_factory=ModalitySupport)
    streaming: bool = True
    tools: bool = True
    json_schema: bool = False
    structured_outputs: bool = False
    reasoning: ReasoningConfig = Field(default_factory=ReasoningConfig)
    context_window: int = Field(default=128_000, ge=1)
    max_output_tokens: int | None = Field(default=None, ge=1)


@dataclass
class RequestRequirements:
    """Requirements derived from a request, checked against ModelCapabilities."""

    input_modalities: set[InputModality] = field(
        default_factory=lambda: {InputModality.TEXT}
    )
    streaming: bool = False
    tools: bool = False
    json_schema: bool = False
    structured_outputs: bool = False
    max_output_tokens: int | None = None
    estimated_input_tokens: int = 0

    def summary(self) -> dict[str, Any]:
        """Summarize for logging."""
        return {
            "modalities": sorted(m.value for m in self.input_modalities),
            "streaming": self.streaming,
            "tools": self.tools,
            "json_schema": self.json_schema,
            "structured_outputs": self.structured_outputs,
            "max_output_tokens": self.max_output_tokens,
            "estimated_input_tokens": self.estimated_input_tokens,
        }
