"""
toolloop provider layer.

Model transports, declared model capabilities and the pre-flight
capability validator.
"""

from toolloop.providers.exceptions import (
    CapabilityError,
    ModelNotFoundError,
    ProviderError,
    TransportError,
)
from toolloop.providers.fake import ScriptedCall, ScriptedTransport
from toolloop.providers.models import (
    AIResponse,
    AIStreamResponse,
    CallOptions,
    FinishReason,
    InputModality,
    MessageRole,
    ModalitySupport,
    ModelCapabilities,
    OutputModality,
    ReasoningConfig,
    RequestRequirements,
    TokenUsage,
    ToolCallRequest,
)
from toolloop.providers.transport import LiteLLMTransport, ModelTransport
from toolloop.providers.validation import (
    derive_request_requirements,
    get_reasoning_mode,
    model_supports_json_schema,
    model_supports_reasoning,
    model_supports_streaming,
    model_supports_structured_outputs,
    model_supports_tools,
    validate_request_against_capabilities,
)

__all__ = [
    # Transport
    "ModelTransport",
    "LiteLLMTransport",
    "ScriptedTransport",
    "ScriptedCall",
    # Models
    "AIResponse",
    "AIStreamResponse",
    "CallOptions",
    "FinishReason",
    "InputModality",
    "MessageRole",
    "ModalitySupport",
    "ModelCapabilities",
    "OutputModality",
    "ReasoningConfig",
    "RequestRequirements",
    "TokenUsage",
    "ToolCallRequest",
    # Exceptions
    "ProviderError",
    "CapabilityError",
    "TransportError",
    "ModelNotFoundError",
    # Validation
    "derive_request_requirements",
    "validate_request_against_capabilities",
    "model_supports_tools",
    "model_supports_json_schema",
    "model_supports_structured_outputs",
    "model_supports_streaming",
    "model_supports_reasoning",
    "get_reasoning_mode",
]
