"""
Request validation against model capabilities.

Derives what a request needs (modalities, streaming, tools, response
format, token budget) and rejects it before any transport call when the
target model cannot satisfy it.
"""

import logging
from collections.abc import Sequence
from typing import Any

from toolloop.providers.exceptions import CapabilityError
from toolloop.providers.models import (
    CallOptions,
    InputModality,
    ModelCapabilities,
    RequestRequirements,
)

logger = logging.getLogger(__name__)

# Content part types that imply a non-text input modality
_PART_MODALITIES = {
    "image_url": InputModality.IMAGE,
    "input_audio": InputModality.AUDIO,
    "file": InputModality.FILE,
}


def derive_request_requirements(
    messages: Sequence[dict[str, Any]],
    options: CallOptions,
    estimated_input_tokens: int = 0,
) -> RequestRequirements:
    """
    Derive request requirements from messages and call options.

    Args:
        messages: Conversation messages (OpenAI format).
        options: Call options for this request.
        estimated_input_tokens: Estimated prompt size in tokens.

    Returns:
        The requirements the target model has to satisfy.
    """
    modalities = {InputModality.TEXT}

    for message in messages:
        content = message.get("content")
        if not isinstance(content, list):
            continue
        for part in content:
            if isinstance(part, dict) and part.get("type") in _PART_MODALITIES:
                modalities.add(_PART_MODALITIES[part["type"]])

    response_format = options.response_format or {}
    format_type = response_format.get("type")
    json_schema = format_type in ("json_schema", "json_object")
    structured_outputs = (
        format_type == "json_schema"
        and (response_format.get("json_schema") or {}).get("strict") is True
    )

    return RequestRequirements(
        input_modalities=modalities,
        streaming=options.stream,
        tools=bool(options.tools),
        json_schema=json_schema,
        structured_outputs=structured_outputs,
        max_output_tokens=options.max_tokens,
        estimated_input_tokens=estimated_input_tokens,
    )


def validate_request_against_capabilities(
    model_id: str,
    requirements: RequestRequirements,
    capabilities: ModelCapabilities,
) -> None:
    """
    Validate that request requirements match model capabilities.

    Args:
        model_id: Model identifier, reported in the error.
        requirements: Derived request requirements.
        capabilities: Declared model capabilities.

    Raises:
        CapabilityError: With every violated constraint, if any.
    """
    errors: list[str] = []
    supported_inputs = capabilities.modalities.input

    for required in sorted(requirements.input_modalities, key=lambda m: m.value):
        if required not in supported_inputs:
            supported = ", ".join(m.value for m in supported_inputs)
            errors.append(f"requires {required.value} input, model supports only {supported}")

    if requirements.streaming and not capabilities.streaming:
        errors.append("requires streaming, model does not support streaming")

    if requirements.tools and not capabilities.tools:
        errors.append(
            "requires native tool calling, model does not support tools. "
            "Consider using text-based tool extraction instead."
        )

    if requirements.json_schema and not capabilities.json_schema:
        errors.append("requires JSON schema response format, model does not support json_schema")

    if requirements.structured_outputs and not capabilities.structured_outputs:
        errors.append(
            "requires strict structured outputs, model does not support structured outputs"
        )

    if (
        requirements.max_output_tokens
        and capabilities.max_output_tokens
        and requirements.max_output_tokens > capabilities.max_output_tokens
    ):
        errors.append(
            f"requested {requirements.max_output_tokens} output tokens, "
            f"model max is {capabilities.max_output_tokens}"
        )

    if requirements.estimated_input_tokens > capabilities.context_window:
        errors.append(
            f"estimated {requirements.estimated_input_tokens} input tokens exceeds "
            f"context window of {capabilities.context_window}"
        )

    if errors:
        logger.warning(
            f"Request validation failed for {model_id}: {errors} "
            f"(requirements: {requirements.summary()})"
        )
        raise CapabilityError(model_id, errors)

    logger.debug(f"Request validation passed for {model_id}: {requirements.summary()}")


def model_supports_tools(capabilities: ModelCapabilities) -> bool:
    """Check if model supports native tool calling."""
    return capabilities.tools is True


def model_supports_json_schema(capabilities: ModelCapabilities) -> bool:
    """Check if model supports the JSON schema response format."""
    return capabilities.json_schema is True


def model_supports_structured_outputs(capabilities: ModelCapabilities) -> bool:
    """Check if model supports strict structured outputs."""
    return capabilities.structured_outputs is True


def model_supports_streaming(capabilities: ModelCapabilities) -> bool:
    return capabilities.streaming


def model_supports_reasoning(capabilities: ModelCapabilities) -> bool:
    return capabilities.reasoning.supported


def get_reasoning_mode(capabilities: ModelCapabilities) -> str | None:
    """Get the reasoning mode of a model, if declared."""
    return capabilities.reasoning.mode
