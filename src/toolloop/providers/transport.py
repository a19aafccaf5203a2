"""
Model transport for toolloop.

Defines the interface the agent loop calls models through, and a LiteLLM
implementation of it. The streaming side is normalized to OpenAI-style
server-sent events so the agent only ever parses one wire format.
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol, runtime_checkable

import litellm
from litellm import acompletion, token_counter

from toolloop.providers.exceptions import TransportError
from toolloop.providers.models import (
    AIResponse,
    AIStreamResponse,
    CallOptions,
    TokenUsage,
    ToolCallRequest,
)

logger = logging.getLogger(__name__)

# Drop params a provider does not support instead of failing the request
litellm.drop_params = True


@runtime_checkable
class ModelTransport(Protocol):
    """Interface the agent loop uses to reach a model."""

    async def call_ai(
        self,
        messages: list[dict[str, Any]],
        model: str,
        options: CallOptions,
    ) -> AIResponse:
        """Run a blocking completion."""
        ...

    async def call_ai_stream(
        self,
        messages: list[dict[str, Any]],
        model: str,
        options: CallOptions,
    ) -> AIStreamResponse:
        """Start a streaming completion yielding server-sent-event bytes."""
        ...

    def estimate_input_tokens(self, messages: list[dict[str, Any]], model: str) -> int:
        """Estimate the prompt size of ``messages`` in tokens."""
        ...


def encode_sse(payload: dict[str, Any] | str) -> bytes:
    """Encode one server-sent event ``data:`` frame."""
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {data}\n\n".encode()


class LiteLLMTransport:
    """
    Model transport backed by LiteLLM.

    Resolves aliases, forwards call options as request parameters and
    wraps every provider failure in TransportError.
    """

    def __init__(
        self,
        aliases: dict[str, str] | None = None,
        request_defaults: dict[str, Any] | None = None,
    ):
        """
        Initialize the transport.

        Args:
            aliases: Mapping of short model names to LiteLLM model strings.
            request_defaults: Extra parameters sent with every request
                (``api_base``, ``timeout`` and the like).
        """
        self.aliases = aliases or {}
        self.request_defaults = request_defaults or {}

    def _resolve_model(self, model: str) -> str:
        resolved = self.aliases.get(model, model)
        if resolved != model:
            logger.debug(f"Resolved alias '{model}' to '{resolved}'")
        return resolved

    def _extract_provider(self, model: str) -> str:
        """Extract provider name from model string."""
        if "/" in model:
            return model.split("/")[0]
        return "unknown"

    def _build_request(
        self,
        messages: list[dict[str, Any]],
        model: str,
        options: CallOptions,
    ) -> dict[str, Any]:
        return {
            **self.request_defaults,
            "model": model,
            "messages": messages,
            **options.to_request_kwargs(),
        }

    async def call_ai(
        self,
        messages: list[dict[str, Any]],
        model: str,
        options: CallOptions,
    ) -> AIResponse:
        """
        Send a blocking completion request.

        Args:
            messages: Conversation messages (OpenAI format).
            model: Model name or alias.
            options: Call options.

        Returns:
            Parsed AIResponse.

        Raises:
            TransportError: If the provider call fails.
        """
        resolved = self._resolve_model(model)
        logger.info(f"Completing with model: {resolved}")

        try:
            response = await acompletion(**self._build_request(messages, resolved, options))
        except Exception as e:
            raise TransportError(
                f"Completion failed for {resolved}: {e}",
                provider=self._extract_provider(resolved),
                status_code=getattr(e, "status_code", None),
            ) from e

        return self._parse_response(response)

    def _parse_response(self, response: Any) -> AIResponse:
        """Parse a LiteLLM ModelResponse into an AIResponse."""
        choice = response.choices[0]
        message = choice.message

        tool_calls = None
        if getattr(message, "tool_calls", None):
            tool_calls = [
                ToolCallRequest(
                    id=tc.id,
                    name=tc.function.name,
                    arguments=tc.function.arguments or "{}",
                )
                for tc in message.tool_calls
            ]

        usage = None
        if getattr(response, "usage", None):
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
            )

        return AIResponse(
            content=message.content or "",
            tool_calls=tool_calls,
            usage=usage,
            reasoning=getattr(message, "reasoning_content", None),
            finish_reason=choice.finish_reason,
        )

    async def call_ai_stream(
        self,
        messages: list[dict[str, Any]],
        model: str,
        options: CallOptions,
    ) -> AIStreamResponse:
        """
        Start a streaming completion request.

        Usage is requested as a trailing chunk so stream consumers can
        account for tokens the same way blocking callers do.

        Raises:
            TransportError: If the request cannot be started.
        """
        resolved = self._resolve_model(model)
        logger.info(f"Streaming with model: {resolved}")
        estimated = self.estimate_input_tokens(messages, model)

        request = self._build_request(messages, resolved, options)
        request["stream"] = True
        request["stream_options"] = {"include_usage": True}

        try:
            response = await acompletion(**request)
        except Exception as e:
            raise TransportError(
                f"Streaming failed for {resolved}: {e}",
                provider=self._extract_provider(resolved),
                status_code=getattr(e, "status_code", None),
            ) from e

        return AIStreamResponse(
            stream=self._encode_stream(response, resolved),
            estimated_input_tokens=estimated,
        )

    async def _encode_stream(self, response: Any, model: str) -> AsyncIterator[bytes]:
        """Re-encode LiteLLM stream chunks as server-sent events."""
        try:
            async for chunk in response:
                payload = chunk.model_dump(exclude_none=True) if hasattr(chunk, "model_dump") else dict(chunk)
                yield encode_sse(payload)
        except Exception as e:
            raise TransportError(
                f"Stream interrupted for {model}: {e}",
                provider=self._extract_provider(model),
            ) from e
        yield encode_sse("[DONE]")

    def estimate_input_tokens(self, messages: list[dict[str, Any]], model: str) -> int:
        """
        Count prompt tokens using LiteLLM.

        Falls back to a rough ~4 characters per token estimate when the
        model has no known tokenizer.
        """
        resolved = self._resolve_model(model)
        try:
            return token_counter(model=resolved, messages=messages)
        except Exception as e:
            logger.warning(f"Could not count tokens: {e}")
            total_chars = sum(len(str(msg.get("content") or "")) for msg in messages)
            return total_chars // 4
