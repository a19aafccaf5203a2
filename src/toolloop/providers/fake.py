"""
Scripted model transport (offline fixture).

Replays a fixed sequence of responses so the agent loop's orchestration
(tool calls, execution, result feedback, continuation) can be exercised
without a real model or network access. Streaming calls replay the same
responses encoded as OpenAI-style server-sent events.
"""

import copy
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any

from toolloop.providers.exceptions import TransportError
from toolloop.providers.models import AIResponse, AIStreamResponse, CallOptions
from toolloop.providers.transport import encode_sse


@dataclass(frozen=True)
class ScriptedCall:
    """One recorded transport call."""

    messages: list[dict[str, Any]]
    model: str
    options: CallOptions
    streaming: bool


class ScriptedTransport:
    """
    Model transport that consumes one scripted entry per call.

    An entry is either an AIResponse to return or an exception to raise.
    With ``repeat_last`` the final entry is reused once the script runs
    out; otherwise an exhausted script raises TransportError.
    """

    def __init__(
        self,
        script: Sequence[AIResponse | Exception],
        *,
        repeat_last: bool = False,
        chunk_size: int = 8,
    ) -> None:
        self._script = list(script)
        self._index = 0
        self.repeat_last = repeat_last
        self.chunk_size = chunk_size
        self.calls: list[ScriptedCall] = []

    def _next(
        self,
        messages: list[dict[str, Any]],
        model: str,
        options: CallOptions,
        streaming: bool,
    ) -> AIResponse:
        self.calls.append(
            ScriptedCall(
                messages=copy.deepcopy(messages),
                model=model,
                options=options,
                streaming=streaming,
            )
        )

        if self._index < len(self._script):
            entry = self._script[self._index]
            self._index += 1
        elif self.repeat_last and self._script:
            entry = self._script[-1]
        else:
            raise TransportError("Scripted transport exhausted", provider="scripted")

        if isinstance(entry, Exception):
            raise entry
        return entry

    async def call_ai(
        self,
        messages: list[dict[str, Any]],
        model: str,
        options: CallOptions,
    ) -> AIResponse:
        return self._next(messages, model, options, streaming=False)

    async def call_ai_stream(
        self,
        messages: list[dict[str, Any]],
        model: str,
        options: CallOptions,
    ) -> AIStreamResponse:
        response = self._next(messages, model, options, streaming=True)
        return AIStreamResponse(
            stream=self._replay(response),
            estimated_input_tokens=self.estimate_input_tokens(messages, model),
        )

    async def _replay(self, response: AIResponse) -> AsyncIterator[bytes]:
        """Encode a scripted response as a sequence of SSE frames."""
        if response.reasoning:
            yield encode_sse(_delta({"reasoning_content": response.reasoning}))

        content = response.content or ""
        for start in range(0, len(content), self.chunk_size):
            yield encode_sse(_delta({"content": content[start : start + self.chunk_size]}))

        for index, call in enumerate(response.tool_calls or []):
            yield encode_sse(
                _delta(
                    {
                        "tool_calls": [
                            {
                                "index": index,
                                "id": call.id,
                                "type": "function",
                                "function": {"name": call.name, "arguments": call.arguments},
                            }
                        ]
                    }
                )
            )

        yield encode_sse(
            {"choices": [{"index": 0, "delta": {}, "finish_reason": response.finish_reason}]}
        )

        if response.usage:
            yield encode_sse(
                {
                    "choices": [],
                    "usage": {
                        "prompt_tokens": response.usage.prompt_tokens,
                        "completion_tokens": response.usage.completion_tokens,
                        "total_tokens": response.usage.total_tokens,
                    },
                }
            )

        yield encode_sse("[DONE]")

    def estimate_input_tokens(self, messages: list[dict[str, Any]], model: str) -> int:
        return sum(len(str(msg.get("content") or "")) for msg in messages) // 4


def _delta(delta: dict[str, Any]) -> dict[str, Any]:
    return {"choices": [{"index": 0, "delta": delta, "finish_reason": None}]}
