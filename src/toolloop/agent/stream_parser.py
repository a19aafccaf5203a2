"""Parser for streamed (server-sent events) model responses.

Turns the raw SSE byte stream of an OpenAI-compatible completion into:
- reasoning deltas (``delta.reasoning`` / ``delta.reasoning_content``)
- text deltas, with ``<think>`` sections split out as thinking
- tool calls embedded in the text (fenced ```json blocks or inline
  ``{"type": "tool_calls", "calls": [...]}`` objects)

while accumulating the raw content, native tool-call deltas, usage and
finish reason for the caller to read once the stream ends. Markers split
across chunk boundaries are held back until they can be decided.
"""

import codecs
import json
import logging
import re
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from toolloop.providers.models import TokenUsage, ToolCallRequest

logger = logging.getLogger(__name__)

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"
FENCE = "```"
_INLINE_TOOL_CALLS = re.compile(r'\{\s*"type"\s*:\s*"tool_calls"')
_INLINE_TOOL_CALLS_HEAD = '{"type":"tool_calls"'


# =============================================================================
# SSE lines
# =============================================================================


class SSEKind(str, Enum):
    CONTENT = "content"
    REASONING = "reasoning"
    TOOL_CALL_DELTA = "tool_call_delta"
    USAGE = "usage"
    FINISH_REASON = "finish_reason"
    DONE = "done"


@dataclass
class ToolCallDelta:
    """Fragment of a native tool call, keyed by its index in the response."""

    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None


@dataclass
class SSEItem:
    kind: SSEKind
    content: Optional[str] = None
    usage: Optional[TokenUsage] = None
    finish_reason: Optional[str] = None
    tool_call_delta: Optional[ToolCallDelta] = None


def parse_sse_line(line: str) -> list[SSEItem]:
    """Parse one SSE line into zero or more items.

    Comment lines, non-data fields and malformed JSON yield nothing.
    """
    if not line or line.startswith(":") or not line.startswith("data:"):
        return []

    data = line[len("data:"):]
    if data.startswith(" "):
        data = data[1:]
    if data.strip() == "[DONE]":
        return [SSEItem(SSEKind.DONE)]

    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse SSE line as JSON: {e}")
        return []
    if not isinstance(payload, dict):
        return []

    items: list[SSEItem] = []
    choices = payload.get("choices") or []
    choice = choices[0] if choices and isinstance(choices[0], dict) else {}
    delta = choice.get("delta") or {}

    reasoning = delta.get("reasoning")
    if reasoning is None:
        reasoning = delta.get("reasoning_content")
    if isinstance(reasoning, str) and reasoning.strip():
        items.append(SSEItem(SSEKind.REASONING, content=reasoning))

    content = delta.get("content")
    if isinstance(content, str) and content:
        items.append(SSEItem(SSEKind.CONTENT, content=content))

    for tc in delta.get("tool_calls") or []:
        function = tc.get("function") or {}
        items.append(
            SSEItem(
                SSEKind.TOOL_CALL_DELTA,
                tool_call_delta=ToolCallDelta(
                    index=tc.get("index") or 0,
                    id=tc.get("id"),
                    name=function.get("name"),
                    arguments=function.get("arguments"),
                ),
            )
        )

    if choice.get("finish_reason"):
        items.append(SSEItem(SSEKind.FINISH_REASON, finish_reason=choice["finish_reason"]))

    usage = payload.get("usage")
    if isinstance(usage, dict):
        items.append(
            SSEItem(
                SSEKind.USAGE,
                usage=TokenUsage(
                    prompt_tokens=usage.get("prompt_tokens") or 0,
                    completion_tokens=usage.get("completion_tokens") or 0,
                    total_tokens=usage.get("total_tokens") or 0,
                ),
            )
        )

    return items


# =============================================================================
# Content segmentation
# =============================================================================


class SegmentKind(str, Enum):
    TEXT = "text"
    THINK = "think"
    TOOL_CALL = "tool_call"
    REASONING = "reasoning"


@dataclass
class StreamSegment:
    """A piece of parsed stream output ready to surface to the caller."""

    kind: SegmentKind
    content: str = ""
    data: Optional[dict[str, Any]] = None


def find_json_end(text: str) -> int:
    """Index of the brace closing the JSON value opening ``text``, or -1."""
    depth = 0
    in_string = False
    escaped = False

    for i, char in enumerate(text):
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return i
    return -1


def _partial_suffix(text: str, marker: str) -> int:
    """Length of the longest suffix of ``text`` that is a proper prefix of ``marker``."""
    for size in range(min(len(marker) - 1, len(text)), 0, -1):
        if text.endswith(marker[:size]):
            return size
    return 0


def _parse_tool_calls_json(text: str) -> Optional[dict[str, Any]]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    if isinstance(parsed, dict) and parsed.get("type") == "tool_calls" and isinstance(parsed.get("calls"), list):
        return parsed
    return None


class ContentSplitter:
    """Incrementally splits streamed content into text, thinking and tool calls."""

    def __init__(self) -> None:
        self._buffer = ""
        self._in_think = False
        self._in_code = False
        self._code_header = ""
        self._code_lang = ""
        self._code_body = ""

    def feed(self, text: str) -> list[StreamSegment]:
        self._buffer += text
        segments: list[StreamSegment] = []

        while self._buffer:
            if self._in_think:
                if not self._consume_think(segments):
                    break
            elif self._in_code:
                if not self._consume_code(segments):
                    break
            elif not self._consume_text(segments):
                break

        return segments

    def _consume_think(self, segments: list[StreamSegment]) -> bool:
        end = self._buffer.find(THINK_CLOSE)
        if end != -1:
            if end > 0:
                segments.append(StreamSegment(SegmentKind.THINK, self._buffer[:end]))
            self._buffer = self._buffer[end + len(THINK_CLOSE):]
            self._in_think = False
            return True

        cut = len(self._buffer) - _partial_suffix(self._buffer, THINK_CLOSE)
        if cut > 0:
            segments.append(StreamSegment(SegmentKind.THINK, self._buffer[:cut]))
        self._buffer = self._buffer[cut:]
        return False

    def _consume_code(self, segments: list[StreamSegment]) -> bool:
        end = self._buffer.find(FENCE)
        if end == -1:
            cut = len(self._buffer) - _partial_suffix(self._buffer, FENCE)
            self._code_body += self._buffer[:cut]
            self._buffer = self._buffer[cut:]
            return False

        body = self._code_body + self._buffer[:end]
        self._buffer = self._buffer[end + len(FENCE):]
        self._in_code = False

        data = _parse_tool_calls_json(body.strip()) if self._code_lang == "json" else None
        if data is not None:
            logger.debug(f"Detected tool call in JSON code block: {data}")
            segments.append(StreamSegment(SegmentKind.TOOL_CALL, data=data))
        else:
            segments.append(StreamSegment(SegmentKind.TEXT, f"{self._code_header}{body}{FENCE}"))
        self._code_header = self._code_lang = self._code_body = ""
        return True

    def _consume_text(self, segments: list[StreamSegment]) -> bool:
        candidates = []
        think = self._buffer.find(THINK_OPEN)
        if think != -1:
            candidates.append((think, THINK_OPEN))
        fence = self._buffer.find(FENCE)
        if fence != -1:
            candidates.append((fence, FENCE))
        inline = _INLINE_TOOL_CALLS.search(self._buffer)
        if inline:
            candidates.append((inline.start(), "{"))

        if not candidates:
            cut = len(self._buffer) - self._holdback()
            if cut > 0:
                segments.append(StreamSegment(SegmentKind.TEXT, self._buffer[:cut]))
            self._buffer = self._buffer[cut:]
            return False

        position, marker = min(candidates)
        if position > 0:
            segments.append(StreamSegment(SegmentKind.TEXT, self._buffer[:position]))
            self._buffer = self._buffer[position:]

        if marker == THINK_OPEN:
            self._buffer = self._buffer[len(THINK_OPEN):]
            self._in_think = True
            return True

        if marker == FENCE:
            newline = self._buffer.find("\n")
            if newline == -1:
                return False
            self._code_header = self._buffer[: newline + 1]
            self._code_lang = self._buffer[len(FENCE):newline].strip().lower()
            self._code_body = ""
            self._buffer = self._buffer[newline + 1:]
            self._in_code = True
            return True

        end = find_json_end(self._buffer)
        if end == -1:
            return False
        raw = self._buffer[: end + 1]
        self._buffer = self._buffer[end + 1:]
        data = _parse_tool_calls_json(raw)
        if data is not None:
            logger.debug(f"Detected inline tool call: {data}")
            segments.append(StreamSegment(SegmentKind.TOOL_CALL, data=data))
        else:
            segments.append(StreamSegment(SegmentKind.TEXT, raw))
        return True

    def _holdback(self) -> int:
        """How many trailing characters might still start a marker."""
        held = max(
            _partial_suffix(self._buffer, THINK_OPEN),
            _partial_suffix(self._buffer, FENCE),
        )
        brace = self._buffer.rfind("{")
        if brace != -1:
            compact = re.sub(r"\s+", "", self._buffer[brace:])
            if _INLINE_TOOL_CALLS_HEAD.startswith(compact):
                held = max(held, len(self._buffer) - brace)
        return held

    def flush(self) -> list[StreamSegment]:
        """Emit whatever is still buffered once the stream has ended."""
        segments: list[StreamSegment] = []
        if self._in_think:
            if self._buffer:
                segments.append(StreamSegment(SegmentKind.THINK, self._buffer))
        elif self._in_code:
            pending = f"{self._code_header}{self._code_body}{self._buffer}"
            if pending:
                segments.append(StreamSegment(SegmentKind.TEXT, pending))
        elif self._buffer:
            segments.append(StreamSegment(SegmentKind.TEXT, self._buffer))

        self._buffer = ""
        self._in_think = self._in_code = False
        self._code_header = self._code_lang = self._code_body = ""
        return segments


# =============================================================================
# Stream parser
# =============================================================================


@dataclass
class _PendingToolCall:
    id: str
    name: str = ""
    arguments: str = ""


@dataclass
class StreamParser:
    """Parses one SSE completion stream and accumulates its outcome.

    Iterate ``parse(stream)`` for live segments; once it is exhausted the
    accumulated ``content``, ``reasoning``, ``thinking``, ``tool_calls``,
    ``usage`` and ``finish_reason`` describe the whole response.
    """

    content: str = ""
    reasoning: str = ""
    thinking: str = ""
    usage: Optional[TokenUsage] = None
    finish_reason: Optional[str] = None
    done: bool = False
    _pending: dict[int, _PendingToolCall] = field(default_factory=dict)
    _splitter: ContentSplitter = field(default_factory=ContentSplitter)
    _lines: str = ""
    _decoder: Any = field(default_factory=lambda: codecs.getincrementaldecoder("utf-8")())

    @property
    def tool_calls(self) -> list[ToolCallRequest]:
        """Native tool calls accumulated from deltas, in index order."""
        return [
            ToolCallRequest(id=call.id, name=call.name, arguments=call.arguments or "{}")
            for _, call in sorted(self._pending.items())
        ]

    async def parse(self, stream: AsyncIterator[bytes]) -> AsyncIterator[StreamSegment]:
        """Consume ``stream`` and yield segments as they become decidable."""
        try:
            async for chunk in stream:
                for segment in self.feed(self._decoder.decode(chunk)):
                    yield segment
                if self.done:
                    break
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        for segment in self.finish():
            yield segment

    def feed(self, text: str) -> list[StreamSegment]:
        """Feed decoded text; returns the segments it completes."""
        if self.done:
            return []
        self._lines += text
        segments: list[StreamSegment] = []

        *lines, self._lines = self._lines.split("\n")
        for line in lines:
            segments.extend(self._handle_line(line.rstrip("\r")))
            if self.done:
                break
        return segments

    def finish(self) -> list[StreamSegment]:
        """Process any trailing partial line and flush buffered content."""
        segments: list[StreamSegment] = []
        if not self.done:
            tail = self._lines + self._decoder.decode(b"", final=True)
            self._lines = ""
            if tail.strip():
                segments.extend(self._handle_line(tail.rstrip("\r")))
        self.done = True
        segments.extend(self._track(self._splitter.flush()))
        return segments

    def _handle_line(self, line: str) -> list[StreamSegment]:
        segments: list[StreamSegment] = []
        for item in parse_sse_line(line):
            if item.kind == SSEKind.DONE:
                self.done = True
                break
            if item.kind == SSEKind.USAGE:
                self.usage = item.usage
            elif item.kind == SSEKind.FINISH_REASON:
                self.finish_reason = item.finish_reason
            elif item.kind == SSEKind.REASONING:
                self.reasoning += item.content or ""
                segments.append(StreamSegment(SegmentKind.REASONING, item.content or ""))
            elif item.kind == SSEKind.TOOL_CALL_DELTA:
                self._accumulate(item.tool_call_delta)
            elif item.kind == SSEKind.CONTENT:
                self.content += item.content or ""
                segments.extend(self._track(self._splitter.feed(item.content or "")))
        return segments

    def _accumulate(self, delta: Optional[ToolCallDelta]) -> None:
        if delta is None:
            return
        pending = self._pending.get(delta.index)
        if pending is None:
            pending = self._pending[delta.index] = _PendingToolCall(id=delta.id or f"tool_{delta.index}")
        elif delta.id:
            pending.id = delta.id
        if delta.name:
            pending.name = delta.name
        if delta.arguments:
            pending.arguments += delta.arguments

    def _track(self, segments: list[StreamSegment]) -> list[StreamSegment]:
        for segment in segments:
            if segment.kind == SegmentKind.THINK:
                self.thinking += segment.content
        return segments
