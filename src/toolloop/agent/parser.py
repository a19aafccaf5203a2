"""Parser for extracting tool calls and thinking from model responses."""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from toolloop.agent.stream_parser import find_json_end
from toolloop.providers.models import ToolCallRequest
from toolloop.tools.models import ToolCall

logger = logging.getLogger(__name__)

_THINK_RE = re.compile(r"<think>\s*([\s\S]*?)\s*</think>", re.IGNORECASE)
_CODE_BLOCK_RE = re.compile(r"```json\s*\n([\s\S]*?)\n```")
_INLINE_TOOL_CALLS_HEAD_RE = re.compile(r'\{\s*"type"\s*:\s*"tool_calls"')


@dataclass
class TextToolCall:
    """Tool call found in generated text."""

    name: str
    arguments: dict[str, Any]


@dataclass
class TextParseResult:
    """Result of parsing text that may embed thinking and tool calls."""

    thinking: Optional[str] = None
    thinking_source: Optional[str] = None  # "reasoning_field" or "embedded_tags"
    text_response: Optional[str] = None
    tool_calls: list[TextToolCall] = field(default_factory=list)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class ToolCallParser:
    """Extracts tool calls from model responses.

    Native tool calls come from the transport's tool-call field; text tool
    calls are JSON objects of the form
    ``{"type": "tool_calls", "calls": [{"name": ..., "args": {...}}]}``
    embedded in the generated text, fenced or inline.
    """

    @staticmethod
    def parse_native(tool_calls: Optional[list[ToolCallRequest]]) -> list[ToolCall]:
        """Convert native tool calls, decoding their JSON arguments.

        Arguments that are not a JSON object decode to an empty input.
        """
        parsed = []
        for call in tool_calls or []:
            try:
                arguments = json.loads(call.arguments) if call.arguments else {}
            except json.JSONDecodeError:
                logger.warning(f"Failed to parse arguments of tool call {call.id}: {call.arguments!r}")
                arguments = {}
            if not isinstance(arguments, dict):
                logger.warning(f"Tool call {call.id} arguments are not an object: {call.arguments!r}")
                arguments = {}
            parsed.append(ToolCall(id=call.id, name=call.name, input=arguments))
        return parsed

    @staticmethod
    def extract_thinking(content: str) -> tuple[Optional[str], str]:
        """Split the first ``<think>`` section from content.

        Returns:
            Tuple of (thinking or None, content without the section)
        """
        match = _THINK_RE.search(content)
        if match and match.group(1):
            return match.group(1).strip(), _THINK_RE.sub("", content, count=1).strip()
        return None, content.strip()

    @staticmethod
    def _calls_from(payload: Any) -> Optional[list[TextToolCall]]:
        if not (isinstance(payload, dict) and payload.get("type") == "tool_calls"):
            return None
        if not isinstance(payload.get("calls"), list):
            return None
        calls = []
        for call in payload["calls"]:
            if isinstance(call, dict) and call.get("name") and isinstance(call.get("args"), dict):
                calls.append(TextToolCall(name=call["name"], arguments=call["args"]))
        return calls

    @classmethod
    def extract_text_tool_calls(cls, content: str) -> tuple[list[TextToolCall], str]:
        """Find tool calls embedded in text.

        Fenced ```json blocks are checked first, then inline objects in
        what remains. Matched JSON is removed from the text.

        Returns:
            Tuple of (tool calls, remaining text)
        """
        calls: list[TextToolCall] = []
        remaining = content

        for match in list(_CODE_BLOCK_RE.finditer(content)):
            block = match.group(1).strip()
            if not block:
                continue
            try:
                found = cls._calls_from(json.loads(block))
            except json.JSONDecodeError:
                logger.warning("Could not parse JSON code block for tool calls")
                continue
            if found is not None:
                calls.extend(found)
                remaining = remaining.replace(match.group(0), "", 1)

        search_from = 0
        while True:
            match = _INLINE_TOOL_CALLS_HEAD_RE.search(remaining, search_from)
            if match is None:
                break
            end = find_json_end(remaining[match.start() :])
            if end < 0:
                break
            candidate = remaining[match.start() : match.start() + end + 1]
            try:
                found = cls._calls_from(json.loads(candidate))
            except json.JSONDecodeError:
                logger.warning(f"Could not parse potential tool call: {candidate}")
                search_from = match.end()
                continue
            if found is None:
                search_from = match.end()
                continue
            calls.extend(found)
            remaining = remaining[: match.start()] + remaining[match.start() + end + 1 :]
            search_from = match.start()

        return calls, remaining.strip()

    @classmethod
    def parse_text(cls, content: str, reasoning: Optional[str] = None) -> TextParseResult:
        """Parse text content that may embed thinking and tool calls.

        A non-empty reasoning field takes precedence over ``<think>`` tags
        as the thinking source; the tags are stripped from the text either way.
        """
        result = TextParseResult()

        if reasoning and reasoning.strip():
            result.thinking = reasoning.strip()
            result.thinking_source = "reasoning_field"

        if not content or not content.strip():
            return result

        embedded, cleaned = cls.extract_thinking(content)
        if embedded and result.thinking is None:
            result.thinking = embedded
            result.thinking_source = "embedded_tags"

        calls, remaining = cls.extract_text_tool_calls(cleaned)
        result.tool_calls = calls
        result.text_response = remaining or None
        return result

    @classmethod
    def parse_text_tool_calls(
        cls,
        content: str,
        reasoning: Optional[str],
        step_number: int,
    ) -> list[ToolCall]:
        """Tool calls for text mode, with ids of the form ``call_<step>_<index>``.

        The reasoning text is searched only when the content has none.
        """
        calls = cls.parse_text(content).tool_calls
        if not calls and reasoning:
            calls, _ = cls.extract_text_tool_calls(reasoning)
        return [
            ToolCall(id=f"call_{step_number}_{index}", name=call.name, input=call.arguments)
            for index, call in enumerate(calls)
        ]

    @classmethod
    def extract_final_response(cls, content: str, reasoning: Optional[str] = None) -> str:
        """Final answer text: content without thinking or tool-call JSON.

        Falls back to the raw content when nothing else remains.
        """
        return cls.parse_text(content, reasoning).text_response or content
