"""Tests for tool call parser."""

from toolloop.agent.parser import ToolCallParser
from toolloop.providers.models import ToolCallRequest

FENCED = (
    "Let me calculate that.\n"
    "```json\n"
    '{"type": "tool_calls", "calls": [{"name": "calculator", "args": {"expression": "2 + 2"}}]}\n'
    "```"
)

INLINE = 'Sure {"type": "tool_calls", "calls": [{"name": "calculator", "args": {"expression": "3*3"}}]}'


class TestParseNative:
    """Tests for native tool call parsing."""

    def test_parse_native(self):
        """Arguments are decoded from JSON."""
        calls = ToolCallParser.parse_native(
            [
                ToolCallRequest(id="call_1", name="calculator", arguments='{"expression": "1+1"}'),
                ToolCallRequest(id="call_2", name="current_time", arguments=""),
            ]
        )

        assert [(c.id, c.name, c.input) for c in calls] == [
            ("call_1", "calculator", {"expression": "1+1"}),
            ("call_2", "current_time", {}),
        ]

    def test_parse_native_none(self):
        """No tool calls parse to an empty list."""
        assert ToolCallParser.parse_native(None) == []

    def test_parse_native_bad_arguments(self):
        """Malformed or non-object arguments become an empty input."""
        calls = ToolCallParser.parse_native(
            [
                ToolCallRequest(id="a", name="x", arguments="{not json"),
                ToolCallRequest(id="b", name="y", arguments="[1, 2]"),
            ]
        )

        assert [c.input for c in calls] == [{}, {}]


class TestExtractThinking:
    """Tests for <think> extraction."""

    def test_extract_thinking(self):
        """The first think section is split from the content."""
        thinking, cleaned = ToolCallParser.extract_thinking("<think> plan it </think>The answer.")

        assert thinking == "plan it"
        assert cleaned == "The answer."

    def test_case_insensitive(self):
        """Think tags match regardless of case."""
        thinking, _ = ToolCallParser.extract_thinking("<THINK>x</THINK>y")

        assert thinking == "x"

    def test_no_thinking(self):
        """Content without tags is returned stripped."""
        assert ToolCallParser.extract_thinking("  plain  ") == (None, "plain")


class TestTextToolCalls:
    """Tests for text-embedded tool calls."""

    def test_fenced_block(self):
        """Tool calls in a ```json block are extracted and removed."""
        calls, remaining = ToolCallParser.extract_text_tool_calls(FENCED)

        assert len(calls) == 1
        assert calls[0].name == "calculator"
        assert calls[0].arguments == {"expression": "2 + 2"}
        assert remaining == "Let me calculate that."

    def test_inline_object(self):
        """Inline tool-call objects are extracted and removed."""
        calls, remaining = ToolCallParser.extract_text_tool_calls(INLINE)

        assert [c.arguments for c in calls] == [{"expression": "3*3"}]
        assert remaining == "Sure"

    def test_inline_object_with_array_args(self):
        """Arrays inside inline call arguments do not cut the object short."""
        content = 'Calling {"type": "tool_calls", "calls": [{"name": "sum", "args": {"values": [1, 2]}}]} now'

        calls, remaining = ToolCallParser.extract_text_tool_calls(content)

        assert [(c.name, c.arguments) for c in calls] == [("sum", {"values": [1, 2]})]
        assert remaining == "Calling  now"

    def test_inline_array_args_get_step_ids(self):
        """Text-mode calls with nested arrays are returned with step ids."""
        content = 'Calling {"type": "tool_calls", "calls": [{"name": "sum", "args": {"values": [1, 2]}}]}'

        calls = ToolCallParser.parse_text_tool_calls(content, None, 1)

        assert [(c.id, c.name, c.input) for c in calls] == [("call_1_0", "sum", {"values": [1, 2]})]

    def test_multiple_inline_objects(self):
        """Every inline tool-call object in the text is extracted."""
        content = (
            '{"type": "tool_calls", "calls": [{"name": "a", "args": {"x": [[1], [2]]}}]} and '
            '{"type": "tool_calls", "calls": [{"name": "b", "args": {"s": "]}"}}]}'
        )

        calls, remaining = ToolCallParser.extract_text_tool_calls(content)

        assert [c.name for c in calls] == ["a", "b"]
        assert calls[1].arguments == {"s": "]}"}
        assert remaining == "and"

    def test_other_json_blocks_kept(self):
        """JSON blocks that are not tool calls stay in the text."""
        content = '```json\n{"result": 1}\n```'

        calls, remaining = ToolCallParser.extract_text_tool_calls(content)

        assert calls == []
        assert remaining == content

    def test_invalid_calls_skipped(self):
        """Calls without a name or object args are ignored."""
        content = '```json\n{"type": "tool_calls", "calls": [{"name": "x"}, {"args": {}}, {"name": "ok", "args": {}}]}\n```'

        calls, _ = ToolCallParser.extract_text_tool_calls(content)

        assert [c.name for c in calls] == ["ok"]

    def test_parse_text_tool_calls_ids(self):
        """Text-mode ids encode the step and the call index."""
        content = (
            "```json\n"
            '{"type": "tool_calls", "calls": [{"name": "a", "args": {}}, {"name": "b", "args": {"k": 1}}]}\n'
            "```"
        )

        calls = ToolCallParser.parse_text_tool_calls(content, None, step_number=3)

        assert [(c.id, c.name, c.input) for c in calls] == [
            ("call_3_0", "a", {}),
            ("call_3_1", "b", {"k": 1}),
        ]

    def test_parse_text_tool_calls_from_reasoning(self):
        """Reasoning is searched when the content has no calls."""
        calls = ToolCallParser.parse_text_tool_calls("Working on it.", INLINE, step_number=1)

        assert [c.name for c in calls] == ["calculator"]

    def test_content_calls_take_precedence(self):
        """Reasoning is ignored when the content already has calls."""
        reasoning = '{"type": "tool_calls", "calls": [{"name": "other", "args": {}}]}'

        calls = ToolCallParser.parse_text_tool_calls(FENCED, reasoning, step_number=1)

        assert [c.name for c in calls] == ["calculator"]


class TestParseText:
    """Tests for parse_text and extract_final_response."""

    def test_reasoning_field_precedence(self):
        """A reasoning field wins over think tags."""
        result = ToolCallParser.parse_text("<think>tags</think>Answer", reasoning="field")

        assert result.thinking == "field"
        assert result.thinking_source == "reasoning_field"
        assert result.text_response == "Answer"

    def test_embedded_thinking(self):
        """Think tags are used when there is no reasoning field."""
        result = ToolCallParser.parse_text("<think>tags</think>Answer")

        assert result.thinking == "tags"
        assert result.thinking_source == "embedded_tags"
        assert result.has_tool_calls is False

    def test_empty_content(self):
        """Empty content gives an empty result."""
        result = ToolCallParser.parse_text("")

        assert result.text_response is None
        assert result.tool_calls == []

    def test_final_response_strips_markup(self):
        """The final response excludes thinking and tool-call JSON."""
        content = "<think>hmm</think>" + FENCED

        assert ToolCallParser.extract_final_response(content) == "Let me calculate that."

    def test_final_response_fallback(self):
        """With nothing left after stripping, the raw content is returned."""
        content = '{"type": "tool_calls", "calls": []}'

        assert ToolCallParser.extract_final_response(content) == content

    def test_final_response_plain(self):
        """Plain text is returned stripped."""
        assert ToolCallParser.extract_final_response("  The answer is 42.  ") == "The answer is 42."
