"""
Integration tests for end-to-end agent runs.

Each scenario drives a ToolLoopAgent against a scripted transport with the
built-in tools, in both blocking and streaming mode, and checks the
invariants every run must hold.
"""

import json

import pytest
from pydantic import BaseModel

from toolloop import AgentConfig, AgentContext, GenerateOptions, ToolLoopAgent
from toolloop.agent.models import AgentResult, EventType, StopReason, ToolCallingMode
from toolloop.agent.stop_conditions import (
    any_of,
    evaluate_stop_conditions,
    no_tool_calls,
    step_count_is,
)
from toolloop.config.schema import AgentSettings, ModelEntry, Settings
from toolloop.providers.exceptions import CapabilityError
from toolloop.providers.fake import ScriptedTransport
from toolloop.providers.models import (
    AIResponse,
    ModelCapabilities,
    RequestRequirements,
    TokenUsage,
    ToolCallRequest,
)
from toolloop.providers.validation import validate_request_against_capabilities
from toolloop.tools.base import tool
from toolloop.tools.builtin import register_builtin_tools
from toolloop.tools.executor import APPROVAL_REQUIRED_ERROR
from toolloop.tools.registry import ToolRegistry

pytestmark = pytest.mark.integration


def _calc(call_id: str, expression: str) -> AIResponse:
    return AIResponse(
        content="",
        tool_calls=[
            ToolCallRequest(id=call_id, name="calculator", arguments=json.dumps({"expression": expression}))
        ],
        usage=TokenUsage(prompt_tokens=50, completion_tokens=12),
        finish_reason="tool_calls",
    )


def _answer(text: str) -> AIResponse:
    return AIResponse(
        content=text,
        usage=TokenUsage(prompt_tokens=80, completion_tokens=9),
        finish_reason="stop",
    )


@pytest.fixture
def registry() -> ToolRegistry:
    """Registry with the built-in tools."""
    registry = ToolRegistry()
    register_builtin_tools(registry)
    return registry


def assert_run_invariants(result: AgentResult) -> None:
    """Properties every completed run must satisfy."""
    assert len(result.steps) >= 1
    terminal = [step for step in result.steps if step.is_terminal]
    assert terminal == [result.steps[-1]]
    assert result.steps[-1].stop_reason is not None
    assert [step.step_number for step in result.steps] == list(range(1, len(result.steps) + 1))
    assert result.usage.total_tokens == result.usage.total_prompt_tokens + result.usage.total_completion_tokens
    assert len(result.tool_call_summaries) == sum(len(step.tool_results or []) for step in result.steps)


class TestCalculatorScenario:
    """The model answers an arithmetic question with the calculator."""

    @pytest.mark.asyncio
    async def test_generate(self, registry, context):
        """The run finishes within five steps with the right answer."""
        transport = ScriptedTransport([_calc("call_a", "25 + 17"), _answer("25 + 17 equals 42.")])
        config = AgentConfig(
            model="test-model",
            instructions="You are a precise assistant. Use tools for arithmetic.",
            stop_when=any_of(step_count_is(5), no_tool_calls()),
        )
        agent = ToolLoopAgent(transport, registry, config)

        result = await agent.generate(GenerateOptions(prompt="What is 25 + 17?", context=context))

        assert_run_invariants(result)
        assert len(result.steps) <= 5
        executions = [e for step in result.steps for e in step.tool_results or []]
        assert [e.tool_name for e in executions] == ["calculator"]
        assert executions[0].output.success is True
        assert executions[0].output.content == "42"
        assert "42" in result.text
        assert result.stop_reason == StopReason.NO_TOOL_CALLS

    @pytest.mark.asyncio
    async def test_multi_step_chain(self, registry, context):
        """Results of one step feed the next tool call."""
        transport = ScriptedTransport(
            [_calc("c1", "25 + 17"), _calc("c2", "42 * 2"), _answer("Doubled, that is 84.")]
        )
        agent = ToolLoopAgent(transport, registry, AgentConfig(model="m"))

        result = await agent.generate(GenerateOptions(prompt="Double 25 + 17", context=context))

        assert_run_invariants(result)
        assert [s.tool_results[0].output.content for s in result.steps[:2]] == ["42", "84"]
        assert transport.calls[2].messages[-1]["content"] == "84"
        assert result.usage.total_prompt_tokens == 180

    @pytest.mark.asyncio
    async def test_generate_stream_parity(self, registry):
        """Blocking and streaming runs of the same script agree."""
        script = [_calc("call_a", "25 + 17"), _answer("The answer is 42.")]

        blocking = await ToolLoopAgent(ScriptedTransport(script), registry, AgentConfig(model="m")).generate(
            GenerateOptions(prompt="What is 25 + 17?", context=AgentContext.create("u"))
        )
        streaming_agent = ToolLoopAgent(ScriptedTransport(script), registry, AgentConfig(model="m"))
        stream = streaming_agent.stream(
            GenerateOptions(prompt="What is 25 + 17?", context=AgentContext.create("u"))
        )
        events = [event async for event in stream]
        streamed = await stream.result

        assert_run_invariants(blocking)
        assert_run_invariants(streamed)
        assert streamed.text == blocking.text
        assert len(streamed.steps) == len(blocking.steps)
        assert streamed.usage == blocking.usage
        assert events[-1].event_type == EventType.DONE
        assert events[-1].agent_result is streamed

        starts = [i for i, e in enumerate(events) if e.event_type == EventType.TOOL_CALL_START]
        completes = [i for i, e in enumerate(events) if e.event_type == EventType.TOOL_CALL_COMPLETE]
        assert len(starts) == len(completes) == 1
        assert starts[0] < completes[0]


class TestStepLimitScenario:
    """A model that never stops calling tools is cut off."""

    @pytest.mark.asyncio
    async def test_step_count(self, registry, context):
        """The run stops after two steps despite further tool calls."""
        transport = ScriptedTransport([_calc("loop", "1 + 1")], repeat_last=True)
        config = AgentConfig(model="m", stop_when=step_count_is(2))
        agent = ToolLoopAgent(transport, registry, config)

        result = await agent.generate(GenerateOptions(prompt="Keep going", context=context))

        assert_run_invariants(result)
        assert len(result.steps) == 2
        assert result.stop_reason == StopReason.MAX_STEPS
        assert result.steps[-1].tool_call_count == 1
        assert len(transport.calls) == 2

    @pytest.mark.asyncio
    async def test_settings_step_limit(self, registry, context):
        """max_steps from settings bounds the run."""
        settings = Settings(agent=AgentSettings(model="m", max_steps=3))
        transport = ScriptedTransport([_calc("loop", "2 + 2")], repeat_last=True)
        agent = ToolLoopAgent(transport, registry, settings.to_agent_config())

        result = await agent.generate(GenerateOptions(prompt="Keep going", context=context))

        assert len(result.steps) == 3
        assert result.stop_reason == StopReason.MAX_STEPS


class TestApprovalScenario:
    """Tools that need approval never run."""

    @pytest.mark.asyncio
    async def test_needs_approval(self, context):
        """execute is never invoked and the model is told why."""
        invoked = []

        class DeleteInput(BaseModel):
            path: str

        @tool("delete_file", "Delete a file", DeleteInput, needs_approval=True)
        def delete_file(input: DeleteInput, ctx: AgentContext) -> str:
            invoked.append(input.path)
            return "deleted"

        transport = ScriptedTransport(
            [
                AIResponse(
                    tool_calls=[ToolCallRequest(id="d1", name="delete_file", arguments='{"path": "/tmp/x"}')]
                ),
                _answer("I could not delete the file without approval."),
            ]
        )
        agent = ToolLoopAgent(transport, [delete_file], AgentConfig(model="m"))

        result = await agent.generate(GenerateOptions(prompt="Delete /tmp/x", context=context))

        assert_run_invariants(result)
        assert invoked == []
        output = result.steps[0].tool_results[0].output
        assert output.success is False
        assert output.error == APPROVAL_REQUIRED_ERROR
        assert transport.calls[1].messages[-1]["content"] == f"Error: {APPROVAL_REQUIRED_ERROR}"


class TestCapabilityScenario:
    """Requests a model cannot serve are refused up front."""

    def test_validator(self):
        """A tools request against a tool-less model reports the model."""
        with pytest.raises(CapabilityError) as exc_info:
            validate_request_against_capabilities(
                "local/llama-small",
                RequestRequirements(tools=True),
                ModelCapabilities(tools=False),
            )

        assert exc_info.value.errors
        assert exc_info.value.model_id == "local/llama-small"

    @pytest.mark.asyncio
    async def test_agent_refuses_before_calling(self, registry, context):
        """The agent never reaches the transport."""
        settings = Settings(
            agent=AgentSettings(model="small"),
            models={
                "small": ModelEntry(
                    provider_model="ollama/llama3",
                    capabilities=ModelCapabilities(tools=False),
                )
            },
        )
        transport = ScriptedTransport([_answer("unused")])
        agent = ToolLoopAgent(transport, registry, settings.to_agent_config())

        with pytest.raises(CapabilityError):
            await agent.generate(GenerateOptions(prompt="What is 2 + 2?", context=context))

        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_text_mode_avoids_native_tools(self, registry, context):
        """Text-based tool calling works on a model without native tools."""
        content = '{"type": "tool_calls", "calls": [{"name": "calculator", "args": {"expression": "2 + 2"}}]}'
        transport = ScriptedTransport([AIResponse(content=content), _answer("2 + 2 = 4")])
        config = AgentConfig(
            model="small",
            tool_calling_mode=ToolCallingMode.TEXT,
            model_capabilities={"small": ModelCapabilities(tools=False)},
        )
        agent = ToolLoopAgent(transport, registry, config)

        result = await agent.generate(GenerateOptions(prompt="What is 2 + 2?", context=context))

        assert_run_invariants(result)
        assert result.steps[0].tool_results[0].output.content == "4"
        assert result.text == "2 + 2 = 4"


class TestOffModeScenario:
    """Tool calling disabled."""

    @pytest.mark.asyncio
    async def test_native_calls_ignored(self, registry, context):
        """Native tool-call fields are ignored and the run ends after one step."""
        transport = ScriptedTransport([_calc("ignored", "1 + 1")])
        config = AgentConfig(model="m", tool_calling_mode=ToolCallingMode.OFF)
        agent = ToolLoopAgent(transport, registry, config)

        result = await agent.generate(GenerateOptions(prompt="Hi", context=context))

        assert_run_invariants(result)
        assert len(result.steps) == 1
        assert result.steps[0].tool_results is None
        assert result.tool_call_summaries == []


class TestStopConditionIdempotence:
    """Stop-condition evaluation over a real run."""

    @pytest.mark.asyncio
    async def test_evaluate_twice(self, registry, context):
        """Evaluating the same history twice yields the same verdict."""
        transport = ScriptedTransport([_calc("c", "3 * 3"), _answer("9")])
        result = await ToolLoopAgent(transport, registry, AgentConfig(model="m")).generate(
            GenerateOptions(prompt="3 * 3?", context=context)
        )
        conditions = [step_count_is(5), no_tool_calls()]

        first = evaluate_stop_conditions(result.steps, conditions)
        second = evaluate_stop_conditions(result.steps, conditions)

        assert first == second
        assert first.reason == StopReason.NO_TOOL_CALLS
        assert evaluate_stop_conditions(result.steps[:1], conditions) == (False, None)
