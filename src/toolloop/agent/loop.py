"""Agent execution loop for iterative tool use."""

import asyncio
import copy
import inspect
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Optional

from toolloop.agent.channel import AgentStream, EventChannel, ResultFuture
from toolloop.agent.models import (
    AgentConfig,
    AgentContext,
    AgentResult,
    AgentStep,
    AgentStreamEvent,
    AgentUsage,
    EventType,
    GenerateOptions,
    PrepareStepInfo,
    StepResponse,
    StepToolExecution,
    StepUsage,
    StopReason,
    ToolCallingMode,
)
from toolloop.agent.parser import ToolCallParser
from toolloop.agent.stop_conditions import evaluate_stop_conditions
from toolloop.agent.stream_parser import SegmentKind, StreamParser
from toolloop.providers.models import AIResponse, CallOptions, MessageRole, ToolCallRequest
from toolloop.providers.transport import ModelTransport
from toolloop.providers.validation import (
    derive_request_requirements,
    validate_request_against_capabilities,
)
from toolloop.tools.executor import execute_agent_tool
from toolloop.tools.models import (
    ToolCall,
    ToolCallSummary,
    ToolExecutionResult,
    create_tool_call_summary,
)
from toolloop.tools.registry import ToolRegistry, ToolSource

logger = logging.getLogger(__name__)

Emit = Callable[[AgentStreamEvent], Awaitable[None]]


@dataclass
class _RunState:
    """Mutable state of one run. Never shared between runs."""

    context: AgentContext
    messages: list[dict[str, Any]]
    call_options: CallOptions
    steps: list[AgentStep] = field(default_factory=list)
    summaries: list[ToolCallSummary] = field(default_factory=list)
    prompt_tokens: int = 0
    completion_tokens: int = 0
    thinking: Optional[str] = None


@dataclass
class _StepSetup:
    model: str
    tools: ToolRegistry
    messages: list[dict[str, Any]]
    call_options: CallOptions


class ToolLoopAgent:
    """Agent execution loop with tool use.

    Orchestrates iterative interaction between the model and tools:
    1. Call the model with the available tools
    2. Extract tool calls from the response
    3. Execute them and feed the results back
    4. Repeat until a stop condition matches or the model stops calling tools

    ``generate`` and ``stream`` run the same state machine; they differ only
    in how the model is called and whether events are emitted.
    """

    def __init__(
        self,
        transport: ModelTransport,
        tools: ToolSource,
        config: AgentConfig,
    ):
        """Initialize the agent.

        Args:
            transport: Transport used for every model call
            tools: ToolRegistry, mapping of name to tool, iterable of tools, or None
            config: Agent configuration
        """
        self.transport = transport
        self.config = config
        self.tools = ToolRegistry.from_tools(tools)
        self.parser = ToolCallParser()

    # =========================================================================
    # Public API
    # =========================================================================

    async def generate(self, options: GenerateOptions) -> AgentResult:
        """Run to completion and return the aggregated result.

        Raises:
            CapabilityError: If the model cannot satisfy a request
            TransportError: If a model call fails
        """
        return await self._run(options, emit=None)

    def stream(self, options: GenerateOptions) -> AgentStream:
        """Start a streaming run. Must be called with an event loop running.

        Returns:
            AgentStream yielding events; its ``result`` resolves to the same
            AgentResult the ``done`` event carries, or raises the failure
            reported by the ``error`` event.
        """
        channel: EventChannel[AgentStreamEvent] = EventChannel(capacity=1)
        result: ResultFuture[AgentResult] = ResultFuture()
        task = asyncio.get_running_loop().create_task(self._produce(options, channel, result))
        return AgentStream(channel, result, task)

    async def _produce(
        self,
        options: GenerateOptions,
        channel: EventChannel[AgentStreamEvent],
        result: ResultFuture[AgentResult],
    ) -> None:
        try:
            agent_result = await self._run(options, emit=channel.send)
        except asyncio.CancelledError:
            logger.info(f"Stream cancelled: {options.context.request_id}")
            result.cancel()
            channel.close()
            raise
        except Exception as e:
            logger.error(f"Agent run failed: {options.context.request_id}: {e}")
            result.reject(e)
            await channel.send(AgentStreamEvent(event_type=EventType.ERROR, error=str(e) or type(e).__name__))
            channel.close()
            return

        result.resolve(agent_result)
        await channel.send(AgentStreamEvent(event_type=EventType.DONE, agent_result=agent_result))
        channel.close()

    # =========================================================================
    # State machine
    # =========================================================================

    async def _run(self, options: GenerateOptions, emit: Optional[Emit]) -> AgentResult:
        context = options.context
        state = _RunState(
            context=context,
            messages=await self._initial_messages(options),
            call_options=self.config.call_options.merged(options.call_options),
        )
        mode = self.config.tool_calling_mode
        logger.info(
            f"Starting agent run {context.request_id} "
            f"(model={self.config.model}, mode={mode.value}, streaming={emit is not None})"
        )

        step_number = 0
        while True:
            step_number += 1

            if context.is_aborted:
                logger.info(f"Agent run {context.request_id} aborted before step {step_number}")
                if state.steps:
                    state.steps[-1].is_terminal = True
                    state.steps[-1].stop_reason = StopReason.ABORTED
                break

            setup = await self._prepare_step(step_number, state)
            request_options = self._request_options(setup, streaming=emit is not None)
            self._validate_capabilities(setup, request_options)

            logger.debug(f"Step {step_number}: calling {setup.model} with {len(setup.messages)} messages")
            if emit is None:
                response = await self.transport.call_ai(setup.messages, setup.model, request_options)
            else:
                response = await self._call_streaming(setup, request_options, emit)

            step_usage = None
            if response.usage is not None:
                step_usage = StepUsage(
                    prompt_tokens=response.usage.prompt_tokens,
                    completion_tokens=response.usage.completion_tokens,
                )
                state.prompt_tokens += step_usage.prompt_tokens
                state.completion_tokens += step_usage.completion_tokens

            thinking = self.parser.parse_text(response.content, response.reasoning).thinking
            if thinking:
                state.thinking = thinking

            tool_calls = self._extract_tool_calls(response, setup.tools, step_number)
            state.messages.append(self._assistant_message(response.content, tool_calls))

            step = AgentStep(
                step_number=step_number,
                ai_response=StepResponse(
                    content=response.content,
                    reasoning=response.reasoning,
                    tool_calls=tool_calls or None,
                    usage=step_usage,
                    finish_reason=response.finish_reason,
                ),
            )
            if tool_calls:
                step.tool_results = await self._execute_tool_calls(tool_calls, setup.tools, state, emit)
            state.steps.append(step)

            evaluation = evaluate_stop_conditions(state.steps, self.config.stop_when)
            if evaluation.should_stop:
                step.is_terminal = True
                step.stop_reason = evaluation.reason
            elif not tool_calls:
                step.is_terminal = True
                step.stop_reason = StopReason.NO_TOOL_CALLS

            logger.debug(
                f"Step {step_number} complete: {len(tool_calls)} tool call(s), "
                f"terminal={step.is_terminal}"
            )
            if emit is not None:
                await emit(AgentStreamEvent(event_type=EventType.STEP_COMPLETE, step=step))
            if step.is_terminal:
                break

        result = self._build_result(state)
        logger.info(
            f"Agent run {context.request_id} finished after {len(result.steps)} step(s) "
            f"(reason={result.stop_reason.value if result.stop_reason else None}, "
            f"tokens={result.usage.total_tokens})"
        )
        return result

    async def _initial_messages(self, options: GenerateOptions) -> list[dict[str, Any]]:
        if options.messages is not None:
            messages = copy.deepcopy(options.messages)
        else:
            messages = []
            system_prompt = await self._resolve_instructions(options.context)
            if system_prompt:
                messages.append({"role": MessageRole.SYSTEM.value, "content": system_prompt})
        messages.append({"role": MessageRole.USER.value, "content": options.prompt})
        return messages

    async def _resolve_instructions(self, context: AgentContext) -> Optional[str]:
        instructions = self.config.instructions
        if instructions is None or isinstance(instructions, str):
            return instructions
        value = instructions(context)
        if inspect.isawaitable(value):
            value = await value
        return value

    async def _prepare_step(self, step_number: int, state: _RunState) -> _StepSetup:
        """Apply the prepare_step hook's overrides for this iteration only."""
        setup = _StepSetup(
            model=self.config.model,
            tools=self.tools,
            messages=state.messages,
            call_options=state.call_options,
        )
        hook = self.config.prepare_step
        if hook is None:
            return setup

        info = PrepareStepInfo(
            step_number=step_number,
            steps=list(state.steps),
            model=setup.model,
            tools=setup.tools,
            messages=list(state.messages),
            call_options=setup.call_options,
            context=state.context,
        )
        prepared = hook(info)
        if inspect.isawaitable(prepared):
            prepared = await prepared
        if prepared is None:
            return setup

        if prepared.model:
            setup.model = prepared.model
        if prepared.tools is not None:
            setup.tools = ToolRegistry.from_tools(prepared.tools)
        if prepared.messages is not None:
            setup.messages = prepared.messages
        setup.call_options = setup.call_options.merged(prepared.call_options)
        return setup

    def _request_options(self, setup: _StepSetup, streaming: bool) -> CallOptions:
        definitions = None
        if self.config.tool_calling_mode == ToolCallingMode.NATIVE and len(setup.tools) > 0:
            definitions = setup.tools.get_tool_definitions()
        return setup.call_options.model_copy(
            update={
                "tools": definitions,
                "tool_choice": "auto" if definitions else None,
                "stream": streaming,
            }
        )

    def _validate_capabilities(self, setup: _StepSetup, options: CallOptions) -> None:
        capabilities = self.config.model_capabilities.get(setup.model)
        if capabilities is None:
            return
        estimated = self.transport.estimate_input_tokens(setup.messages, setup.model)
        requirements = derive_request_requirements(setup.messages, options, estimated)
        validate_request_against_capabilities(setup.model, requirements, capabilities)

    async def _call_streaming(self, setup: _StepSetup, options: CallOptions, emit: Emit) -> AIResponse:
        """Stream one model call, emitting deltas, and return the assembled response."""
        response = await self.transport.call_ai_stream(setup.messages, setup.model, options)
        parser = StreamParser()
        async for segment in parser.parse(response.stream):
            if segment.kind in (SegmentKind.REASONING, SegmentKind.THINK):
                await emit(AgentStreamEvent(event_type=EventType.THOUGHT, content=segment.content))
            elif segment.kind == SegmentKind.TEXT and segment.content:
                await emit(AgentStreamEvent(event_type=EventType.TEXT_CHUNK, content=segment.content))
            # Text-mode tool calls are read from the full content once the stream ends

        return AIResponse(
            content=parser.content,
            tool_calls=parser.tool_calls or None,
            usage=parser.usage,
            reasoning=parser.reasoning or None,
            finish_reason=parser.finish_reason,
        )

    def _extract_tool_calls(
        self,
        response: AIResponse,
        tools: ToolRegistry,
        step_number: int,
    ) -> list[ToolCall]:
        mode = self.config.tool_calling_mode
        if mode == ToolCallingMode.OFF:
            return []
        if mode == ToolCallingMode.TEXT:
            if len(tools) == 0:
                return []
            return self.parser.parse_text_tool_calls(response.content, response.reasoning, step_number)
        return self.parser.parse_native(response.tool_calls)

    @staticmethod
    def _assistant_message(content: str, tool_calls: list[ToolCall]) -> dict[str, Any]:
        message: dict[str, Any] = {"role": MessageRole.ASSISTANT.value, "content": content}
        if tool_calls:
            message["tool_calls"] = [
                ToolCallRequest(id=call.id, name=call.name, arguments=json.dumps(call.input)).to_dict()
                for call in tool_calls
            ]
        return message

    async def _execute_tool_calls(
        self,
        tool_calls: list[ToolCall],
        tools: ToolRegistry,
        state: _RunState,
        emit: Optional[Emit],
    ) -> list[StepToolExecution]:
        """Execute tool calls sequentially in the order the model requested them."""
        executions = []
        for call in tool_calls:
            if emit is not None:
                await emit(
                    AgentStreamEvent(
                        event_type=EventType.TOOL_CALL_START,
                        tool_name=call.name,
                        tool_call_id=call.id,
                        arguments=call.input,
                    )
                )

            tool = tools.get(call.name)
            if tool is None:
                logger.warning(f"Tool not found: {call.name}")
                output = ToolExecutionResult.fail(f"Tool '{call.name}' not found")
                duration_ms = 0.0
            else:
                logger.info(f"Executing tool: {call.name} (ID: {call.id})")
                started = time.perf_counter()
                output = await execute_agent_tool(tool, call.input, state.context)
                duration_ms = (time.perf_counter() - started) * 1000

            executions.append(
                StepToolExecution(
                    tool_name=call.name,
                    tool_call_id=call.id,
                    input=call.input,
                    output=output,
                    duration_ms=duration_ms,
                )
            )
            state.messages.append(
                {
                    "role": MessageRole.TOOL.value,
                    "tool_call_id": call.id,
                    "name": call.name,
                    "content": output.content if output.success else f"Error: {output.error}",
                }
            )
            state.summaries.append(
                create_tool_call_summary(
                    call.name,
                    call.input,
                    output.content if output.success else None,
                    duration_ms,
                    output.success,
                    output.error,
                )
            )

            if emit is not None:
                await emit(
                    AgentStreamEvent(
                        event_type=EventType.TOOL_CALL_COMPLETE if output.success else EventType.TOOL_CALL_ERROR,
                        tool_name=call.name,
                        tool_call_id=call.id,
                        result=output,
                        duration_ms=duration_ms,
                        error=output.error,
                    )
                )
        return executions

    def _build_result(self, state: _RunState) -> AgentResult:
        text = ""
        if state.steps:
            last = state.steps[-1].ai_response
            text = self.parser.extract_final_response(last.content, last.reasoning)
        return AgentResult(
            text=text,
            thinking=state.thinking,
            steps=state.steps,
            usage=AgentUsage(
                total_prompt_tokens=state.prompt_tokens,
                total_completion_tokens=state.completion_tokens,
            ),
            tool_call_summaries=state.summaries,
        )
