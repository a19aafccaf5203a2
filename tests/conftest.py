"""
Pytest configuration and fixtures for toolloop tests.
"""

import json
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from toolloop.agent.models import AgentContext
from toolloop.providers.fake import ScriptedTransport
from toolloop.providers.models import AIResponse, TokenUsage, ToolCallRequest
from toolloop.tools.builtin.calculator import CalculatorTool
from toolloop.tools.registry import ToolRegistry


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove TOOLLOOP_* variables from the environment."""
    import os

    for key in list(os.environ):
        if key.startswith("TOOLLOOP_"):
            monkeypatch.delenv(key)
    return monkeypatch


@pytest.fixture
def context() -> AgentContext:
    """Provide a fresh agent context."""
    return AgentContext.create(user_id="user-1", request_id="req-1")


@pytest.fixture
def calculator_registry() -> ToolRegistry:
    """Provide a registry holding only the calculator tool."""
    return ToolRegistry([CalculatorTool()])


def tool_call_response(
    name: str,
    arguments: dict,
    call_id: str = "call_1",
    prompt_tokens: int = 10,
    completion_tokens: int = 5,
) -> AIResponse:
    """Scripted model turn requesting one native tool call."""
    return AIResponse(
        content="",
        tool_calls=[ToolCallRequest(id=call_id, name=name, arguments=json.dumps(arguments))],
        usage=TokenUsage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
        finish_reason="tool_calls",
    )


def text_response(content: str, prompt_tokens: int = 20, completion_tokens: int = 7) -> AIResponse:
    """Scripted model turn answering with plain text."""
    return AIResponse(
        content=content,
        usage=TokenUsage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
        finish_reason="stop",
    )


@pytest.fixture
def calculator_script() -> list[AIResponse]:
    """A model that adds 25 and 17 with the calculator, then answers."""
    return [
        tool_call_response("calculator", {"expression": "25 + 17"}),
        text_response("25 + 17 = 42"),
    ]


@pytest.fixture
def calculator_transport(calculator_script: list[AIResponse]) -> ScriptedTransport:
    """Scripted transport replaying the calculator exchange."""
    return ScriptedTransport(calculator_script)


@pytest.fixture
def make_tool_call():
    """Factory for scripted native tool-call turns."""
    return tool_call_response


@pytest.fixture
def make_text():
    """Factory for scripted plain-text turns."""
    return text_response
