"""
Pydantic configuration schema for toolloop.

This module defines the settings models loaded from YAML.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from toolloop.agent.models import AgentConfig, Instructions, ToolCallingMode
from toolloop.agent.stop_conditions import any_of, no_tool_calls, step_count_is
from toolloop.providers.exceptions import ModelNotFoundError
from toolloop.providers.models import CallOptions, ModelCapabilities

# =============================================================================
# Agent Configuration
# =============================================================================


class AgentSettings(BaseModel):
    """Agent loop settings."""

    model_config = ConfigDict(extra="allow", protected_namespaces=())

    model: str = "default"
    tool_calling_mode: ToolCallingMode = ToolCallingMode.NATIVE
    max_steps: int = Field(default=10, ge=1, le=50)
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)


# =============================================================================
# Model Configuration
# =============================================================================


class ModelEntry(BaseModel):
    """A configured model: the litellm model string and what it can do."""

    provider_model: str
    capabilities: ModelCapabilities = Field(default_factory=ModelCapabilities)


# =============================================================================
# Root Configuration
# =============================================================================


class Settings(BaseModel):
    """Root toolloop configuration."""

    model_config = ConfigDict(extra="allow")

    agent: AgentSettings = Field(default_factory=AgentSettings)
    models: dict[str, ModelEntry] = Field(default_factory=dict)

    def get_model(self, name: str) -> ModelEntry:
        """
        Look up a configured model.

        Raises:
            ModelNotFoundError: If no model is configured under ``name``.
        """
        entry = self.models.get(name)
        if entry is None:
            raise ModelNotFoundError(f"Model '{name}' is not configured", provider="config")
        return entry

    def aliases(self) -> dict[str, str]:
        """Model names mapped to litellm model strings, for LiteLLMTransport."""
        return {name: entry.provider_model for name, entry in self.models.items()}

    def to_agent_config(self, instructions: Optional[Instructions] = None) -> AgentConfig:
        """
        Build an AgentConfig from these settings.

        The run stops after ``agent.max_steps`` steps or once the model stops
        calling tools. Capabilities are declared for every configured model.
        """
        options: dict[str, object] = {}
        if self.agent.temperature is not None:
            options["temperature"] = self.agent.temperature
        if self.agent.max_tokens is not None:
            options["max_tokens"] = self.agent.max_tokens

        return AgentConfig(
            model=self.agent.model,
            instructions=instructions,
            tool_calling_mode=self.agent.tool_calling_mode,
            stop_when=any_of(step_count_is(self.agent.max_steps), no_tool_calls()),
            call_options=CallOptions(**options),
            model_capabilities={name: entry.capabilities for name, entry in self.models.items()},
        )
