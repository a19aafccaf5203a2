"""Tests for configuration loading."""

from pathlib import Path

import pytest

from toolloop.agent.models import AgentStep, StepResponse, StopReason, ToolCallingMode
from toolloop.config.loader import (
    ConfigurationError,
    _parse_env_value,
    apply_env_overrides,
    deep_merge,
    load_settings,
    load_yaml_file,
)
from toolloop.config.schema import AgentSettings, ModelEntry, Settings
from toolloop.providers.exceptions import ModelNotFoundError
from toolloop.providers.models import ModelCapabilities
from toolloop.tools.models import ToolCall

SAMPLE_YAML = """
agent:
  model: fast
  tool_calling_mode: text
  max_steps: 4
  temperature: 0.2
models:
  fast:
    provider_model: openai/gpt-4o-mini
    capabilities:
      tools: false
      context_window: 16000
"""


def _write(temp_dir: Path, content: str) -> Path:
    path = temp_dir / "toolloop.yaml"
    path.write_text(content, encoding="utf-8")
    return path


class TestSchema:
    """Tests for the settings schema."""

    def test_defaults(self):
        """Test default settings."""
        settings = Settings()

        assert settings.agent.model == "default"
        assert settings.agent.tool_calling_mode == ToolCallingMode.NATIVE
        assert settings.agent.max_steps == 10
        assert settings.models == {}

    @pytest.mark.parametrize("max_steps", [0, 51])
    def test_max_steps_bounds(self, max_steps):
        """max_steps must be between 1 and 50."""
        with pytest.raises(ValueError):
            AgentSettings(max_steps=max_steps)

    def test_get_model(self):
        """Configured models are looked up by name."""
        settings = Settings(models={"fast": ModelEntry(provider_model="openai/gpt-4o-mini")})

        assert settings.get_model("fast").provider_model == "openai/gpt-4o-mini"
        assert settings.aliases() == {"fast": "openai/gpt-4o-mini"}

    def test_get_unknown_model(self):
        """Unknown models raise ModelNotFoundError."""
        with pytest.raises(ModelNotFoundError, match="not configured"):
            Settings().get_model("missing")

    def test_to_agent_config(self):
        """Settings translate into an agent configuration."""
        settings = Settings(
            agent=AgentSettings(model="fast", max_steps=2, temperature=0.5, max_tokens=100),
            models={
                "fast": ModelEntry(
                    provider_model="openai/gpt-4o-mini",
                    capabilities=ModelCapabilities(tools=False),
                )
            },
        )

        config = settings.to_agent_config(instructions="Be helpful.")

        assert config.model == "fast"
        assert config.instructions == "Be helpful."
        assert config.call_options.temperature == 0.5
        assert config.call_options.max_tokens == 100
        assert config.model_capabilities["fast"].tools is False

        busy = [
            AgentStep(step_number=n, ai_response=StepResponse(tool_calls=[ToolCall(id="c", name="t")]))
            for n in (1, 2)
        ]
        assert config.stop_when.check(busy[:1]) is None
        assert config.stop_when.check(busy) == StopReason.MAX_STEPS


class TestLoadYamlFile:
    """Tests for load_yaml_file."""

    def test_missing_file(self, temp_dir: Path):
        """A missing file loads as empty."""
        assert load_yaml_file(temp_dir / "nope.yaml") == {}

    def test_empty_file(self, temp_dir: Path):
        """An empty file loads as empty."""
        assert load_yaml_file(_write(temp_dir, "")) == {}

    def test_invalid_yaml(self, temp_dir: Path):
        """Malformed YAML raises ConfigurationError."""
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_yaml_file(_write(temp_dir, "agent: [unclosed"))

    def test_non_mapping(self, temp_dir: Path):
        """A top-level list is rejected."""
        with pytest.raises(ConfigurationError, match="mapping"):
            load_yaml_file(_write(temp_dir, "- a\n- b\n"))


class TestEnvOverrides:
    """Tests for environment overrides."""

    @pytest.mark.parametrize(
        "raw, expected",
        [("5", 5), ("0.5", 0.5), ("true", True), ("off", False), ("openai/gpt-4o", "openai/gpt-4o")],
    )
    def test_parse_env_value(self, raw, expected):
        """Values are converted to the matching type."""
        assert _parse_env_value(raw) == expected

    def test_apply(self, clean_env):
        """TOOLLOOP_<SECTION>_<KEY> sets a key in the section."""
        clean_env.setenv("TOOLLOOP_AGENT_MAX_STEPS", "3")
        clean_env.setenv("TOOLLOOP_AGENT_MODEL", "smart")

        config = apply_env_overrides({"agent": {"model": "fast"}})

        assert config == {"agent": {"model": "smart", "max_steps": 3}}

    def test_config_path_variable_ignored(self, clean_env):
        """TOOLLOOP_CONFIG is not treated as an override."""
        clean_env.setenv("TOOLLOOP_CONFIG", "/tmp/x.yaml")

        assert apply_env_overrides({}) == {}

    def test_deep_merge(self):
        """Nested mappings are merged key by key."""
        merged = deep_merge({"agent": {"model": "a", "max_steps": 3}}, {"agent": {"model": "b"}})

        assert merged == {"agent": {"model": "b", "max_steps": 3}}


class TestLoadSettings:
    """Tests for load_settings."""

    def test_defaults_without_file(self, clean_env):
        """Without a file the defaults apply."""
        settings = load_settings()

        assert settings == Settings()

    def test_from_file(self, clean_env, temp_dir: Path):
        """Settings are read from the YAML file."""
        settings = load_settings(_write(temp_dir, SAMPLE_YAML))

        assert settings.agent.model == "fast"
        assert settings.agent.tool_calling_mode == ToolCallingMode.TEXT
        assert settings.agent.max_steps == 4
        assert settings.models["fast"].capabilities.tools is False
        assert settings.models["fast"].capabilities.context_window == 16000

    def test_path_from_environment(self, clean_env, temp_dir: Path):
        """TOOLLOOP_CONFIG points at the file to load."""
        clean_env.setenv("TOOLLOOP_CONFIG", str(_write(temp_dir, SAMPLE_YAML)))

        assert load_settings().agent.model == "fast"

    def test_env_overrides_file(self, clean_env, temp_dir: Path):
        """Environment variables take precedence over the file."""
        clean_env.setenv("TOOLLOOP_AGENT_MAX_STEPS", "7")

        settings = load_settings(_write(temp_dir, SAMPLE_YAML))

        assert settings.agent.max_steps == 7
        assert load_settings(_write(temp_dir, SAMPLE_YAML), skip_env=True).agent.max_steps == 4

    def test_invalid_settings(self, clean_env, temp_dir: Path):
        """Invalid values raise ConfigurationError."""
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_settings(_write(temp_dir, "agent:\n  max_steps: 500\n"))
