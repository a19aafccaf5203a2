"""Configuration management for toolloop."""

from toolloop.config.loader import (
    ConfigurationError,
    apply_env_overrides,
    load_settings,
    load_yaml_file,
)
from toolloop.config.schema import AgentSettings, ModelEntry, Settings

__all__ = [
    "AgentSettings",
    "ModelEntry",
    "Settings",
    "ConfigurationError",
    "apply_env_overrides",
    "load_settings",
    "load_yaml_file",
]
