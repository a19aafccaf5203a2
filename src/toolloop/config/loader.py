"""
Configuration loader for toolloop.

Loads configuration from, in order of increasing precedence:
1. Default values
2. A YAML file (explicit path, or the TOOLLOOP_CONFIG environment variable)
3. Environment variables (TOOLLOOP_<SECTION>_<KEY>)
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from toolloop.config.schema import Settings

logger = logging.getLogger(__name__)

ENV_PREFIX = "TOOLLOOP_"
CONFIG_PATH_ENV = "TOOLLOOP_CONFIG"


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed configuration dictionary, empty if the file does not exist.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    try:
        with open(path, encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigurationError(f"Expected a mapping at the top of {path}")
    return content


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Environment variables follow the pattern TOOLLOOP_<SECTION>_<KEY>=<value>,
    e.g. TOOLLOOP_AGENT_MAX_STEPS=5 sets ``agent.max_steps``.

    Args:
        config: Configuration dictionary to modify.

    Returns:
        Configuration with environment overrides applied.
    """
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX) or key == CONFIG_PATH_ENV:
            continue

        section, _, field_name = key[len(ENV_PREFIX) :].lower().partition("_")
        if not field_name:
            continue

        target = config.setdefault(section, {})
        if not isinstance(target, dict):
            continue
        target[field_name] = _parse_env_value(value)
        logger.debug(f"Config override from {key}")

    return config


def _parse_env_value(value: str) -> Any:
    """
    Parse an environment variable value to the appropriate type.

    Args:
        value: String value from environment.

    Returns:
        Parsed value (int, float, bool, or string).
    """
    # Integer
    if re.match(r"^-?\d+$", value):
        return int(value)

    # Float
    if re.match(r"^-?\d+\.\d+$", value):
        return float(value)

    # Boolean
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    # String
    return value


def load_settings(path: Path | str | None = None, skip_env: bool = False) -> Settings:
    """
    Load and validate configuration.

    Args:
        path: YAML file to load. Defaults to $TOOLLOOP_CONFIG when set.
        skip_env: Skip environment variable overrides.

    Returns:
        Validated Settings object.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    config_dict = Settings().model_dump(exclude_unset=True)

    config_path = path or os.environ.get(CONFIG_PATH_ENV)
    if config_path:
        config_dict = deep_merge(config_dict, load_yaml_file(Path(config_path).expanduser()))

    if not skip_env:
        config_dict = apply_env_overrides(config_dict)

    try:
        settings = Settings.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    logger.debug(f"Loaded settings (model={settings.agent.model}, {len(settings.models)} model(s))")
    return settings
