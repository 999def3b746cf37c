"""Config Loader - Loads engine configuration and request descriptor files.

Handles YAML engine config with environment variable substitution, and
request descriptors in the JSON wire format (from files, strings or dicts).
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from rest_engine.errors import ConfigurationError
from rest_engine.models import EngineConfig, RequestDescriptor

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def load_engine_config(config_path: Path | None = None) -> EngineConfig:
    """Load engine configuration from YAML with ${ENV_VAR} substitution.

    Returns the defaults when config_path is None.
    """
    if config_path is None:
        return EngineConfig()

    raw_config = _read_structured_file(config_path, "Config")
    if raw_config is None:
        return EngineConfig()
    if not isinstance(raw_config, dict):
        raise ConfigurationError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return EngineConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config structure: {e}") from e


def load_request(request_path: Path) -> RequestDescriptor:
    """Load a request descriptor from a JSON or YAML file.

    ${ENV_VAR} references are substituted so secrets can stay out of the file.
    """
    raw_request = _read_structured_file(request_path, "Request")
    return parse_request(_substitute_env_vars(raw_request))


def parse_request(data: Any) -> RequestDescriptor:
    """Validate a decoded request mapping into a RequestDescriptor.

    Raises:
        ConfigurationError: If data is not a mapping or fails validation.
    """
    if data is None:
        raise ConfigurationError("Request configuration cannot be null")
    if not isinstance(data, dict):
        raise ConfigurationError("Request configuration must be a JSON object")

    try:
        return RequestDescriptor.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid request configuration: {e}") from e


def parse_request_json(text: str | None) -> RequestDescriptor:
    """Parse a JSON request string into a RequestDescriptor."""
    if text is None or not text.strip():
        raise ConfigurationError("JSON configuration cannot be null or blank")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON configuration: {e}") from e
    return parse_request(data)


def _read_structured_file(path: Path, label: str) -> Any:
    """Read .json with json, anything else with yaml.safe_load."""
    if not path.exists():
        raise ConfigurationError(f"{label} file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                return json.load(f)
            return yaml.safe_load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {label.lower()} file: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {label.lower()} file: {e}") from e
    except UnicodeDecodeError as e:
        raise ConfigurationError(f"{label} file is not valid UTF-8: {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {label.lower()} file {path}: {e}") from e


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigurationError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigurationError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
