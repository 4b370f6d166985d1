# === NAVMAP v1 ===
# {
#   "module": "ContentHub.config.loader",
#   "purpose": "Configuration loading with file/env/CLI precedence",
#   "sections": [
#     {"id": "read-file", "name": "_read_file", "anchor": "function-read-file", "kind": "function"},
#     {"id": "merge-env-overrides", "name": "_merge_env_overrides", "anchor": "function-merge-env-overrides", "kind": "function"},
#     {"id": "load-config", "name": "load_config", "anchor": "function-load-config", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""
Configuration Loading with File/Env/CLI Precedence

Implements three-level config composition:
1. **File level** (YAML/JSON): base configuration
2. **Environment level**: CONTENTHUB_* prefixed variables override file
3. **CLI level**: programmatic overrides win

Environment variables use double-underscore notation:
  CONTENTHUB_STORAGE__PUBLIC_ROOT=/srv/public  →  storage.public_root="/srv/public"
  CONTENTHUB_API__TOKENS='{"s3cret": "admin"}'  →  api.tokens={...}

CLI overrides may be nested dicts or dotted keys
(``{"reconciliation.grace_period_seconds": 0}``).
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from ContentHub.config.models import ContentHubConfig
from ContentHub.errors import ConfigError

_LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "CONTENTHUB_"

# ============================================================================
# Helpers
# ============================================================================


def _read_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML or JSON config file into a dict."""
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    suffix = p.suffix.lower()

    if suffix in (".yaml", ".yml"):
        try:
            loaded = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    elif suffix == ".json":
        try:
            loaded = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    else:
        raise ConfigError(f"Unsupported file format: {suffix}. Use .yaml or .json")

    if not isinstance(loaded, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    return loaded


def _assign_nested(data: dict[str, Any], dotted_key: str, value: Any) -> None:
    """
    Assign value to nested dict using dot notation.

    Example:
        _assign_nested(data, "storage.public_root", "/srv")
        → data["storage"]["public_root"] = "/srv"
    """
    keys = dotted_key.split(".")
    current = data

    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]

    current[keys[-1]] = value


def _coerce_env_value(value: str) -> Any:
    """
    Attempt to coerce environment variable string to appropriate type.

    Tries JSON parsing first (handles lists, dicts, bools, numbers).
    Falls back to string if JSON fails.
    """
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        pass

    if value.lower() in ("true", "false"):
        return value.lower() == "true"

    if value.isdigit() or (value.startswith("-") and value[1:].isdigit()):
        return int(value)

    try:
        return float(value)
    except ValueError:
        pass

    return value


def _merge_env_overrides(
    data: dict[str, Any],
    env_prefix: str = ENV_PREFIX,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Overlay ``CONTENTHUB_*`` environment variables onto the config dict."""
    source = os.environ if environ is None else environ
    for env_key, env_value in source.items():
        if not env_key.startswith(env_prefix):
            continue

        relative_key = env_key[len(env_prefix) :].lower()
        if not relative_key:
            continue
        dotted_key = relative_key.replace("__", ".")

        coerced_value = _coerce_env_value(env_value)
        _assign_nested(data, dotted_key, coerced_value)
        _LOGGER.debug("Environment override: %s → %s", env_key, dotted_key)

    return data


def _merge_cli_overrides(
    data: dict[str, Any], cli_overrides: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Recursively merge CLI overrides into the base config dict; CLI wins."""
    if not cli_overrides:
        return data

    for key, value in cli_overrides.items():
        if "." in key:
            _assign_nested(data, key, value)
        elif isinstance(value, Mapping) and isinstance(data.get(key), dict):
            data[key] = _merge_cli_overrides(data[key], value)
        else:
            data[key] = dict(value) if isinstance(value, Mapping) else value
        _LOGGER.debug("CLI override: %s", key)

    return data


# ============================================================================
# Public API
# ============================================================================


def load_config(
    path: str | Path | None = None,
    env_prefix: str = ENV_PREFIX,
    cli_overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ContentHubConfig:
    """
    Load ContentHubConfig from file, environment, and CLI with proper precedence.

    **Precedence:** file < environment < CLI

    Args:
        path: Path to YAML/JSON config file (optional)
        env_prefix: Environment variable prefix (default: CONTENTHUB_)
        cli_overrides: CLI overrides, nested or dotted (optional)
        environ: Environment mapping to read instead of ``os.environ``

    Returns:
        Validated ContentHubConfig instance

    Raises:
        ConfigError: If the file cannot be read or the merged config is invalid
    """
    data: dict[str, Any] = {}

    if path:
        data = _read_file(path)
        _LOGGER.info("Loaded config from %s", path)

    data = _merge_env_overrides(data, env_prefix, environ)
    data = _merge_cli_overrides(data, cli_overrides)

    try:
        config = ContentHubConfig.model_validate(data)
    except PydanticValidationError as e:
        _LOGGER.error("Configuration validation failed: %s", e)
        raise ConfigError(f"Invalid configuration: {e}") from e

    _LOGGER.debug("Configuration validated. Config hash: %s...", config.config_hash()[:8])
    return config


def validate_config_file(path: str | Path) -> bool:
    """Validate a config file, raising ``ConfigError`` when it is invalid."""
    load_config(path=path, environ={})
    return True


def export_config_schema() -> dict[str, Any]:
    """Export the JSON Schema for ContentHubConfig."""
    return ContentHubConfig.model_json_schema()
