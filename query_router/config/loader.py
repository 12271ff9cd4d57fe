"""Configuration loader with environment variable resolution."""

from __future__ import annotations

import json
import os
import re
from pathlib import Path

from query_router.config.models import RouterConfig

CONFIG_PATH_ENV = "QUERY_ROUTER_CONFIG"

_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")


def _resolve_env_vars(value: object) -> object:
    """Recursively resolve ``${ENV_VAR}`` placeholders in config values."""
    if isinstance(value, str):
        return _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def default_config_path() -> Path:
    return Path(os.environ.get(CONFIG_PATH_ENV, "config.json"))


def load_config(path: str | Path | None = None) -> RouterConfig:
    """Load the router configuration from a JSON file.

    - Resolves ``${ENV_VAR}`` placeholders from environment variables.
    - Validates the document against :class:`RouterConfig`.

    Args:
        path: Path to the config JSON file.  Defaults to
            ``$QUERY_ROUTER_CONFIG`` or ``config.json``.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the file does not hold a JSON object.
        pydantic.ValidationError: If the config is invalid.
    """
    config_path = Path(path) if path is not None else default_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    raw = json.loads(config_path.read_text(encoding="utf-8"))
    resolved = _resolve_env_vars(raw)

    if not isinstance(resolved, dict):
        raise ValueError("Config file must contain a JSON object")

    return RouterConfig.model_validate(resolved)
