"""Load configuration from a JSON file plus environment overrides."""

from __future__ import annotations

import json
import os
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from chatwarden.config.schema import Config

DEFAULT_CONFIG_PATH = Path.home() / ".chatwarden" / "config.json"

# env var -> (section, field)
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "CHATWARDEN_AI_API_KEY": ("ai", "api_key"),
    "CHATWARDEN_AI_MODEL": ("ai", "model"),
    "CHATWARDEN_BRIDGE_URL": ("transport", "bridge_url"),
    "CHATWARDEN_BRIDGE_TOKEN": ("transport", "token"),
    "CHATWARDEN_LOG_LEVEL": ("logging", "level"),
}


class ConfigError(Exception):
    """Raised when configuration cannot be loaded. Fatal at startup."""


def load_config(path: Path | None = None) -> Config:
    """Load config from `path` (or the default location).

    A missing file is not an error: defaults are used. A malformed file or a
    value that fails validation raises ConfigError.
    """
    config_path = Path(path).expanduser() if path else DEFAULT_CONFIG_PATH
    data: dict = {}
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read config {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config {config_path} must contain a JSON object")
        logger.info(f"Loaded config from {config_path}")
    else:
        logger.info(f"No config at {config_path}, using defaults")

    _apply_env(data)

    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config: {e}") from e


def _apply_env(data: dict) -> None:
    for env_name, (section, field) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data.setdefault(section, {})[field] = value
