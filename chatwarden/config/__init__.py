"""Configuration module."""

from chatwarden.config.loader import ConfigError, load_config
from chatwarden.config.schema import Config

__all__ = ["Config", "ConfigError", "load_config"]
