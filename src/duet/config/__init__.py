"""Configuration model and parser for duet.yaml."""

from duet.config.models import DuetConfig
from duet.config.parser import ConfigError, load_config

__all__ = [
    "ConfigError",
    "DuetConfig",
    "load_config",
]
