"""Configuration models and parser for agentwire.yaml."""

from agentwire.config.models import AgentWireConfig, SupervisorConfig
from agentwire.config.parser import ConfigError, load_config

__all__ = [
    "AgentWireConfig",
    "ConfigError",
    "SupervisorConfig",
    "load_config",
]
