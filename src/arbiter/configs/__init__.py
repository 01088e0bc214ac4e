"""Configuration management utilities."""

from arbiter.configs.loader import load_config, resolve_referee_config, save_config
from arbiter.configs.schema import (
    EngineConfig,
    RefereeConfig,
    RetryPolicy,
    config_from_dict,
    config_to_dict,
)

__all__ = [
    "EngineConfig",
    "RefereeConfig",
    "RetryPolicy",
    "config_from_dict",
    "config_to_dict",
    "load_config",
    "resolve_referee_config",
    "save_config",
]
