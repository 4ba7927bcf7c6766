"""Configuration: pydantic models plus JSON file loading."""

from superbot.config.loader import DEFAULT_CONFIG_PATH, load_config, save_config
from superbot.config.schema import (
    AgentConfig,
    ChannelConfigs,
    Config,
    ExecConfig,
    ProviderConfig,
)

__all__ = [
    "Config",
    "AgentConfig",
    "ChannelConfigs",
    "ExecConfig",
    "ProviderConfig",
    "DEFAULT_CONFIG_PATH",
    "load_config",
    "save_config",
]
