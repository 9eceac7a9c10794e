"""Configuration for TeleGuard.

- settings: static, environment-driven service settings
- system_config: operator-tunable response flags, read per pipeline run
"""

from teleguard.common.config.settings import (
    Config,
    Environment,
    LogLevel,
    StorageBackend,
    get_config,
    reset_config,
)
from teleguard.common.config.system_config import (
    ConfigSource,
    SystemConfigKey,
    SystemConfigProvider,
)

__all__ = [
    "Config",
    "Environment",
    "LogLevel",
    "StorageBackend",
    "get_config",
    "reset_config",
    "ConfigSource",
    "SystemConfigKey",
    "SystemConfigProvider",
]
