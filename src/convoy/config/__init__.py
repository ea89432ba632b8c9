"""Configuration module for Convoy.

Configuration is stored in ~/.convoy/config.yaml (override with the
CONVOY_CONFIG environment variable).

Usage:
    from convoy.config import load_config

    config = load_config()
    base_delay = config.reconnect.base_delay_ms
"""

from convoy.config.loader import (
    config_exists,
    create_default_config,
    ensure_config_dir,
    get_config_path,
    load_config,
)
from convoy.config.models import (
    BusConfig,
    ConvoyConfig,
    DirectoryConfig,
    ReconnectConfig,
    SchedulerConfig,
    get_config_dir,
    get_default_config,
)

__all__ = [
    # Models
    "ConvoyConfig",
    "ReconnectConfig",
    "DirectoryConfig",
    "BusConfig",
    "SchedulerConfig",
    # Loader functions
    "load_config",
    "create_default_config",
    "ensure_config_dir",
    "config_exists",
    "get_config_path",
    # Model helpers
    "get_config_dir",
    "get_default_config",
]
