"""Configuration, validation and logging setup."""

from .model import BridgeConfig
from .settings import config_from_mapping, load_bridge_config

__all__ = ["BridgeConfig", "config_from_mapping", "load_bridge_config"]
