"""Configuration module for statevc."""

from statevc.config.loader import load_config, get_config_path
from statevc.config.schema import Config, VersionControlConfig

__all__ = ["Config", "VersionControlConfig", "load_config", "get_config_path"]
