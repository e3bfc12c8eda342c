"""Configuration module for amf."""

from amf.config.loader import get_config_path, load_config, save_config
from amf.config.schema import Config

__all__ = ["Config", "get_config_path", "load_config", "save_config"]
