"""Configuration module."""

from config.settings import DEFAULT_CONFIG_YAML, load_settings, save_settings
from config.broker_config import MT5Config

__all__ = ['DEFAULT_CONFIG_YAML', 'load_settings', 'save_settings', 'MT5Config']
