"""Configuration management for keyrotate."""

from .manager import ConfigManager, Settings
from .schemas import CONFIG_SCHEMA
from .validator import ConfigValidationError, ConfigValidator

__all__ = ["ConfigManager", "Settings", "CONFIG_SCHEMA", "ConfigValidationError", "ConfigValidator"]
