"""Chorus configuration system."""

from chorus.config.manager import ConfigManager
from chorus.config.schema import ChorusConfig

__all__ = ["ChorusConfig", "ConfigManager"]
