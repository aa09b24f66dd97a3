"""Configuration management package for SevaSync"""

from .manager import ConfigManager, ConfigurationError

__all__ = ['ConfigManager', 'ConfigurationError']
