"""
Shared configuration and logging helpers.
"""

from .config_manager import ConfigManager, ConfigurationError
from .logging_config import setup_logging

__all__ = ["ConfigManager", "ConfigurationError", "setup_logging"]
