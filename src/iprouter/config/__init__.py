"""Configuration loading and validation"""

from .manager import ConfigManager, DEFAULT_CONFIG_PATH
from .settings import Paths, RouterConfig

__all__ = ["ConfigManager", "DEFAULT_CONFIG_PATH", "Paths", "RouterConfig"]
