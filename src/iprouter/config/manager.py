"""Configuration management for ip-router"""

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from iprouter.config.settings import RouterConfig
from iprouter.errors import ConfigError

DEFAULT_CONFIG_PATH = Path("/etc/ip-router/config.yaml")

# Flat variable name -> (section, key). Used for both the environment and
# instance metadata attributes.
OVERRIDES = {
    "CORE_PROJECT": ("core", "project"),
    "CORE_NETWORK": ("core", "network"),
    "CORE_CIDRS": ("core", "cidrs"),
    "APP_PROJECT": ("app", "project"),
    "APP_NETWORK": ("app", "network"),
    "APP_CIDRS": ("app", "cidrs"),
    "APP_SUBNET_CIDR": ("app", "subnet_cidr"),
    "APP_INTERFACE": ("app", "interface"),
    "ROUTE_PRIORITY": ("routes", "priority"),
    "IP_ROUTER_LOG_LEVEL": ("logging", "level"),
}


class ConfigManager:
    """Manage ip-router configuration"""

    def __init__(self, config_path: Path = DEFAULT_CONFIG_PATH, environ: Optional[Mapping[str, str]] = None):
        self.config_path = config_path
        self.environ = os.environ if environ is None else environ

    def load(self, attributes: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        """Load configuration from defaults, file, metadata attributes and environment"""
        config = self._load_defaults()

        # Load from file if exists
        if self.config_path.exists():
            try:
                with open(self.config_path) as f:
                    file_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {self.config_path}: {e}") from e
            if not isinstance(file_config, dict):
                raise ConfigError(f"{self.config_path} must contain a mapping")
            config = self._merge(config, file_config)

        if attributes:
            config = self._apply_overrides(config, attributes)

        # Environment wins over everything else
        config = self._apply_overrides(config, self.environ)

        return config

    def load_config(self, attributes: Optional[Mapping[str, str]] = None) -> RouterConfig:
        """Load and validate configuration"""
        return RouterConfig.from_dict(self.load(attributes))

    def _load_defaults(self) -> Dict[str, Any]:
        """Load default configuration"""
        return {
            "core": {},
            "app": {"interface": "eth1"},
            "routes": {},
            "routing_table": {"id": 1, "name": "rt1"},
            "api": {
                "timeout": 30,
                "operation_timeout": 300,
                "max_workers": 8,
            },
            "network_wait": {
                "probe_url": "http://mirrorlist.centos.org/",
                "attempts": 600,
                "interval": 1,
            },
            "packages": ["tcpdump", "mtr", "tmux"],
            "logging": {
                "level": "info",
            },
        }

    def _merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Merge two configuration dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_overrides(self, config: Dict[str, Any], values: Mapping[str, str]) -> Dict[str, Any]:
        """Apply flat NAME=value overrides (environment or metadata attributes)"""
        for name, (section, key) in OVERRIDES.items():
            if value := values.get(name):
                config.setdefault(section, {})[key] = value

        return config
