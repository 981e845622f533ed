"""Tests for configuration loading and validation"""

import pytest
import yaml

from iprouter.config.manager import ConfigManager
from iprouter.config.settings import RouterConfig
from iprouter.errors import ConfigError

ENV = {
    "CORE_PROJECT": "core-proj",
    "CORE_NETWORK": "core-net",
    "CORE_CIDRS": "10.0.0.0/8, 172.16.0.0/12",
    "APP_PROJECT": "app-proj",
    "APP_NETWORK": "app-net",
    "APP_CIDRS": "192.168.0.0/16",
    "APP_SUBNET_CIDR": "192.168.10.0/24",
    "ROUTE_PRIORITY": "900",
}


class TestConfigManager:
    """Test merging of defaults, file, attributes and environment"""

    def test_environment_only(self, tmp_path):
        """Environment variables alone produce a valid config"""
        config = ConfigManager(tmp_path / "missing.yaml", environ=ENV).load_config()

        assert config.core_cidrs == ("10.0.0.0/8", "172.16.0.0/12")
        assert config.app_cidrs == ("192.168.0.0/16",)
        assert config.route_priority == 900
        assert config.app_interface == "eth1"
        assert config.routing_table_id == 1
        assert config.routing_table_name == "rt1"
        assert config.packages == ("tcpdump", "mtr", "tmux")

    def test_file_then_attributes_then_environment(self, tmp_path):
        """Later sources override earlier ones"""
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.dump(
                {
                    "core": {"project": "file-core", "network": "file-net", "cidrs": ["10.0.0.0/8"]},
                    "app": {
                        "project": "file-app",
                        "network": "app-net",
                        "cidrs": ["192.168.0.0/16"],
                        "subnet_cidr": "192.168.10.0/24",
                    },
                    "routes": {"priority": 100},
                    "api": {"max_workers": 2},
                }
            )
        )
        attributes = {"CORE_PROJECT": "attr-core", "ROUTE_PRIORITY": "200"}
        environ = {"ROUTE_PRIORITY": "300"}

        config = ConfigManager(path, environ=environ).load_config(attributes)

        assert config.core_project == "attr-core"
        assert config.app_project == "file-app"
        assert config.route_priority == 300
        assert config.max_workers == 2

    def test_invalid_yaml(self, tmp_path):
        """Broken YAML is a configuration error"""
        path = tmp_path / "config.yaml"
        path.write_text("core: [unclosed")

        with pytest.raises(ConfigError):
            ConfigManager(path, environ={}).load()


class TestValidation:
    """Test required fields and value checks"""

    def test_missing_fields_are_all_reported(self, tmp_path):
        """Every missing required field is named in one error"""
        with pytest.raises(ConfigError) as exc:
            ConfigManager(tmp_path / "missing.yaml", environ={}).load_config()

        message = str(exc.value)
        for field in ("core.project", "core.network", "core.cidrs", "app.subnet_cidr", "routes.priority"):
            assert field in message

    def test_bad_cidr(self, tmp_path):
        """Malformed CIDRs are rejected"""
        environ = dict(ENV, APP_CIDRS="192.168.0.0/16,not-a-cidr")

        with pytest.raises(ConfigError, match="app.cidrs"):
            ConfigManager(tmp_path / "missing.yaml", environ=environ).load_config()

    def test_priority_range(self, tmp_path):
        """Route priority must fit in 16 bits"""
        environ = dict(ENV, ROUTE_PRIORITY="70000")

        with pytest.raises(ConfigError, match="routes.priority"):
            ConfigManager(tmp_path / "missing.yaml", environ=environ).load_config()

    def test_priority_not_integer(self, tmp_path):
        environ = dict(ENV, ROUTE_PRIORITY="high")

        with pytest.raises(ConfigError, match="integer"):
            ConfigManager(tmp_path / "missing.yaml", environ=environ).load_config()

    def test_non_numeric_tuning_values(self, tmp_path):
        """Timeouts and wait settings must be numbers"""
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.dump(
                {
                    "api": {"timeout": "soon", "operation_timeout": None},
                    "network_wait": {"attempts": "many", "interval": "1s"},
                }
            )
        )

        with pytest.raises(ConfigError) as exc:
            ConfigManager(path, environ=ENV).load_config()

        message = str(exc.value)
        for field in ("api.timeout", "api.operation_timeout", "network_wait.attempts", "network_wait.interval"):
            assert field in message

    def test_section_must_be_a_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("routing_table: rt1\n")

        with pytest.raises(ConfigError, match="routing_table must be a mapping"):
            ConfigManager(path, environ=ENV).load_config()

    def test_unknown_path_key(self, tmp_path):
        """Typos in paths are caught"""
        raw = ConfigManager(tmp_path / "missing.yaml", environ=ENV).load()
        raw["paths"] = {"sysctl_polcy": "/tmp/x"}

        with pytest.raises(ConfigError, match="sysctl_polcy"):
            RouterConfig.from_dict(raw)

    def test_to_dict_lists_cidrs(self, config):
        data = config.to_dict()

        assert data["core"]["cidrs"] == ["10.0.0.0/8", "172.16.0.0/12"]
        assert data["routes"]["priority"] == 900
