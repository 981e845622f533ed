"""Typed runtime configuration for ip-router"""

import ipaddress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from iprouter.errors import ConfigError

LOG_LEVELS = ("debug", "info", "warning", "error")


@dataclass(frozen=True)
class Paths:
    """Filesystem locations touched by the startup steps."""

    sysctl_policy: Path = Path("/etc/sysctl.d/50-ip-router.conf")
    sysctl_legacy: Path = Path("/etc/sysctl.conf")
    proc_sys: Path = Path("/proc/sys")
    rt_tables: Path = Path("/etc/iproute2/rt_tables")
    httpd_binary: Path = Path("/sbin/httpd")
    status_file: Path = Path("/var/www/html/bridge/status.json")
    kpanic_unit: Path = Path("/etc/systemd/system/kpanic.service")


@dataclass(frozen=True)
class RouterConfig:
    """Validated configuration for one startup run."""

    # Networks
    core_project: str
    core_network: str
    core_cidrs: Tuple[str, ...]
    app_project: str
    app_network: str
    app_cidrs: Tuple[str, ...]
    app_subnet_cidr: str
    route_priority: int

    # Local policy routing
    app_interface: str = "eth1"
    routing_table_id: int = 1
    routing_table_name: str = "rt1"

    # API behaviour
    max_workers: int = 8
    api_timeout: float = 30.0
    operation_timeout: float = 300.0

    # Network wait before the status endpoint is installed (0 attempts = forever)
    network_probe_url: str = "http://mirrorlist.centos.org/"
    network_wait_attempts: int = 600
    network_wait_interval: float = 1.0

    packages: Tuple[str, ...] = ("tcpdump", "mtr", "tmux")
    paths: Paths = field(default_factory=Paths)
    file_owner: Optional[Tuple[int, int]] = (0, 0)
    log_level: str = "info"

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "RouterConfig":
        """Build and validate a config from the merged dictionary produced by ConfigManager."""
        errors: List[str] = []
        sections = {
            name: _section(raw, name, errors)
            for name in ("core", "app", "routes", "routing_table", "api", "network_wait", "paths", "logging")
        }

        def required(section: str, key: str) -> Any:
            value = sections[section].get(key)
            if value is None or value == "" or value == []:
                errors.append(f"{section}.{key} is required")
            return value

        core_project = required("core", "project")
        core_network = required("core", "network")
        core_cidrs = _cidr_list(required("core", "cidrs"), "core.cidrs", errors)
        app_project = required("app", "project")
        app_network = required("app", "network")
        app_cidrs = _cidr_list(required("app", "cidrs"), "app.cidrs", errors)
        app_subnet_cidr = required("app", "subnet_cidr")
        if app_subnet_cidr:
            _check_cidr(str(app_subnet_cidr), "app.subnet_cidr", errors)

        priority = required("routes", "priority")
        priority = _as_int(priority, "routes.priority", errors) if priority not in (None, "", []) else None
        if priority is not None and not 0 <= priority <= 65535:
            errors.append("routes.priority must be between 0 and 65535")

        table = sections["routing_table"]
        api = sections["api"]
        wait = sections["network_wait"]
        table_id = _as_int(table.get("id", 1), "routing_table.id", errors)
        if table_id is not None and not 1 <= table_id <= 252:
            errors.append("routing_table.id must be between 1 and 252")
        max_workers = _as_int(api.get("max_workers", 8), "api.max_workers", errors)
        if max_workers is not None and max_workers < 1:
            errors.append("api.max_workers must be >= 1")
        api_timeout = _as_float(api.get("timeout", 30), "api.timeout", errors)
        operation_timeout = _as_float(api.get("operation_timeout", 300), "api.operation_timeout", errors)
        wait_attempts = _as_int(wait.get("attempts", 600), "network_wait.attempts", errors)
        if wait_attempts is not None and wait_attempts < 0:
            errors.append("network_wait.attempts must be >= 0")
        wait_interval = _as_float(wait.get("interval", 1), "network_wait.interval", errors)

        unknown = set(sections["paths"]) - set(Paths.__dataclass_fields__)
        if unknown:
            errors.append(f"unknown paths: {', '.join(sorted(unknown))}")

        log_level = str(sections["logging"].get("level", "info")).lower()
        if log_level not in LOG_LEVELS:
            errors.append(f"logging.level must be one of {', '.join(LOG_LEVELS)}")

        if errors:
            raise ConfigError("Invalid configuration: " + "; ".join(errors))

        packages = raw.get("packages", ("tcpdump", "mtr", "tmux"))
        paths = Paths(**{k: Path(v) for k, v in sections["paths"].items()})
        if isinstance(packages, str):
            packages = _split(packages)

        return cls(
            core_project=str(core_project),
            core_network=str(core_network),
            core_cidrs=core_cidrs,
            app_project=str(app_project),
            app_network=str(app_network),
            app_cidrs=app_cidrs,
            app_subnet_cidr=str(app_subnet_cidr),
            route_priority=priority,
            app_interface=str(sections["app"].get("interface", "eth1")),
            routing_table_id=table_id,
            routing_table_name=str(table.get("name", "rt1")),
            max_workers=max_workers,
            api_timeout=api_timeout,
            operation_timeout=operation_timeout,
            network_probe_url=str(wait.get("probe_url", "http://mirrorlist.centos.org/")),
            network_wait_attempts=wait_attempts,
            network_wait_interval=wait_interval,
            packages=tuple(packages),
            paths=paths,
            log_level=log_level,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Plain representation for display"""
        return {
            "core": {
                "project": self.core_project,
                "network": self.core_network,
                "cidrs": list(self.core_cidrs),
            },
            "app": {
                "project": self.app_project,
                "network": self.app_network,
                "cidrs": list(self.app_cidrs),
                "subnet_cidr": self.app_subnet_cidr,
                "interface": self.app_interface,
            },
            "routes": {"priority": self.route_priority},
            "routing_table": {"id": self.routing_table_id, "name": self.routing_table_name},
            "api": {
                "timeout": self.api_timeout,
                "operation_timeout": self.operation_timeout,
                "max_workers": self.max_workers,
            },
            "network_wait": {
                "probe_url": self.network_probe_url,
                "attempts": self.network_wait_attempts,
                "interval": self.network_wait_interval,
            },
            "packages": list(self.packages),
            "paths": {k: str(v) for k, v in vars(self.paths).items()},
            "logging": {"level": self.log_level},
        }


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _check_cidr(value: str, name: str, errors: List[str]) -> None:
    try:
        ipaddress.ip_network(value)
    except ValueError as e:
        errors.append(f"{name}: {e}")


def _cidr_list(value: Any, name: str, errors: List[str]) -> Tuple[str, ...]:
    """Accept either a comma-separated string or a list of CIDRs."""
    if not value:
        return ()
    items = _split(value) if isinstance(value, str) else [str(v).strip() for v in value]
    if not items:
        errors.append(f"{name} is required")
    for item in items:
        _check_cidr(item, name, errors)
    return tuple(items)


def _as_int(value: Any, name: str, errors: List[str]) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        errors.append(f"{name} must be an integer, got {value!r}")
        return None


def _as_float(value: Any, name: str, errors: List[str]) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        errors.append(f"{name} must be a number, got {value!r}")
        return None


def _section(raw: Dict[str, Any], name: str, errors: List[str]) -> Dict[str, Any]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        errors.append(f"{name} must be a mapping, got {value!r}")
        return {}
    return value
