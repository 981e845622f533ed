"""Managed instance group stability probe.

Prints one timestamped line per probe so auto-healing can be watched while
the kpanic unit is exercised on a member instance.
"""

import re
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, Optional

from iprouter.api.client import Client
from iprouter.errors import IpRouterError

DEFAULT_PATTERN = ".*ip-router.*"


class DiscoveryError(IpRouterError):
    """No single instance group matched"""

    pass


def discover_group(compute: Client, project: str, pattern: str = DEFAULT_PATTERN) -> Dict[str, Any]:
    """Find the one managed instance group whose name matches ``pattern``."""
    managers = compute.instance_group_managers(project).aggregated_list(filter=f'name eq "{pattern}"')
    matches = [m for m in managers if re.fullmatch(pattern, m.get("name", ""))]

    if not matches:
        raise DiscoveryError(f"No instance group in {project} matches {pattern!r}")
    if len(matches) > 1:
        names = ", ".join(f"{m['scope']}/{m['name']}" for m in matches)
        raise DiscoveryError(f"Several instance groups match {pattern!r}: {names}")
    return matches[0]


def is_stable(compute: Client, project: str, scope: str, name: str) -> bool:
    manager = compute.instance_group_managers(project).get(scope, name)
    return bool(manager.get("status", {}).get("isStable", False))


def format_line(name: str, stable: bool, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"{now.isoformat(timespec='seconds')} {name} isStable={str(stable).lower()}"


def watch(
    compute: Client,
    project: str,
    scope: str,
    name: str,
    count: int = 1,
    interval: float = 5.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[str]:
    """Yield report lines; ``count=0`` probes forever."""
    probes = 0
    while True:
        yield format_line(name, is_stable(compute, project, scope, name))
        probes += 1
        if count and probes >= count:
            return
        sleep(interval)
