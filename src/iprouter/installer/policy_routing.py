"""Policy routing for the second network interface.

For Google supported images, a secondary interface (anything other than nic0)
that must talk to addresses outside its own subnet needs its own routing
table, otherwise replies leave through nic0. See
https://cloud.google.com/vpc/docs/create-use-multiple-interfaces#configuring_policy_routing
"""

from __future__ import annotations

import errno
import ipaddress
import logging
import socket

from iprouter.api.metadata import InstanceIdentity
from iprouter.config.settings import RouterConfig
from iprouter.errors import PolicyRoutingError

logger = logging.getLogger(__name__)

POLICY_ROUTING_DOCS = (
    "https://cloud.google.com/vpc/docs/create-use-multiple-interfaces#configuring_policy_routing"
)


def ensure_rt_table(config: RouterConfig) -> bool:
    """Register the custom table in rt_tables. Returns True if the file changed."""
    entry = f"{config.routing_table_id} {config.routing_table_name}"
    path = config.paths.rt_tables

    text = path.read_text() if path.exists() else ""
    if entry in (line.strip() for line in text.splitlines()):
        logger.debug("%s already registers table %s", path, entry)
        return False

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a") as f:
        if text and not text.endswith("\n"):
            f.write("\n")
        f.write(entry + "\n")
    logger.info("Registered routing table '%s' in %s", entry, path)
    return True


def _rule_key(msg) -> tuple:
    table = msg.get_attr("FRA_TABLE") or msg["table"]
    return (
        table,
        msg.get_attr("FRA_SRC"),
        msg["src_len"],
        msg.get_attr("FRA_DST"),
        msg["dst_len"],
    )


class PolicyRouter:
    """Apply routes and rules for one table on one interface through netlink."""

    def __init__(self, table: int, ifname: str, ipr=None):
        self.table = table
        self.ifname = ifname
        # Lazy-loaded pyroute2 IPRoute instance
        self._ipr = ipr

    def _get_ipr(self):
        """Get or create IPRoute instance."""
        if self._ipr is None:
            from pyroute2 import IPRoute

            self._ipr = IPRoute()
        return self._ipr

    def close(self) -> None:
        if self._ipr is not None:
            self._ipr.close()
            self._ipr = None

    def link_index(self) -> int:
        indexes = self._get_ipr().link_lookup(ifname=self.ifname)
        if not indexes:
            raise PolicyRoutingError(f"Interface {self.ifname} not found")
        return indexes[0]

    def replace_route(self, cidr: str, **kwargs) -> None:
        net = ipaddress.ip_network(cidr)
        logger.debug("route replace %s dev %s table %d %s", cidr, self.ifname, self.table, kwargs)
        self._get_ipr().route(
            "replace",
            dst=str(net.network_address),
            dst_len=net.prefixlen,
            oif=self.link_index(),
            table=self.table,
            **kwargs,
        )

    def add_rule(self, src: str | None = None, dst: str | None = None) -> bool:
        """Add ``from src`` or ``to dst`` rule for the table. Returns False if it already existed."""
        from pyroute2 import NetlinkError

        kwargs = {}
        if src:
            net = ipaddress.ip_network(src)
            kwargs.update(src=str(net.network_address), src_len=net.prefixlen)
        if dst:
            net = ipaddress.ip_network(dst)
            kwargs.update(dst=str(net.network_address), dst_len=net.prefixlen)

        wanted = (
            self.table,
            kwargs.get("src"),
            kwargs.get("src_len", 0),
            kwargs.get("dst"),
            kwargs.get("dst_len", 0),
        )
        ipr = self._get_ipr()
        if any(_rule_key(rule) == wanted for rule in ipr.get_rules(family=socket.AF_INET)):
            logger.debug("rule %s already present", wanted)
            return False

        try:
            ipr.rule("add", table=self.table, **kwargs)
        except NetlinkError as e:
            if e.code == errno.EEXIST:
                logger.debug("rule %s already present", wanted)
                return False
            raise
        logger.info("Added rule %s table %d", src and f"from {src}" or f"to {dst}", self.table)
        return True


def apply_policy_routing(config: RouterConfig, identity: InstanceIdentity, router: PolicyRouter) -> None:
    from pyroute2 import NetlinkError

    ensure_rt_table(config)

    nic = identity.app_nic
    try:
        router.replace_route(config.app_subnet_cidr, prefsrc=nic.ip)
        router.replace_route("0.0.0.0/0", gateway=nic.gateway)
        router.add_rule(src=f"{nic.ip}/32")
        router.add_rule(dst=f"{nic.ip}/32")

        for app_cidr in config.app_cidrs:
            router.add_rule(dst=app_cidr)
    except NetlinkError as e:
        raise PolicyRoutingError(f"netlink error {e.code}: {e}") from e


def configure_policy_routing(config: RouterConfig, identity: InstanceIdentity, ipr=None) -> bool:
    """Route replies from the app interface back out of that interface."""
    router = PolicyRouter(config.routing_table_id, config.app_interface, ipr=ipr)
    try:
        apply_policy_routing(config, identity, router)
    except (PolicyRoutingError, OSError) as e:
        logger.error("Policy routing failed: %s", e)
        return False
    finally:
        if ipr is None:
            router.close()

    return True
