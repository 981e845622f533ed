"""Startup orchestrator: configure this instance as an IP router."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from rich.console import Console

from iprouter.api.client import APIError, Client
from iprouter.api.metadata import InstanceIdentity, MetadataClient
from iprouter.config.settings import RouterConfig
from iprouter.installer.auxiliary import install_auxiliary
from iprouter.installer.policy_routing import POLICY_ROUTING_DOCS, configure_policy_routing
from iprouter.installer.routes import delete_stale_routes, program_routes
from iprouter.installer.status_api import setup_status_api
from iprouter.installer.sysctl import setup_sysctl

console = Console(stderr=True)
logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SYSCTL = 1
EXIT_STATUS_API = 2
EXIT_POLICY_ROUTING = 3
EXIT_STALE_ROUTES = 4
EXIT_ROUTES = 9
EXIT_CONFIG = 78


@dataclass(frozen=True)
class Step:
    name: str
    func: Callable[[], bool]
    # None marks a step whose failure does not stop the run
    exit_code: Optional[int]
    failure_message: str = ""
    success_message: str = ""


class Bootstrap:
    """Runs the startup steps in order against one instance."""

    def __init__(
        self,
        config: RouterConfig,
        metadata: MetadataClient,
        compute: Client,
        ipr=None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.metadata = metadata
        self.compute = compute
        self.ipr = ipr
        self.sleep = sleep
        self._identity: Optional[InstanceIdentity] = None

    @property
    def identity(self) -> InstanceIdentity:
        """Instance identity, read from the metadata server on first use"""
        if self._identity is None:
            self._identity = self.metadata.identity()
            logger.debug("Running as %s", self._identity)
        return self._identity

    def _with_identity(self, func: Callable[..., bool], *args) -> bool:
        try:
            identity = self.identity
        except APIError as e:
            logger.error("Cannot read instance metadata: %s", e)
            return False
        return func(self.config, identity, *args)

    def sysctl(self) -> bool:
        return setup_sysctl(self.config)

    def policy_routing(self) -> bool:
        return self._with_identity(configure_policy_routing, self.ipr)

    def stale_routes(self) -> bool:
        return self._with_identity(delete_stale_routes, self.compute)

    def status_api(self) -> bool:
        return setup_status_api(self.config, sleep=self.sleep)

    def routes(self) -> bool:
        return self._with_identity(program_routes, self.compute)

    def auxiliary(self) -> bool:
        return install_auxiliary(self.config)

    def steps(self) -> List[Step]:
        return [
            Step(
                "sysctl",
                self.sysctl,
                EXIT_SYSCTL,
                "Failed to configure ip forwarding via sysctl, aborting.",
            ),
            Step(
                "policy-routing",
                self.policy_routing,
                EXIT_POLICY_ROUTING,
                "Failed to configure local routing table, aborting",
                f"Configured Policy Routing as per {POLICY_ROUTING_DOCS}",
            ),
            Step(
                "prune-routes",
                self.stale_routes,
                EXIT_STALE_ROUTES,
                "Failed to delete stale routes, aborting",
            ),
            Step(
                "status-api",
                self.status_api,
                EXIT_STATUS_API,
                "Failed to configure status API, aborting.",
            ),
            Step(
                "program-routes",
                self.routes,
                EXIT_ROUTES,
                "Failed to configure routes in VPC networks, aborting.",
            ),
            Step("aux", self.auxiliary, None),
        ]


def run_steps(steps: List[Step]) -> int:
    """Run steps in order, stopping at the first fatal failure."""
    for step in steps:
        logger.debug("# BEGIN # %s", step.name)
        ok = step.func()
        logger.debug("# END # %s", step.name)

        if ok:
            if step.success_message:
                logger.info(step.success_message)
            continue

        if step.exit_code is None:
            logger.warning("Step %s did not complete, continuing", step.name)
            continue

        logger.error(step.failure_message)
        console.print(f"[red]✗ Startup failed at: {step.name} (exit {step.exit_code})[/red]")
        return step.exit_code

    return EXIT_OK


def full_install(
    config: RouterConfig,
    metadata: MetadataClient,
    compute: Client,
    ipr=None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Run the full startup sequence and return the process exit code."""
    console.print("[bold green]ip-router startup[/bold green]")
    code = run_steps(Bootstrap(config, metadata, compute, ipr=ipr, sleep=sleep).steps())
    if code == EXIT_OK:
        console.print("[bold green]✓ Instance is routing between core and app networks[/bold green]")
    return code
