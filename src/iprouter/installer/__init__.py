"""Startup steps that turn this instance into an IP router."""

from .auxiliary import install_auxiliary
from .bootstrap import Bootstrap, full_install, run_steps
from .policy_routing import configure_policy_routing
from .routes import delete_stale_routes, plan_routes, program_routes
from .status_api import setup_status_api
from .sysctl import setup_sysctl

__all__ = [
    "Bootstrap",
    "configure_policy_routing",
    "delete_stale_routes",
    "full_install",
    "install_auxiliary",
    "plan_routes",
    "program_routes",
    "run_steps",
    "setup_status_api",
    "setup_sysctl",
]
