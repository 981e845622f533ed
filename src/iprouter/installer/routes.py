"""Cloud route objects pointing traffic at this instance.

Routes are named ``{instance_name}-{instance_id}-{index}``. When a managed
instance group recreates the instance it keeps the name but gets a new id, so
routes carrying the name with another id belong to a dead next hop and are
deleted before new ones are created.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from iprouter.api.client import APIError, Client, ConflictError, instance_url, network_url
from iprouter.api.metadata import InstanceIdentity
from iprouter.config.settings import RouterConfig
from iprouter.errors import RouteProgramError, RoutePruneError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteSpec:
    name: str
    project: str
    network: str
    dest_range: str
    priority: int
    description: str
    next_hop_instance: Optional[str] = None
    next_hop_ip: Optional[str] = None

    def to_body(self) -> Dict[str, Any]:
        """Request body for routes.insert"""
        body = {
            "name": self.name,
            "network": network_url(self.project, self.network),
            "destRange": self.dest_range,
            "priority": self.priority,
            "description": self.description,
        }
        if self.next_hop_instance:
            body["nextHopInstance"] = self.next_hop_instance
        else:
            body["nextHopIp"] = self.next_hop_ip
        return body


def route_prefix(identity: InstanceIdentity) -> str:
    return f"{identity.name}-{identity.id}"


def route_name(identity: InstanceIdentity, index: int) -> str:
    return f"{route_prefix(identity)}-{index}"


def is_stale_route(name: str, identity: InstanceIdentity) -> bool:
    """True for routes left behind by an earlier instance with the same name."""
    return name.startswith(identity.name) and not name.startswith(route_prefix(identity))


def stale_route_filter(identity: InstanceIdentity) -> str:
    # Compute list filters match regular expressions against the whole field
    return f'(name eq "{identity.name}.*") (name ne "{route_prefix(identity)}.*")'


def plan_routes(config: RouterConfig, identity: InstanceIdentity) -> List[RouteSpec]:
    """Routes for both directions, indexes starting at 0 per direction."""
    routes = []

    # App -> core: next hop is this instance
    for idx, core_cidr in enumerate(config.core_cidrs):
        routes.append(
            RouteSpec(
                name=route_name(identity, idx),
                project=config.app_project,
                network=config.app_network,
                dest_range=core_cidr,
                priority=config.route_priority,
                description=(
                    f"Route auto created by instance {identity.name} startup-script "
                    f"instance_id={identity.id}"
                ),
                next_hop_instance=instance_url(identity.project_id, identity.zone, identity.name),
            )
        )

    # Core -> app: cross project instance references are rejected by the
    # API, so use the nic0 address instead.
    for idx, app_cidr in enumerate(config.app_cidrs):
        routes.append(
            RouteSpec(
                name=route_name(identity, idx),
                project=config.core_project,
                network=config.core_network,
                dest_range=app_cidr,
                priority=config.route_priority,
                description=f"Route auto created by instance {identity.name} startup-script",
                next_hop_ip=identity.core_ip,
            )
        )

    return routes


def run_concurrently(tasks: Sequence[Callable[[], Any]], max_workers: int) -> List[Exception]:
    """Run every task to completion and return the exceptions raised."""
    errors: List[Exception] = []
    if not tasks:
        return errors

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [executor.submit(task) for task in tasks]
        for future in as_completed(futures):
            try:
                future.result()
            except Exception as e:
                errors.append(e)
    return errors


def find_stale_routes(compute: Client, project: str, identity: InstanceIdentity) -> List[str]:
    names = compute.routes(project).names(filter=stale_route_filter(identity))
    return [name for name in names if is_stale_route(name, identity)]


def delete_route(compute: Client, project: str, name: str, timeout: float) -> None:
    logger.info("Deleting stale route %s in project %s", name, project)
    operation = compute.routes(project).delete(name)
    compute.wait_operation(project, operation, timeout)


def create_route(compute: Client, route: RouteSpec, timeout: float) -> bool:
    """Insert a route. Returns False when it already existed."""
    try:
        operation = compute.routes(route.project).create(route.to_body())
    except ConflictError:
        logger.info("Route %s already exists in project %s", route.name, route.project)
        return False
    compute.wait_operation(route.project, operation, timeout)
    logger.info("Created route %s -> %s in %s", route.name, route.dest_range, route.network)
    return True


def prune_stale_routes(config: RouterConfig, identity: InstanceIdentity, compute: Client) -> List[str]:
    """Delete stale routes in the core and app projects. Returns the deleted names."""
    deleted = []
    for project in (config.core_project, config.app_project):
        try:
            stale = find_stale_routes(compute, project, identity)
        except APIError as e:
            raise RoutePruneError(f"Cannot list routes in {project}: {e}") from e

        tasks = [
            (lambda name=name, project=project: delete_route(compute, project, name, config.operation_timeout))
            for name in stale
        ]
        errors = run_concurrently(tasks, config.max_workers)
        if errors:
            raise RoutePruneError(f"{len(errors)} route deletion(s) failed in {project}: {errors[0]}") from errors[0]
        deleted.extend(stale)
    return deleted


def delete_stale_routes(config: RouterConfig, identity: InstanceIdentity, compute: Client) -> bool:
    try:
        deleted = prune_stale_routes(config, identity, compute)
    except RoutePruneError as e:
        logger.error("%s", e)
        return False

    logger.info("Removed %d stale route(s)", len(deleted))
    return True


def create_routes(config: RouterConfig, identity: InstanceIdentity, compute: Client) -> List[RouteSpec]:
    """Insert every planned route concurrently. Returns the plan."""
    routes = plan_routes(config, identity)
    tasks = [
        (lambda route=route: create_route(compute, route, config.operation_timeout))
        for route in routes
    ]
    errors = run_concurrently(tasks, config.max_workers)
    if errors:
        raise RouteProgramError(
            f"{len(errors)} of {len(routes)} route creation(s) failed: {errors[0]}"
        ) from errors[0]
    return routes


def program_routes(config: RouterConfig, identity: InstanceIdentity, compute: Client) -> bool:
    """Create routes in both networks pointing at this instance."""
    try:
        routes = create_routes(config, identity, compute)
    except RouteProgramError as e:
        logger.error("%s", e)
        return False

    logger.info("Programmed %d route(s)", len(routes))
    return True
