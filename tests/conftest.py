"""Shared fixtures: a config rooted in tmp_path and a fixed instance identity"""

import threading

import pytest

from iprouter.api.client import ConflictError
from iprouter.api.metadata import InstanceIdentity, NetworkInterface
from iprouter.config.settings import Paths, RouterConfig


@pytest.fixture
def paths(tmp_path):
    """All filesystem locations redirected under tmp_path"""
    return Paths(
        sysctl_policy=tmp_path / "sysctl.d" / "50-ip-router.conf",
        sysctl_legacy=tmp_path / "sysctl.conf",
        proc_sys=tmp_path / "proc" / "sys",
        rt_tables=tmp_path / "iproute2" / "rt_tables",
        httpd_binary=tmp_path / "sbin" / "httpd",
        status_file=tmp_path / "www" / "bridge" / "status.json",
        kpanic_unit=tmp_path / "systemd" / "kpanic.service",
    )


@pytest.fixture
def config(paths):
    """Router config that never chowns and never sleeps"""
    (paths.kpanic_unit.parent).mkdir(parents=True)
    return RouterConfig(
        core_project="core-proj",
        core_network="core-net",
        core_cidrs=("10.0.0.0/8", "172.16.0.0/12"),
        app_project="app-proj",
        app_network="app-net",
        app_cidrs=("192.168.0.0/16",),
        app_subnet_cidr="192.168.10.0/24",
        route_priority=900,
        max_workers=4,
        network_wait_interval=0,
        paths=paths,
        file_owner=None,
    )


@pytest.fixture
def identity():
    """Instance r1 with id 123"""
    return InstanceIdentity(
        id="123",
        name="r1",
        zone="us-central1-a",
        project_id="app-proj",
        nics=(
            NetworkInterface(ip="10.1.0.5", gateway="10.1.0.1"),
            NetworkInterface(ip="192.168.10.5", gateway="192.168.10.1"),
        ),
    )


class FakeRoutes:
    def __init__(self, compute, project):
        self.compute = compute
        self.project = project

    def names(self, filter=None):
        self.compute.filters.append((self.project, filter))
        return list(self.compute.existing.get(self.project, []))

    def create(self, route):
        with self.compute.lock:
            self.compute.created.append((self.project, route))
        if route["name"] in self.compute.fail_names:
            raise self.compute.fail_names[route["name"]]
        return {"name": f"op-create-{route['name']}", "status": "RUNNING"}

    def delete(self, name):
        with self.compute.lock:
            self.compute.deleted.append((self.project, name))
        if name in self.compute.fail_names:
            raise self.compute.fail_names[name]
        return {"name": f"op-delete-{name}", "status": "RUNNING"}


class FakeCompute:
    """Records route calls; operations complete immediately"""

    def __init__(self, existing=None, fail_names=None):
        self.existing = existing or {}
        self.fail_names = fail_names or {}
        self.filters = []
        self.created = []
        self.deleted = []
        self.waited = []
        self.lock = threading.Lock()

    def routes(self, project):
        return FakeRoutes(self, project)

    def wait_operation(self, project, operation, timeout=300.0):
        with self.lock:
            self.waited.append((project, operation["name"]))
        return {**operation, "status": "DONE"}


@pytest.fixture
def compute():
    return FakeCompute()


@pytest.fixture
def conflict():
    return ConflictError("Resource already exists", 409)


@pytest.fixture
def make_compute():
    """Factory for FakeCompute with preset routes and failures"""
    return FakeCompute
