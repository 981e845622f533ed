"""Tests for route planning, programming and stale-route pruning"""

from iprouter.api.client import APIError
from iprouter.installer.routes import (
    delete_stale_routes,
    is_stale_route,
    plan_routes,
    program_routes,
    stale_route_filter,
)


class TestStaleRoutePredicate:
    """Test which names count as stale"""

    def test_other_id_is_stale(self, identity):
        assert is_stale_route("r1-999-0", identity)

    def test_current_id_is_kept(self, identity):
        assert not is_stale_route("r1-123-0", identity)
        assert not is_stale_route("r1-123-17", identity)

    def test_unrelated_name_is_kept(self, identity):
        assert not is_stale_route("r2-999-0", identity)

    def test_filter_expression(self, identity):
        assert stale_route_filter(identity) == '(name eq "r1.*") (name ne "r1-123.*")'


class TestPlanRoutes:
    """Test naming, indexes and next hops"""

    def test_app_network_routes_point_at_instance(self, config, identity):
        """CORE_CIDRS 10.0.0.0/8,172.16.0.0/12 give r1-123-0 and r1-123-1 in the app network"""
        app_routes = [r for r in plan_routes(config, identity) if r.network == "app-net"]

        assert [r.name for r in app_routes] == ["r1-123-0", "r1-123-1"]
        assert [r.dest_range for r in app_routes] == ["10.0.0.0/8", "172.16.0.0/12"]
        for route in app_routes:
            assert route.project == "app-proj"
            assert route.next_hop_instance == "projects/app-proj/zones/us-central1-a/instances/r1"
            assert route.next_hop_ip is None
            assert route.priority == 900
            assert "instance_id=123" in route.description

    def test_core_network_routes_use_nic0_address(self, config, identity):
        core_routes = [r for r in plan_routes(config, identity) if r.network == "core-net"]

        assert [r.name for r in core_routes] == ["r1-123-0"]
        assert core_routes[0].project == "core-proj"
        assert core_routes[0].next_hop_ip == "10.1.0.5"
        assert core_routes[0].next_hop_instance is None

    def test_body(self, config, identity):
        body = plan_routes(config, identity)[0].to_body()

        assert body == {
            "name": "r1-123-0",
            "network": "projects/app-proj/global/networks/app-net",
            "destRange": "10.0.0.0/8",
            "priority": 900,
            "description": "Route auto created by instance r1 startup-script instance_id=123",
            "nextHopInstance": "projects/app-proj/zones/us-central1-a/instances/r1",
        }


class TestProgramRoutes:
    """Test concurrent route creation"""

    def test_one_create_per_cidr(self, config, identity, compute):
        assert program_routes(config, identity, compute)

        created = sorted((project, body["name"]) for project, body in compute.created)
        assert created == [
            ("app-proj", "r1-123-0"),
            ("app-proj", "r1-123-1"),
            ("core-proj", "r1-123-0"),
        ]
        assert len(compute.waited) == 3

    def test_existing_route_is_accepted(self, config, identity, make_compute, conflict):
        compute = make_compute(fail_names={"r1-123-1": conflict})

        assert program_routes(config, identity, compute)
        assert len(compute.waited) == 2

    def test_failure_after_all_tasks_finish(self, config, identity, make_compute):
        compute = make_compute(fail_names={"r1-123-1": APIError("quota exceeded", 403)})

        assert program_routes(config, identity, compute) is False
        # The other creations still ran
        assert len(compute.created) == 3


class TestDeleteStaleRoutes:
    """Test pruning in both projects"""

    def test_deletes_only_stale(self, config, identity, make_compute):
        compute = make_compute(
            existing={
                "core-proj": ["r1-999-0", "r1-999-1"],
                # The server filter should exclude these; the local check must too
                "app-proj": ["r1-999-0", "r1-123-0"],
            }
        )

        assert delete_stale_routes(config, identity, compute)

        assert sorted(compute.deleted) == [
            ("app-proj", "r1-999-0"),
            ("core-proj", "r1-999-0"),
            ("core-proj", "r1-999-1"),
        ]
        assert [project for project, _ in compute.filters] == ["core-proj", "app-proj"]

    def test_nothing_to_delete(self, config, identity, compute):
        assert delete_stale_routes(config, identity, compute)
        assert compute.deleted == []

    def test_delete_failure(self, config, identity, make_compute):
        compute = make_compute(
            existing={"core-proj": ["r1-999-0"]},
            fail_names={"r1-999-0": APIError("backend error", 500)},
        )

        assert delete_stale_routes(config, identity, compute) is False
        # App project is not touched after the core project failed
        assert [project for project, _ in compute.filters] == ["core-proj"]
