"""Startup commands: the full sequence and each step on its own"""

import click
from rich.console import Console
from rich.table import Table

from iprouter.installer.bootstrap import Bootstrap, full_install, run_steps
from iprouter.installer.routes import plan_routes

console = Console()


def _bootstrap(ctx: click.Context) -> Bootstrap:
    from iprouter.cli.main import get_compute, load_config

    config = load_config(ctx)
    obj = ctx.find_root().obj
    return Bootstrap(config, obj["metadata"], get_compute(ctx, config), ipr=obj["ipr"])


def _run_single(ctx: click.Context, name: str) -> None:
    bootstrap = _bootstrap(ctx)
    step = next(s for s in bootstrap.steps() if s.name == name)
    if step.exit_code is None:
        # Non-fatal in the full sequence, but still reported when run alone
        ctx.exit(0 if step.func() else 1)
    ctx.exit(run_steps([step]))


@click.command()
@click.pass_context
def run(ctx):
    """Run every startup step in order"""
    from iprouter.cli.main import get_compute, load_config

    config = load_config(ctx)
    obj = ctx.find_root().obj
    ctx.exit(full_install(config, obj["metadata"], get_compute(ctx, config), ipr=obj["ipr"]))


@click.command()
@click.pass_context
def sysctl(ctx):
    """Enable IP forwarding and disable rp_filter"""
    _run_single(ctx, "sysctl")


@click.command("policy-routing")
@click.pass_context
def policy_routing(ctx):
    """Configure the app interface routing table and rules"""
    _run_single(ctx, "policy-routing")


@click.command("prune-routes")
@click.pass_context
def prune_routes(ctx):
    """Delete routes left by earlier instances with this name"""
    _run_single(ctx, "prune-routes")


@click.command("status-api")
@click.pass_context
def status_api(ctx):
    """Install httpd and the /bridge/status.json endpoint"""
    _run_single(ctx, "status-api")


@click.command("program-routes")
@click.option("--dry-run", is_flag=True, help="Show the routes that would be created")
@click.option("--format", type=click.Choice(["table", "json", "yaml"]), default="table")
@click.pass_context
def program_routes(ctx, dry_run, format):
    """Create routes in both networks pointing at this instance"""
    if not dry_run:
        _run_single(ctx, "program-routes")
        return

    bootstrap = _bootstrap(ctx)
    routes = plan_routes(bootstrap.config, bootstrap.identity)

    if format == "json":
        console.print_json(data=[route.to_body() for route in routes])
        return
    elif format == "yaml":
        import yaml

        console.print(yaml.dump([route.to_body() for route in routes], default_flow_style=False))
        return

    table = Table(title="Planned Routes", show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Project")
    table.add_column("Network")
    table.add_column("Destination", style="green")
    table.add_column("Next Hop")
    table.add_column("Priority")

    for route in routes:
        table.add_row(
            route.name,
            route.project,
            route.network,
            route.dest_range,
            route.next_hop_instance or route.next_hop_ip,
            str(route.priority),
        )

    console.print(table)


@click.command()
@click.pass_context
def aux(ctx):
    """Install diagnostic packages and the kpanic unit"""
    _run_single(ctx, "aux")
