"""Instance group stability report"""

import click
from rich.console import Console

from iprouter.api.client import APIError, Client
from iprouter.report.stability import DEFAULT_PATTERN, DiscoveryError, discover_group, watch

console = Console()


@click.command()
@click.option("--project", envvar="APP_PROJECT", required=True, help="Project owning the instance group")
@click.option("--group", help="Instance group name (discovered when omitted)")
@click.option("--scope", help="zones/<zone> or regions/<region> of --group")
@click.option("--pattern", default=DEFAULT_PATTERN, show_default=True, help="Regex used to discover the group")
@click.option("--count", type=int, default=1, show_default=True, help="Number of probes, 0 for forever")
@click.option("--interval", type=float, default=5.0, show_default=True, help="Seconds between probes")
@click.pass_context
def report(ctx, project, group, scope, pattern, count, interval):
    """Print a timestamped stability flag for the router instance group"""
    obj = ctx.find_root().obj
    compute = obj.get("compute") or Client()

    try:
        if not (group and scope):
            manager = discover_group(compute, project, group or pattern)
            group, scope = manager["name"], manager["scope"]

        for line in watch(compute, project, scope, group, count=count, interval=interval):
            click.echo(line)

    except (APIError, DiscoveryError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise click.Abort()
