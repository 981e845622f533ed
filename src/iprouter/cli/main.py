#!/usr/bin/env python3
"""ip-router CLI - Main entry point"""

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from iprouter.api.client import APIError, Client
from iprouter.api.metadata import MetadataClient
from iprouter.config.manager import DEFAULT_CONFIG_PATH, ConfigManager
from iprouter.config.settings import RouterConfig
from iprouter.errors import ConfigError
from iprouter.installer.bootstrap import EXIT_CONFIG

console = Console()
logger = logging.getLogger("iprouter")


def setup_logging(verbose: bool) -> None:
    """Send log records to stderr through rich"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def load_config(ctx: click.Context) -> RouterConfig:
    """Load and validate configuration once per invocation, exiting 78 when invalid"""
    obj = ctx.find_root().obj
    if obj.get("config") is not None:
        return obj["config"]

    attributes = None
    if obj["metadata_attributes"]:
        try:
            attributes = obj["metadata"].attributes()
        except (APIError, ValueError) as e:
            logger.warning("Instance attributes unavailable, using file and environment only: %s", e)

    try:
        config = obj["config_manager"].load_config(attributes)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        ctx.exit(EXIT_CONFIG)

    if not obj["verbose"]:
        logging.getLogger().setLevel(config.log_level.upper())

    obj["config"] = config
    return config


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help=f"Config file path (default {DEFAULT_CONFIG_PATH})",
)
@click.option(
    "--metadata-attributes/--no-metadata-attributes",
    default=True,
    help="Read settings from instance metadata attributes",
)
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.pass_context
def cli(ctx, config_path, metadata_attributes, verbose):
    """ip-router - configure this instance to route between the core and app networks"""
    ctx.ensure_object(dict)
    setup_logging(verbose)

    ctx.obj["verbose"] = verbose
    ctx.obj["metadata_attributes"] = metadata_attributes
    ctx.obj["config_manager"] = ConfigManager(Path(config_path) if config_path else DEFAULT_CONFIG_PATH)
    ctx.obj.setdefault("config", None)
    ctx.obj.setdefault("metadata", MetadataClient())
    ctx.obj.setdefault("compute", None)
    ctx.obj.setdefault("ipr", None)


def get_compute(ctx: click.Context, config: RouterConfig) -> Client:
    obj = ctx.find_root().obj
    if obj.get("compute") is None:
        obj["compute"] = Client(timeout=config.api_timeout)
    return obj["compute"]


@cli.command()
def version():
    """Show version information"""
    from iprouter import __version__

    console.print(f"ip-router version {__version__}")


@cli.command("show-config")
@click.option("--format", "fmt", type=click.Choice(["yaml", "json"]), default="yaml")
@click.pass_context
def show_config(ctx, fmt):
    """Show the effective configuration"""
    config = load_config(ctx)

    if fmt == "json":
        console.print_json(data=config.to_dict())
    else:
        import yaml

        console.print(yaml.dump(config.to_dict(), default_flow_style=False), end="")


# Import subcommands
from iprouter.cli import report, steps  # noqa: E402

cli.add_command(steps.run)
cli.add_command(steps.sysctl)
cli.add_command(steps.policy_routing)
cli.add_command(steps.prune_routes)
cli.add_command(steps.status_api)
cli.add_command(steps.program_routes)
cli.add_command(steps.aux)
cli.add_command(report.report)


if __name__ == "__main__":
    cli()
