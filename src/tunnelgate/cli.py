"""Tunnelgate CLI - Command line interface."""

from __future__ import annotations

import asyncio
import logging
import sys

import click
import structlog
from rich.console import Console
from rich.table import Table

from tunnelgate.core.config import ControllerConfig
from tunnelgate.core.exceptions import ClassValidationError, TransportError

console = Console()


def configure_logging(level: str) -> None:
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
    )


def _load_config(config_file: str | None) -> ControllerConfig:
    if config_file:
        config = ControllerConfig.from_file(config_file)
        console.print(f"Loaded config from {config_file}", style="dim")
        return config
    return ControllerConfig()


@click.group()
@click.option(
    "--config", "-c",
    "config_file",
    type=click.Path(exists=True),
    help="Path to YAML or TOML config file",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Log level (overrides TUNNELGATE_LOG_LEVEL)",
)
@click.pass_context
def main(ctx: click.Context, config_file: str | None, log_level: str | None):
    """Tunnelgate - expose Gateway API routes through Cloudflare tunnels.

    \b
    Examples:
        tunnelgate run
        tunnelgate --config tunnelgate.yaml run --metrics-port 9090
        tunnelgate config
        tunnelgate verify-token --api-token $CF_API_TOKEN
    """
    try:
        config = _load_config(config_file)
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[red]Failed to load config: {e}[/red]")
        sys.exit(1)
    if log_level:
        config.log_level = log_level.lower()
    ctx.obj = config


@main.command()
@click.option(
    "--metrics-port",
    type=int,
    default=9090,
    help="Port for the controller's Prometheus metrics, 0 to disable (default: 9090)",
)
@click.option(
    "--namespace",
    "-n",
    "namespaces",
    multiple=True,
    help="Watch only these namespaces (default: the whole cluster)",
)
@click.pass_obj
def run(config: ControllerConfig, metrics_port: int, namespaces: tuple[str, ...]):
    """Run the controller until interrupted."""
    import kopf

    from tunnelgate.cluster.store import KubernetesStore
    from tunnelgate.controller.operator import Reconcilers, register
    from tunnelgate.observability.metrics import start_metrics_server
    from tunnelgate.tunnels.api import CloudflareAPI

    configure_logging(config.log_level)
    logger = structlog.get_logger()

    store = KubernetesStore.from_environment(request_timeout=config.api_timeout)
    reconcilers = Reconcilers.build(store, CloudflareAPI.factory(config), config)
    registry = register(kopf.OperatorRegistry(), reconcilers, config)

    if metrics_port:
        start_metrics_server(metrics_port)

    logger.info(
        "Starting controller",
        controller_name=config.controller_name,
        requeue_interval=config.requeue_interval,
        namespaces=list(namespaces) or "all",
    )
    kopf.run(
        registry=registry,
        standalone=True,
        clusterwide=not namespaces,
        namespaces=list(namespaces),
    )


@main.command(name="config")
@click.pass_obj
def show_config(config: ControllerConfig):
    """Show the effective configuration."""
    table = Table(title="Tunnelgate configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in config.to_display_dict().items():
        table.add_row(key, str(value))
    console.print(table)


@main.command(name="verify-token")
@click.option("--api-token", envvar="TUNNELGATE_API_TOKEN", required=True, help="Cloudflare API token")
@click.option("--account-id", envvar="TUNNELGATE_ACCOUNT_ID", default="", help="Cloudflare account id")
@click.pass_obj
def verify_token_command(config: ControllerConfig, api_token: str, account_id: str):
    """Check an API token against the Cloudflare API."""
    from tunnelgate.controller.validator import verify_token
    from tunnelgate.tunnels.api import CloudflareAPI

    try:
        asyncio.run(verify_token(CloudflareAPI.factory(config), api_token, account_id))
    except ClassValidationError as e:
        console.print(f"[red]Token rejected:[/red] {e}")
        sys.exit(1)
    except TransportError as e:
        console.print(f"[red]Error contacting Cloudflare:[/red] {e}")
        sys.exit(2)
    console.print("[green]Token is valid[/green]")


@main.command()
def version():
    """Show version information."""
    from tunnelgate import __version__

    console.print(f"[bold]Version:[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


if __name__ == "__main__":
    main()
