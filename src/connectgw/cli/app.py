"""CLI app setup and common utilities.

This module creates the main Typer app and the helpers every command
uses: the tenant given with ``--user``, building a gateway, running one
async gateway call and printing its envelope as JSON.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional

import typer
from typer import Context, Typer

from connectgw.connectors.base import ConnectorError
from connectgw.gateway import ConnectorGateway, GatewayResult
from connectgw.logging_setup import configure_logging
from connectgw.versioning import version_info

# Initialize Typer app
app = Typer(
    name="connectgw",
    help="Connector gateway: manage linked accounts, connect tokens and components on the automation platform.",
)


# =============================================================================
# Global Context Object
# =============================================================================


class CLIState:
    """Shared state object for CLI commands.

    ``gateway_factory`` builds the gateway each command runs against;
    tests swap it for one wired to an in-memory platform.
    """

    def __init__(self, gateway_factory: Optional[Callable[[], ConnectorGateway]] = None):
        self.user: Optional[str] = None
        self.gateway_factory = gateway_factory or ConnectorGateway.from_config


def run_gateway(
    ctx: Context,
    call: Callable[[ConnectorGateway, Optional[str]], Awaitable[GatewayResult]],
) -> None:
    """Run one gateway call for the current user and print the envelope.

    Raises:
        typer.Exit: With code 1 when the envelope is not ok.
    """
    state: CLIState = ctx.obj

    async def _go() -> GatewayResult:
        async with state.gateway_factory() as gateway:
            return await call(gateway, state.user)

    try:
        result = asyncio.run(_go())
    except (ValueError, ConnectorError) as e:
        # Configuration problems surface before any gateway call is made
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2)

    emit(result)


def emit(result: GatewayResult) -> None:
    """Print an envelope as JSON; exit 1 unless it is ok."""
    typer.echo(json.dumps(result.to_dict(), indent=2))
    if not result.ok:
        raise typer.Exit(1)


def parse_json_option(value: Optional[str], name: str) -> Any:
    """Decode a JSON-valued option."""
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"{name} is not valid JSON: {e}")


@app.command(name="version")
def show_version():
    """Show package and platform API versions."""
    typer.echo(json.dumps(version_info(), indent=2))


@app.callback()
def init_app(
    ctx: Context,
    user: Optional[str] = typer.Option(
        None,
        "--user",
        "-u",
        help="External user id (tenant) to act as",
        envvar="CONNECTGW_EXTERNAL_USER_ID",
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Log level (default: CONNECTGW_LOG_LEVEL)"
    ),
):
    """Initialize the application with the acting tenant.

    Every command runs as the user given with --user; the gateway rejects
    calls without one.
    """
    configure_logging(log_level)

    # Initialize CLI state object
    ctx.ensure_object(CLIState)
    ctx.obj.user = user
