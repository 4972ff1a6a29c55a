"""App catalog and component CLI commands.

- apps search: Search the app catalog
- components list: List actions or triggers
- components get: Show a component definition with its props
- components configure: Resolve the options of one prop
"""

from __future__ import annotations

from typing import List, Optional

import typer
from typer import Context, Typer

from connectgw.cli.app import app, parse_json_option, run_gateway

# =============================================================================
# Apps Subcommand Group
# =============================================================================

apps_app = Typer(help="App catalog commands")
app.add_typer(apps_app, name="apps")


@apps_app.command(name="search")
def apps_search(
    ctx: Context,
    query: Optional[str] = typer.Argument(None, help="Free-text query"),
    cursor: Optional[str] = typer.Option(None, "--cursor", help="Cursor from a previous page"),
):
    """Search the app catalog."""
    run_gateway(ctx, lambda gw, user: gw.list_apps(user, q=query, cursor=cursor))


# =============================================================================
# Components Subcommand Group
# =============================================================================

components_app = Typer(help="Action and trigger commands")
app.add_typer(components_app, name="components")


@components_app.command(name="list")
def components_list(
    ctx: Context,
    component_type: str = typer.Argument(..., help="action or trigger"),
    app_filter: Optional[str] = typer.Option(None, "--app", "-a", help="App slug"),
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Free-text query"),
    cursor: Optional[str] = typer.Option(None, "--cursor", help="Cursor from a previous page"),
):
    """List actions or triggers."""
    run_gateway(
        ctx,
        lambda gw, user: gw.list_components(
            user, component_type, app=app_filter, q=query, cursor=cursor
        ),
    )


@components_app.command(name="get")
def components_get(
    ctx: Context,
    component_type: str = typer.Argument(..., help="action or trigger"),
    key: str = typer.Argument(..., help="Component key"),
):
    """Show a component definition with its props."""
    run_gateway(ctx, lambda gw, user: gw.get_component(user, component_type, key))


@components_app.command(name="configure")
def components_configure(
    ctx: Context,
    component_type: str = typer.Argument(..., help="action or trigger"),
    key: str = typer.Argument(..., help="Component key"),
    prop_name: str = typer.Argument(..., help="Prop to resolve"),
    props_json: Optional[str] = typer.Option(
        None, "--props", help='Configured props as JSON, e.g. \'{"spreadsheet": "abc"}\''
    ),
    values: Optional[List[str]] = typer.Option(
        None, "--set", "-s", help="Configured prop as name=value (repeatable)"
    ),
):
    """Resolve the options of one prop.

    Examples:
        connectgw -u user-123 components configure action google_sheets-add-single-row sheetId \\
            --set sheetId=abc
    """
    configured = parse_json_option(props_json, "--props")
    if configured is None:
        configured = {}
    if values:
        if not isinstance(configured, dict):
            raise typer.BadParameter("--props must be a JSON object when combined with --set")
        for item in values:
            name, sep, value = item.partition("=")
            if not sep or not name:
                raise typer.BadParameter(f"--set expects name=value, got {item!r}")
            configured[name] = value

    run_gateway(
        ctx,
        lambda gw, user: gw.configure_component(user, component_type, key, prop_name, configured),
    )
