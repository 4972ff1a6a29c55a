"""Account and user CLI commands.

- accounts list: List the user's linked accounts
- accounts get: Show one account
- accounts delete: Delete one account
- accounts delete-app: Delete every account bound to an app, for all users
- users delete: Delete the user and all of its accounts on the platform
"""

from __future__ import annotations

from typing import Optional

import typer
from typer import Context, Typer

from connectgw.cli.app import app, run_gateway

# =============================================================================
# Accounts Subcommand Group
# =============================================================================

accounts_app = Typer(help="Linked account commands")
app.add_typer(accounts_app, name="accounts")


@accounts_app.command(name="list")
def accounts_list(
    ctx: Context,
    app_filter: Optional[str] = typer.Option(None, "--app", "-a", help="App id or slug"),
    oauth_app_id: Optional[str] = typer.Option(None, "--oauth-app-id", help="OAuth client id"),
    include_credentials: bool = typer.Option(
        False, "--include-credentials", help="Include the credentials blob"
    ),
):
    """List the user's linked accounts.

    Examples:
        connectgw -u user-123 accounts list
        connectgw -u user-123 accounts list --app slack
    """
    run_gateway(
        ctx,
        lambda gw, user: gw.list_accounts(
            user,
            app=app_filter,
            oauth_app_id=oauth_app_id,
            include_credentials=include_credentials,
        ),
    )


@accounts_app.command(name="get")
def accounts_get(
    ctx: Context,
    account_id: str = typer.Argument(..., help="Account id"),
    include_credentials: bool = typer.Option(
        False, "--include-credentials", help="Include the credentials blob"
    ),
):
    """Show one account."""
    run_gateway(ctx, lambda gw, user: gw.get_account(user, account_id, include_credentials))


@accounts_app.command(name="delete")
def accounts_delete(
    ctx: Context,
    account_id: str = typer.Argument(..., help="Account id"),
):
    """Delete one account."""
    run_gateway(ctx, lambda gw, user: gw.delete_account(user, account_id))


@accounts_app.command(name="delete-app")
def accounts_delete_app(
    ctx: Context,
    app_id: str = typer.Argument(..., help="App id or slug"),
):
    """Delete every account bound to one app, whichever user owns it.

    Prints the aggregate result; exits 1 if any account could not be deleted.
    """
    run_gateway(ctx, lambda gw, user: gw.delete_accounts_for_app(user, app_id))


# =============================================================================
# Users Subcommand Group
# =============================================================================

users_app = Typer(help="External user commands")
app.add_typer(users_app, name="users")


@users_app.command(name="delete")
def users_delete(
    ctx: Context,
    user_id: str = typer.Argument(..., help="External user id (must be the --user)"),
):
    """Delete the user and all of its accounts on the platform."""
    run_gateway(ctx, lambda gw, user: gw.delete_external_user(user, user_id))
