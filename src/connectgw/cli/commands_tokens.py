"""Connect token CLI commands.

- tokens create: Mint a connect token for the user's account-linking flow
"""

from __future__ import annotations

from typing import List, Optional

import typer
from typer import Context, Typer

from connectgw.cli.app import app, run_gateway

tokens_app = Typer(help="Connect token commands")
app.add_typer(tokens_app, name="tokens")


@tokens_app.command(name="create")
def tokens_create(
    ctx: Context,
    origin: Optional[List[str]] = typer.Option(
        None, "--origin", "-o", help="Allowed origin (repeatable; default: CONNECTGW_DEFAULT_ORIGIN)"
    ),
    success_redirect_uri: Optional[str] = typer.Option(None, "--success-redirect"),
    error_redirect_uri: Optional[str] = typer.Option(None, "--error-redirect"),
    webhook_uri: Optional[str] = typer.Option(None, "--webhook"),
):
    """Mint a connect token for the user.

    Examples:
        connectgw -u user-123 tokens create
        connectgw -u user-123 tokens create -o https://app.example.com
    """
    run_gateway(
        ctx,
        lambda gw, user: gw.create_connect_token(
            user,
            allowed_origins=list(origin) if origin else None,
            success_redirect_uri=success_redirect_uri,
            error_redirect_uri=error_redirect_uri,
            webhook_uri=webhook_uri,
        ),
    )
