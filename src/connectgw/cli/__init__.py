"""CLI package for the connector gateway.

The main Typer app is created in app.py and commands are registered from
each module on import.
"""

# Import command modules to register commands with the app
import connectgw.cli.commands_accounts  # noqa: F401, E402
import connectgw.cli.commands_components  # noqa: F401, E402
import connectgw.cli.commands_tokens  # noqa: F401, E402
from connectgw.cli.app import app

__all__ = ["app"]
