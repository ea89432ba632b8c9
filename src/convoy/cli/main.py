"""Convoy CLI main entry point.

This module defines the main Typer application and registers
all command groups for the Convoy CLI.
"""

from typing import Annotated

import typer

from convoy import __version__
from convoy.cli.commands import config, reconnect
from convoy.cli.formatters import console

app = typer.Typer(
    name="convoy",
    help="Convoy - Fleet Coordination and Connection Resilience",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(config.app, name="config")
app.add_typer(reconnect.app, name="reconnect")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]Convoy[/] version [green]{__version__}[/]")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
) -> None:
    """Convoy - Fleet Coordination and Connection Resilience.

    Task scheduling, messaging and classified reconnection for a fleet of
    autonomous agents.

    Use [bold cyan]convoy COMMAND --help[/] for command-specific help.
    """


__all__ = ["app", "main"]
