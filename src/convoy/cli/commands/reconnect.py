"""Reconnect command group for Convoy.

Operator helpers for the reconnect policy: preview the backoff schedule
and check how a kick reason or error text would be classified.
"""

from enum import Enum
from pathlib import Path
from typing import Annotated

import typer

from convoy.cli.formatters import console
from convoy.cli.formatters.panels import print_error
from convoy.cli.formatters.tables import create_delay_table, create_key_value_table, print_table
from convoy.config.loader import load_config
from convoy.config.models import ConvoyConfig
from convoy.core.errors import ConfigError
from convoy.resilience.backoff import delay_schedule
from convoy.resilience.classifier import classify_disconnect, classify_error, classify_kick

app = typer.Typer(
    name="reconnect",
    help="Inspect the reconnect policy.",
    no_args_is_help=True,
)


class FailureSource(str, Enum):
    ERROR = "error"
    DISCONNECT = "disconnect"
    KICK = "kick"


def _load(config_path: Path | None) -> ConvoyConfig:
    if config_path is None:
        return ConvoyConfig()
    try:
        return load_config(config_path)
    except ConfigError as e:
        print_error(e.message)
        raise typer.Exit(1) from e


@app.command()
def plan(
    attempts: Annotated[
        int,
        typer.Option("--attempts", "-n", min=1, help="Number of attempts to show."),
    ] = 8,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Config file to read the policy from."),
    ] = None,
) -> None:
    """Show the backoff delay before each reconnect attempt."""
    policy = _load(config_path).reconnect
    table = create_delay_table(
        delay_schedule(policy, attempts),
        policy.jitter,
        f"Backoff (base {policy.base_delay_ms}ms, factor {policy.factor:g})",
    )
    print_table(table)
    if policy.max_attempts > 0:
        console.print(f"[muted]Gives up after {policy.max_attempts} attempts.[/]")


@app.command()
def classify(
    text: Annotated[str, typer.Argument(help="Kick reason, disconnect reason or error text.")],
    source: Annotated[
        FailureSource,
        typer.Option("--source", "-s", help="Where the text came from."),
    ] = FailureSource.ERROR,
) -> None:
    """Show how a failure text would be classified."""
    classifiers = {
        FailureSource.ERROR: classify_error,
        FailureSource.DISCONNECT: classify_disconnect,
        FailureSource.KICK: classify_kick,
    }
    result = classifiers[source](text)
    print_table(
        create_key_value_table(
            {
                "category": result.category.value,
                "reconnects": "no" if result.is_terminal else "yes",
                "matched_rule": result.matched_rule,
                "matched_pattern": result.matched_pattern or "-",
            },
            "Classification",
        )
    )


__all__ = ["app"]
