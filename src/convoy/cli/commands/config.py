"""Config command group for Convoy.

Create, inspect and validate the fleet configuration file.
"""

from pathlib import Path
from typing import Annotated

import typer

from convoy.cli.formatters.panels import print_error, print_success
from convoy.cli.formatters.tables import create_key_value_table, print_table
from convoy.config.loader import create_default_config, get_config_path, load_config
from convoy.core.errors import ConfigError

app = typer.Typer(
    name="config",
    help="Manage Convoy configuration.",
    no_args_is_help=True,
)

ConfigPathOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Config file (default: $CONVOY_CONFIG or ~/.convoy)."),
]


@app.command()
def init(
    directory: Annotated[
        Path | None,
        typer.Option("--dir", "-d", help="Directory to write config.yaml into."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing config.yaml."),
    ] = False,
) -> None:
    """Write a default configuration file."""
    try:
        path = create_default_config(directory, overwrite=force)
    except ConfigError as e:
        print_error(e.message)
        raise typer.Exit(1) from e
    print_success(f"Configuration written to {path}")


@app.command()
def show(
    section: Annotated[
        str | None,
        typer.Argument(help="Section to display (reconnect, directory, bus, scheduler, logging)."),
    ] = None,
    config_path: ConfigPathOption = None,
) -> None:
    """Display the effective configuration."""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        print_error(e.message)
        raise typer.Exit(1) from e

    data = config.model_dump(mode="json")
    if section is not None:
        if section not in data:
            print_error(f"Unknown section: {section}. Choose from: {', '.join(data)}")
            raise typer.Exit(1)
        data = {section: data[section]}

    print_table(create_key_value_table(data, "Convoy Configuration"))


@app.command()
def validate(config_path: ConfigPathOption = None) -> None:
    """Validate the configuration file."""
    path = config_path or get_config_path()
    try:
        load_config(path)
    except ConfigError as e:
        print_error(e.message, title="Invalid configuration")
        raise typer.Exit(1) from e
    print_success(f"Configuration is valid: {path}")


__all__ = ["app"]
