"""Rich tables for configuration and fleet data."""

from collections.abc import Mapping
from typing import Any

from rich.table import Table

from convoy.cli.formatters import console


def create_table(
    title: str | None = None,
    *,
    show_header: bool = True,
    border_style: str = "blue",
    header_style: str = "bold cyan",
) -> Table:
    """Create a Rich Table with the Convoy styling."""
    return Table(
        title=title,
        show_header=show_header,
        border_style=border_style,
        header_style=header_style,
        row_styles=["", "dim"],
    )


def flatten(data: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested mappings into dotted keys ("reconnect.base_delay_ms")."""
    flat: dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(flatten(value, dotted))
        else:
            flat[dotted] = value
    return flat


def create_key_value_table(data: Mapping[str, Any], title: str | None = None) -> Table:
    """Two-column table; nested mappings are shown with dotted keys.

    Example:
        table = create_key_value_table(config.model_dump(mode="json"), "Configuration")
        print_table(table)
    """
    table = create_table(title, show_header=False)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value")
    for key, value in flatten(data).items():
        table.add_row(key, str(value))
    return table


def create_delay_table(delays: list[int], jitter: bool, title: str | None = None) -> Table:
    """Table of reconnect delays per attempt, with the jitter range when enabled."""
    table = create_table(title)
    table.add_column("Attempt", justify="right", style="cyan")
    table.add_column("Delay", justify="right")
    if jitter:
        table.add_column("Jitter range", justify="right", style="muted")
    for attempt, delay_ms in enumerate(delays, start=1):
        row = [str(attempt), f"{delay_ms / 1000:.1f}s"]
        if jitter:
            row.append(f"{delay_ms * 0.7 / 1000:.1f}s - {delay_ms * 1.3 / 1000:.1f}s")
        table.add_row(*row)
    return table


def print_table(table: Table) -> None:
    console.print(table)


__all__ = [
    "create_table",
    "create_key_value_table",
    "create_delay_table",
    "flatten",
    "print_table",
]
