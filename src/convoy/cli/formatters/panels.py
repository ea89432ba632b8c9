"""Rich panels for one-off CLI messages."""

from typing import Literal

from rich.panel import Panel

from convoy.cli.formatters import console

PanelKind = Literal["info", "warning", "error", "success"]

_BORDERS: dict[str, str] = {
    "info": "blue",
    "warning": "yellow",
    "error": "red",
    "success": "green",
}


def message_panel(
    message: str,
    kind: PanelKind = "info",
    title: str | None = None,
    *,
    expand: bool = False,
) -> Panel:
    """Create a panel styled for the message kind.

    Args:
        message: Message content to display.
        kind: Semantic kind; selects text style and border colour.
        title: Panel title; defaults to the capitalized kind.
        expand: Whether to expand panel to full width.
    """
    border = _BORDERS[kind]
    return Panel(
        f"[{kind}]{message}[/]",
        title=f"[bold {border}]{title or kind.capitalize()}[/]",
        border_style=border,
        expand=expand,
    )


def print_info(message: str, title: str = "Info") -> None:
    console.print(message_panel(message, "info", title))


def print_warning(message: str, title: str = "Warning") -> None:
    console.print(message_panel(message, "warning", title))


def print_error(message: str, title: str = "Error") -> None:
    console.print(message_panel(message, "error", title))


def print_success(message: str, title: str = "Success") -> None:
    console.print(message_panel(message, "success", title))


__all__ = [
    "PanelKind",
    "message_panel",
    "print_info",
    "print_warning",
    "print_error",
    "print_success",
]
