"""Convoy CLI module.

Command-line tooling for the fleet configuration, built with Typer for
the CLI framework and Rich for output.
"""

from convoy.cli.main import app

__all__ = ["app"]
