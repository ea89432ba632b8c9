"""Unit tests for CLI main module."""

import re

from typer.testing import CliRunner

from convoy import __version__
from convoy.cli.main import app

runner = CliRunner()


def _clean(output: str) -> str:
    return re.sub(r"\x1b\[[0-9;]*m", "", output)


class TestMainApp:
    """Tests for the main Typer application."""

    def test_app_has_help(self) -> None:
        """Test that --help shows the application description."""
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "Fleet Coordination and Connection Resilience" in _clean(result.output)

    def test_app_version_option(self) -> None:
        """Test that --version shows version information."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in _clean(result.output)

    def test_app_version_short_option(self) -> None:
        """Test that -V shows version information."""
        result = runner.invoke(app, ["-V"])

        assert result.exit_code == 0
        assert __version__ in _clean(result.output)

    def test_no_args_shows_help(self) -> None:
        """Test that running without args shows help (exit code 2 for no_args_is_help)."""
        result = runner.invoke(app, [])

        assert result.exit_code == 2
        assert "Convoy" in _clean(result.output)


class TestCommandGroups:
    """Tests for command group registration."""

    def test_config_group_registered(self) -> None:
        """Test that the config command group is registered."""
        result = runner.invoke(app, ["config", "--help"])

        assert result.exit_code == 0
        assert "Manage Convoy configuration" in _clean(result.output)

    def test_reconnect_group_registered(self) -> None:
        """Test that the reconnect command group is registered."""
        result = runner.invoke(app, ["reconnect", "--help"])

        assert result.exit_code == 0
        assert "Inspect the reconnect policy" in _clean(result.output)
