"""Convoy - coordination and resilience layer for fleets of worker agents.

Convoy assigns work to autonomous agents by capability and fitness, carries
messages between them on an in-process bus, and keeps their external
connections alive with classified exponential-backoff reconnection.

Example:
    # Using CLI
    convoy config init
    convoy config show

    # Using Python
    from convoy.orchestration import FleetCoordinator

    fleet = FleetCoordinator()
    fleet.register_agent("miner-1", ["mining"])
    task_id = fleet.submit("mine", {"block": "iron_ore"}, priority=8,
                           required_capabilities=["mining"])
"""

__version__ = "0.4.0"

__all__ = ["__version__", "main"]


def main() -> None:
    """Main entry point for the Convoy CLI.

    This function invokes the Typer app from convoy.cli.main.
    """
    from convoy.cli.main import app

    app()
