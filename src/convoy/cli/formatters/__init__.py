"""Rich formatters for CLI output.

Shared Console instance with the semantic theme used by every command.

Semantic Colors:
- success: connected agents, valid configuration
- warning: pending work, reconnecting agents
- error: offline or permanently failed agents
- info: neutral notices
"""

from rich.console import Console
from rich.theme import Theme

CONVOY_THEME = Theme(
    {
        "success": "green",
        "warning": "yellow",
        "error": "red",
        "info": "blue",
        "muted": "dim",
        "highlight": "bold cyan",
    }
)

console = Console(theme=CONVOY_THEME, force_terminal=True)

__all__ = ["console", "CONVOY_THEME"]
