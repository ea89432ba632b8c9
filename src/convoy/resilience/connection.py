"""Connection handle contract consumed by the reconnect manager.

The fleet does not speak any network protocol itself. Callers wrap their
client (a game bot, a websocket session ...) in an object that satisfies
ConnectionHandle and supply an async factory producing fresh handles.
"""

from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class ConnectionEvent(str, Enum):
    """Events a connection handle emits.

    spawn: connection established and usable
    end: connection closed, optional reason argument
    kicked: remote side removed the agent, reason argument
    error: exception argument
    login: authentication accepted
    """

    SPAWN = "spawn"
    END = "end"
    KICKED = "kicked"
    ERROR = "error"
    LOGIN = "login"


@runtime_checkable
class ConnectionHandle(Protocol):
    """Event-emitting connection owned by one agent."""

    def on(self, event: str, listener: Callable[..., Any]) -> Any:
        """Register a listener for one of the ConnectionEvent names."""
        ...

    def remove_all_listeners(self) -> Any:
        """Drop every listener registered through on()."""
        ...

    def close(self) -> Any:
        """Close the connection. May return an awaitable."""
        ...


ConnectionFactory = Callable[[], Awaitable[ConnectionHandle]]
