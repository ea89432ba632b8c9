"""Base event definition and in-process dispatch.

Every state change Convoy reports to the outside world (task assigned,
reconnect scheduled, ban detected ...) is an immutable BaseEvent following
the dot.notation.past_tense naming convention. Events are not persisted;
they are handed to listeners registered on an EventDispatcher.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from convoy.observability.logging import get_logger

log = get_logger(__name__)

EventListener = Callable[["BaseEvent"], Any]

ANY_EVENT = "*"
"""Listener key that receives every event regardless of type."""


class BaseEvent(BaseModel, frozen=True):
    """Base class for all Convoy events.

    Attributes:
        id: Unique event identifier (UUID).
        type: Event type following dot.notation.past_tense convention.
              Examples: "scheduler.task.assigned", "connection.ban.detected"
        timestamp: When the event occurred (UTC).
        aggregate_type: Kind of entity the event belongs to ("task", "agent",
            "connection").
        aggregate_id: Identifier of that entity.
        data: Event-specific payload data.

    Example:
        event = BaseEvent(
            type="scheduler.task.assigned",
            aggregate_type="task",
            aggregate_id="7",
            data={"agent_id": "miner-1", "score": 127.5},
        )
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    aggregate_type: str
    aggregate_id: str
    data: dict[str, Any] = Field(default_factory=dict)


class EventDispatcher:
    """Synchronous fan-out of events to registered listeners.

    Listeners run in registration order. A listener that raises is logged
    and skipped; the remaining listeners still run and the emitter never
    sees the exception.
    """

    def __init__(self, source: str) -> None:
        """Initialize the dispatcher.

        Args:
            source: Name of the owning component, used in log entries.
        """
        self._source = source
        self._listeners: dict[str, list[EventListener]] = {}

    def on(self, event_type: str, listener: EventListener) -> Callable[[], None]:
        """Register a listener for one event type (or ANY_EVENT).

        Returns:
            Callable that removes the listener again.
        """
        self._listeners.setdefault(event_type, []).append(listener)

        def _unsubscribe() -> None:
            self.off(event_type, listener)

        return _unsubscribe

    def off(self, event_type: str, listener: EventListener) -> None:
        """Remove a listener; unknown listeners are ignored."""
        listeners = self._listeners.get(event_type)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def clear(self) -> None:
        """Drop every listener."""
        self._listeners.clear()

    def emit(self, event: BaseEvent) -> None:
        """Deliver an event to its type's listeners, then to wildcard listeners."""
        targets = [*self._listeners.get(event.type, ()), *self._listeners.get(ANY_EVENT, ())]
        for listener in targets:
            try:
                listener(event)
            except Exception:
                log.exception(
                    "events.listener.failed",
                    source=self._source,
                    event_type=event.type,
                    aggregate_id=event.aggregate_id,
                )
