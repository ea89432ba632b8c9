"""Unit tests for convoy.events.base module."""

from datetime import UTC, datetime

from pydantic import ValidationError
import pytest

from convoy.events.base import ANY_EVENT, BaseEvent, EventDispatcher


def _event(event_type: str = "scheduler.task.assigned") -> BaseEvent:
    return BaseEvent(type=event_type, aggregate_type="task", aggregate_id="1")


class TestBaseEvent:
    """Test BaseEvent model."""

    def test_defaults(self) -> None:
        """id, timestamp and data are filled automatically."""
        event = _event()

        assert len(event.id) == 36
        assert event.timestamp.tzinfo == UTC
        assert event.timestamp <= datetime.now(UTC)
        assert event.data == {}

    def test_unique_ids(self) -> None:
        """Every event gets its own id."""
        assert _event().id != _event().id

    def test_frozen(self) -> None:
        """Events cannot be modified after creation."""
        event = _event()

        with pytest.raises(ValidationError):
            event.type = "other"  # type: ignore[misc]

    def test_requires_aggregate(self) -> None:
        """aggregate_type and aggregate_id are mandatory."""
        with pytest.raises(ValidationError):
            BaseEvent(type="x.y.z")  # type: ignore[call-arg]


class TestEventDispatcher:
    """Test EventDispatcher fan-out."""

    def test_typed_listener_receives_matching_events(self) -> None:
        """Listeners only see their own event type."""
        dispatcher = EventDispatcher("test")
        seen: list[str] = []
        dispatcher.on("scheduler.task.assigned", lambda e: seen.append(e.type))

        dispatcher.emit(_event("scheduler.task.assigned"))
        dispatcher.emit(_event("scheduler.task.completed"))

        assert seen == ["scheduler.task.assigned"]

    def test_wildcard_after_typed(self) -> None:
        """Typed listeners run before ANY_EVENT listeners."""
        dispatcher = EventDispatcher("test")
        order: list[str] = []
        dispatcher.on(ANY_EVENT, lambda e: order.append("any"))
        dispatcher.on("scheduler.task.assigned", lambda e: order.append("typed"))

        dispatcher.emit(_event())

        assert order == ["typed", "any"]

    def test_failing_listener_isolated(self) -> None:
        """A raising listener does not stop the others or reach the emitter."""
        dispatcher = EventDispatcher("test")
        seen: list[str] = []

        def _boom(event: BaseEvent) -> None:
            raise RuntimeError("listener bug")

        dispatcher.on("scheduler.task.assigned", _boom)
        dispatcher.on("scheduler.task.assigned", lambda e: seen.append("second"))

        dispatcher.emit(_event())

        assert seen == ["second"]

    def test_unsubscribe(self) -> None:
        """The callable returned by on() removes the listener."""
        dispatcher = EventDispatcher("test")
        seen: list[BaseEvent] = []
        unsubscribe = dispatcher.on(ANY_EVENT, seen.append)

        unsubscribe()
        dispatcher.emit(_event())

        assert seen == []

    def test_off_unknown_listener_is_noop(self) -> None:
        """Removing a listener that was never added does nothing."""
        dispatcher = EventDispatcher("test")

        dispatcher.off("missing", lambda e: None)

    def test_clear(self) -> None:
        """clear() drops every listener."""
        dispatcher = EventDispatcher("test")
        seen: list[BaseEvent] = []
        dispatcher.on(ANY_EVENT, seen.append)
        dispatcher.on("scheduler.task.assigned", seen.append)

        dispatcher.clear()
        dispatcher.emit(_event())

        assert seen == []
