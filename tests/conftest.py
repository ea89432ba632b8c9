"""Shared fixtures for Convoy tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from convoy.events.base import ANY_EVENT, BaseEvent


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeConnection:
    """In-memory connection handle that emits events on demand."""

    def __init__(self, name: str = "conn") -> None:
        self.name = name
        self.listeners: dict[str, list[Callable[..., Any]]] = {}
        self.closed = False

    def on(self, event: str, listener: Callable[..., Any]) -> None:
        self.listeners.setdefault(event, []).append(listener)

    def remove_all_listeners(self) -> None:
        self.listeners.clear()

    def close(self) -> None:
        self.closed = True

    def emit(self, event: str, *args: Any) -> None:
        for listener in list(self.listeners.get(event, ())):
            listener(*args)

    def __repr__(self) -> str:
        return f"FakeConnection({self.name!r})"


class EventRecorder:
    """Listener that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: list[BaseEvent] = []

    def __call__(self, event: BaseEvent) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [e.type for e in self.events]

    def of_type(self, event_type: str) -> list[BaseEvent]:
        return [e for e in self.events if e.type == event_type]

    def attach(self, component: Any) -> EventRecorder:
        component.on(ANY_EVENT, self)
        return self


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting at a fixed epoch."""
    return FakeClock()


@pytest.fixture
def make_connection() -> Callable[[str], FakeConnection]:
    """Factory for fake connection handles."""

    def _make(name: str = "conn") -> FakeConnection:
        return FakeConnection(name)

    return _make


@pytest.fixture
def recorder() -> EventRecorder:
    """Fresh event recorder."""
    return EventRecorder()
