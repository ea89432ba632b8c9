"""Event definitions and dispatch for Convoy.

Events are immutable records of state changes in the fleet. Each domain
module exposes factory functions; components own an EventDispatcher and
expose ``on(event_type, listener)`` so callers can observe them.
"""

from convoy.events.base import ANY_EVENT, BaseEvent, EventDispatcher, EventListener

__all__ = ["ANY_EVENT", "BaseEvent", "EventDispatcher", "EventListener"]
