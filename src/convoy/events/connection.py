"""Event factories for connection resilience.

Event Types:
    connection.session.connected - Connection reported success (attempts reset)
    connection.session.logged_in - Connection reported a login
    connection.session.kicked - Agent was kicked
    connection.session.errored - Connection raised an error
    connection.auth.failed - Authentication failure; reconnect suppressed
    connection.ban.detected - Permanent ban; reconnect suppressed
    connection.reconnect.scheduled - Backoff delay started
    connection.reconnect.succeeded - Factory produced a new connection
    connection.reconnect.failed - Factory raised or timed out
    connection.reconnect.exhausted - max_attempts reached
"""

from typing import Any

from convoy.events.base import BaseEvent


def _connection_event(event_type: str, agent_id: str, **data: Any) -> BaseEvent:
    return BaseEvent(
        type=event_type,
        aggregate_type="connection",
        aggregate_id=agent_id,
        data=data,
    )


def create_connected_event(agent_id: str, generation: int) -> BaseEvent:
    """Create event for a successful connection."""
    return _connection_event("connection.session.connected", agent_id, generation=generation)


def create_logged_in_event(agent_id: str, generation: int) -> BaseEvent:
    """Create event for a login notification."""
    return _connection_event("connection.session.logged_in", agent_id, generation=generation)


def create_kicked_event(agent_id: str, reason: str) -> BaseEvent:
    """Create event for a kick."""
    return _connection_event("connection.session.kicked", agent_id, reason=reason)


def create_errored_event(agent_id: str, category: str, message: str) -> BaseEvent:
    """Create event for a connection error."""
    return _connection_event(
        "connection.session.errored", agent_id, category=category, message=message
    )


def create_auth_failed_event(agent_id: str, message: str) -> BaseEvent:
    """Create event for a terminal authentication failure."""
    return _connection_event("connection.auth.failed", agent_id, message=message)


def create_ban_detected_event(agent_id: str, reason: str) -> BaseEvent:
    """Create event for a permanent ban."""
    return _connection_event("connection.ban.detected", agent_id, reason=reason)


def create_reconnect_scheduled_event(
    agent_id: str,
    attempt: int,
    delay_ms: int,
    category: str,
    reason: str | None,
) -> BaseEvent:
    """Create event for a scheduled reconnect attempt."""
    return _connection_event(
        "connection.reconnect.scheduled",
        agent_id,
        attempt=attempt,
        delay_ms=delay_ms,
        category=category,
        reason=reason,
    )


def create_reconnect_succeeded_event(
    agent_id: str,
    attempt: int,
    latency_ms: float,
    connection: Any,
) -> BaseEvent:
    """Create event for a reconnect that produced a new connection.

    The new handle travels in ``data["connection"]`` so listeners can
    re-register it with the directory and bus.
    """
    return _connection_event(
        "connection.reconnect.succeeded",
        agent_id,
        attempt=attempt,
        latency_ms=latency_ms,
        connection=connection,
    )


def create_reconnect_failed_event(
    agent_id: str,
    attempt: int,
    category: str,
    message: str,
) -> BaseEvent:
    """Create event for a failed reconnect attempt."""
    return _connection_event(
        "connection.reconnect.failed",
        agent_id,
        attempt=attempt,
        category=category,
        message=message,
    )


def create_reconnect_exhausted_event(agent_id: str, attempts: int) -> BaseEvent:
    """Create event for reaching max_attempts."""
    return _connection_event("connection.reconnect.exhausted", agent_id, attempts=attempts)
