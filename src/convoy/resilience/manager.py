"""Connection Resilience Manager: classified exponential-backoff reconnection.

One ReconnectManager supervises the connection of one agent:

    CONNECTING --spawn--> CONNECTED
    CONNECTED --end/kicked/error--> SCHEDULING_RECONNECT --timer--> RECONNECTING
    RECONNECTING --factory ok--> CONNECTING
    RECONNECTING --factory failed--> SCHEDULING_RECONNECT
    any --auth / permanent ban / attempts exhausted--> PERMANENTLY_FAILED
    any --disable()--> DISCONNECTED

Failures are reported as events, never raised to the caller. The only
suspension point is the factory call, bounded by ``connect_timeout_ms``.

Usage:
    manager = ReconnectManager(create_connection, config.reconnect, agent_id="miner-1")
    manager.on("connection.ban.detected", on_ban)
    manager.attach(await create_connection())
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import asdict, dataclass
from enum import Enum
import inspect
import random
import time
from typing import Any

from convoy.config.models import ReconnectConfig
from convoy.core.errors import ConnectionFailedError, ValidationError
from convoy.events.base import EventDispatcher, EventListener
from convoy.events.connection import (
    create_auth_failed_event,
    create_ban_detected_event,
    create_connected_event,
    create_errored_event,
    create_kicked_event,
    create_logged_in_event,
    create_reconnect_exhausted_event,
    create_reconnect_failed_event,
    create_reconnect_scheduled_event,
    create_reconnect_succeeded_event,
)
from convoy.observability.logging import get_logger
from convoy.resilience.backoff import compute_delay
from convoy.resilience.classifier import (
    ErrorCategory,
    ErrorClassification,
    classify_disconnect,
    classify_error,
    classify_kick,
)
from convoy.resilience.connection import ConnectionEvent, ConnectionFactory

log = get_logger(__name__)


# =============================================================================
# State
# =============================================================================


class ConnectionState(str, Enum):
    """Reconnect state machine states."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    SCHEDULING_RECONNECT = "scheduling_reconnect"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"
    PERMANENTLY_FAILED = "permanently_failed"


@dataclass(slots=True)
class ConnectionSession:
    """The connection currently supervised for an agent.

    Attributes:
        agent_id: Owning agent.
        generation: Incremented on every attach; older handles are stale.
        connection: The attached connection handle.
        attempt_count: Reconnect attempts since the last successful spawn.
        next_delay_ms: Delay of the latest scheduled attempt.
        last_error: Latest classified failure.
        enabled: Whether automatic reconnection is on.
        state: Current state machine state.
    """

    agent_id: str
    generation: int
    connection: Any
    attempt_count: int = 0
    next_delay_ms: int | None = None
    last_error: ErrorClassification | None = None
    enabled: bool = True
    state: ConnectionState = ConnectionState.CONNECTING


@dataclass(slots=True)
class ReconnectStats:
    """Cumulative reconnect statistics."""

    total_reconnects: int = 0
    successful_reconnects: int = 0
    failed_reconnects: int = 0
    successful_connections: int = 0
    last_reconnect_latency_ms: float | None = None
    average_reconnect_latency_ms: float = 0.0

    def record_success(self, latency_ms: float) -> None:
        self.successful_reconnects += 1
        self.last_reconnect_latency_ms = latency_ms
        n = self.successful_reconnects
        self.average_reconnect_latency_ms += (latency_ms - self.average_reconnect_latency_ms) / n


# =============================================================================
# Manager
# =============================================================================


class ReconnectManager:
    """Supervises one agent connection and reconnects it with backoff."""

    def __init__(
        self,
        factory: ConnectionFactory,
        config: ReconnectConfig | None = None,
        *,
        agent_id: str | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            factory: Async callable producing a fresh connection handle.
            config: Backoff policy; defaults to ReconnectConfig().
            agent_id: Agent owning the connection; may also be given to attach().
            rng: Random source for jitter.
        """
        self._factory = factory
        self._config = config or ReconnectConfig()
        self._agent_id = agent_id
        self._rng = rng
        self._session: ConnectionSession | None = None
        self._enabled = self._config.enabled
        self._reconnecting = False
        self._reconnect_task: asyncio.Task[bool] | None = None
        self._stats = ReconnectStats()
        self._events = EventDispatcher("reconnect")

    @property
    def agent_id(self) -> str | None:
        return self._agent_id

    @property
    def session(self) -> ConnectionSession | None:
        return self._session

    @property
    def state(self) -> ConnectionState | None:
        return self._session.state if self._session else None

    @property
    def connection(self) -> Any:
        return self._session.connection if self._session else None

    @property
    def is_reconnecting(self) -> bool:
        return self._reconnecting

    @property
    def pending_reconnect(self) -> asyncio.Task[bool] | None:
        """The scheduled or running reconnect task, if any."""
        return self._reconnect_task

    def on(self, event_type: str, listener: EventListener) -> Callable[[], None]:
        """Subscribe to ``connection.*`` events."""
        return self._events.on(event_type, listener)

    # -------------------------------------------------------------------------
    # Attachment
    # -------------------------------------------------------------------------

    def attach(self, connection: Any, agent_id: str | None = None) -> ConnectionSession:
        """Start supervising ``connection``, replacing the previous session.

        The attempt count and the enabled flag carry over; events from
        previously attached handles are ignored from now on.
        """
        if agent_id is not None:
            self._agent_id = agent_id
        if not self._agent_id:
            raise ValidationError("attach() needs an agent_id", field="agent_id")

        previous = self._session
        self._session = ConnectionSession(
            agent_id=self._agent_id,
            generation=previous.generation + 1 if previous else 1,
            connection=connection,
            attempt_count=previous.attempt_count if previous else 0,
            enabled=self._enabled,
        )
        self._bind(connection)
        log.debug(
            "connection.session.attached",
            agent_id=self._agent_id,
            generation=self._session.generation,
        )
        return self._session

    def _bind(self, connection: Any) -> None:
        def guarded(handler: Callable[..., None], event: ConnectionEvent) -> Callable[..., None]:
            def listener(*args: Any) -> None:
                session = self._session
                if session is None or session.connection is not connection:
                    log.debug(
                        "connection.event.stale",
                        agent_id=self._agent_id,
                        connection_event=event.value,
                    )
                    return
                handler(session, *args)

            return listener

        connection.on(ConnectionEvent.SPAWN.value, guarded(self._on_spawn, ConnectionEvent.SPAWN))
        connection.on(ConnectionEvent.END.value, guarded(self._on_end, ConnectionEvent.END))
        connection.on(
            ConnectionEvent.KICKED.value, guarded(self._on_kicked, ConnectionEvent.KICKED)
        )
        connection.on(ConnectionEvent.ERROR.value, guarded(self._on_error, ConnectionEvent.ERROR))
        connection.on(ConnectionEvent.LOGIN.value, guarded(self._on_login, ConnectionEvent.LOGIN))

    # -------------------------------------------------------------------------
    # Connection events
    # -------------------------------------------------------------------------

    def _on_spawn(self, session: ConnectionSession, *_: Any) -> None:
        if session.state is not ConnectionState.CONNECTING:
            return
        session.attempt_count = 0
        session.next_delay_ms = None
        session.state = ConnectionState.CONNECTED
        self._stats.successful_connections += 1
        log.info(
            "connection.session.connected",
            agent_id=session.agent_id,
            generation=session.generation,
        )
        self._events.emit(create_connected_event(session.agent_id, session.generation))

    def _on_login(self, session: ConnectionSession, *_: Any) -> None:
        log.info("connection.session.logged_in", agent_id=session.agent_id)
        self._events.emit(create_logged_in_event(session.agent_id, session.generation))

    def _on_end(self, session: ConnectionSession, reason: Any = None, *_: Any) -> None:
        classification = classify_disconnect(reason)
        log.warning(
            "connection.session.ended",
            agent_id=session.agent_id,
            reason=classification.message or None,
            category=classification.category.value,
        )
        self._handle_failure(session, classification)

    def _on_kicked(self, session: ConnectionSession, reason: Any = None, *_: Any) -> None:
        classification = classify_kick(reason)
        log.warning(
            "connection.session.kicked",
            agent_id=session.agent_id,
            reason=classification.message,
            category=classification.category.value,
        )
        self._events.emit(create_kicked_event(session.agent_id, classification.message))
        self._handle_failure(session, classification)

    def _on_error(self, session: ConnectionSession, error: Any = None, *_: Any) -> None:
        classification = classify_error(error)
        log.error(
            "connection.session.errored",
            agent_id=session.agent_id,
            error=classification.message,
            category=classification.category.value,
        )
        self._events.emit(
            create_errored_event(
                session.agent_id, classification.category.value, classification.message
            )
        )
        self._handle_failure(session, classification)

    def _handle_failure(
        self, session: ConnectionSession, classification: ErrorClassification
    ) -> None:
        if session.state is ConnectionState.PERMANENTLY_FAILED:
            return
        session.last_error = classification
        if classification.is_terminal:
            self._fail_permanently(session, classification)
            return
        if not session.enabled:
            session.state = ConnectionState.DISCONNECTED
            log.info("connection.reconnect.suppressed", agent_id=session.agent_id)
            return
        self.schedule_reconnect(classification.category, classification.message or None)

    def _fail_permanently(
        self, session: ConnectionSession, classification: ErrorClassification
    ) -> None:
        if session.state is ConnectionState.PERMANENTLY_FAILED:
            return
        session.state = ConnectionState.PERMANENTLY_FAILED
        self._cancel_pending()
        if classification.category is ErrorCategory.KICKED_PERMANENT:
            log.error(
                "connection.ban.detected",
                agent_id=session.agent_id,
                reason=classification.message,
            )
            self._events.emit(create_ban_detected_event(session.agent_id, classification.message))
        else:
            log.error(
                "connection.auth.failed",
                agent_id=session.agent_id,
                error=classification.message,
            )
            self._events.emit(create_auth_failed_event(session.agent_id, classification.message))

    # -------------------------------------------------------------------------
    # Reconnection
    # -------------------------------------------------------------------------

    def schedule_reconnect(
        self,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        reason: str | None = None,
    ) -> bool:
        """Schedule the next reconnect attempt after a backoff delay.

        Must be called with a running event loop.

        Returns:
            True if an attempt was scheduled.
        """
        session = self._require_session()
        if session.state is ConnectionState.PERMANENTLY_FAILED:
            return False
        if self._reconnecting:
            log.debug("connection.reconnect.already_pending", agent_id=session.agent_id)
            return False
        if not session.enabled:
            return False

        max_attempts = self._config.max_attempts
        if max_attempts > 0 and session.attempt_count >= max_attempts:
            session.state = ConnectionState.PERMANENTLY_FAILED
            log.error(
                "connection.reconnect.exhausted",
                agent_id=session.agent_id,
                attempts=session.attempt_count,
            )
            self._events.emit(
                create_reconnect_exhausted_event(session.agent_id, session.attempt_count)
            )
            return False

        delay_ms = compute_delay(session.attempt_count, self._config, self._rng)
        session.attempt_count += 1
        session.next_delay_ms = delay_ms
        session.state = ConnectionState.SCHEDULING_RECONNECT
        self._reconnecting = True
        self._stats.total_reconnects += 1

        loop = asyncio.get_running_loop()
        self._reconnect_task = loop.create_task(self._reconnect_after(delay_ms))

        log.warning(
            "connection.reconnect.scheduled",
            agent_id=session.agent_id,
            attempt=session.attempt_count,
            max_attempts=max_attempts if max_attempts > 0 else None,
            delay_ms=delay_ms,
            category=category.value,
            reason=reason,
        )
        self._events.emit(
            create_reconnect_scheduled_event(
                session.agent_id, session.attempt_count, delay_ms, category.value, reason
            )
        )
        return True

    async def _reconnect_after(self, delay_ms: int) -> bool:
        await asyncio.sleep(delay_ms / 1000)
        return await self.perform_reconnect()

    async def perform_reconnect(self) -> bool:
        """Replace the connection with a fresh one from the factory.

        Normally driven by the timer started in schedule_reconnect().

        Returns:
            True if the factory produced a new connection.
        """
        session = self._require_session()
        self._reconnecting = True
        session.state = ConnectionState.RECONNECTING
        await self._dispose(session.connection)

        timeout_s = self._config.connect_timeout_ms / 1000
        started = time.monotonic()
        try:
            connection = await asyncio.wait_for(self._factory(), timeout=timeout_s)
        except asyncio.CancelledError:
            self._reconnecting = False
            raise
        except Exception as exc:
            self._reconnecting = False
            self._reconnect_task = None
            self._record_failure(session, exc)
            return False

        latency_ms = (time.monotonic() - started) * 1000
        self._reconnecting = False
        self._reconnect_task = None
        self._stats.record_success(latency_ms)
        new_session = self.attach(connection)

        log.info(
            "connection.reconnect.succeeded",
            agent_id=new_session.agent_id,
            attempt=new_session.attempt_count,
            latency_ms=round(latency_ms, 3),
            generation=new_session.generation,
        )
        self._events.emit(
            create_reconnect_succeeded_event(
                new_session.agent_id, new_session.attempt_count, latency_ms, connection
            )
        )
        return True

    def _record_failure(self, session: ConnectionSession, exc: Exception) -> None:
        classification = classify_error(exc)
        if isinstance(exc, TimeoutError) and not str(exc):
            classification = ErrorClassification(
                classification.category,
                f"connection factory timed out after {self._config.connect_timeout_ms}ms",
                classification.matched_rule,
            )
        error = ConnectionFailedError.from_exception(
            exc, agent_id=session.agent_id, category=classification.category.value
        )
        self._stats.failed_reconnects += 1
        log.warning(
            "connection.reconnect.failed",
            agent_id=session.agent_id,
            attempt=session.attempt_count,
            category=classification.category.value,
            error=classification.message,
            error_type=error.details["original_exception"],
        )
        self._events.emit(
            create_reconnect_failed_event(
                session.agent_id,
                session.attempt_count,
                classification.category.value,
                classification.message,
            )
        )
        self._handle_failure(session, classification)

    async def _dispose(self, connection: Any) -> None:
        if connection is None:
            return
        try:
            connection.remove_all_listeners()
            closing = connection.close()
            if inspect.isawaitable(closing):
                await closing
        except Exception as exc:
            log.warning(
                "connection.cleanup.failed",
                agent_id=self._agent_id,
                error=str(exc) or type(exc).__name__,
            )

    def _cancel_pending(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        self._reconnecting = False
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    # -------------------------------------------------------------------------
    # Controls
    # -------------------------------------------------------------------------

    def enable(self) -> None:
        """Turn automatic reconnection on."""
        self._enabled = True
        if self._session is not None:
            self._session.enabled = True
        log.info("connection.reconnect.enabled", agent_id=self._agent_id)

    def disable(self) -> None:
        """Turn automatic reconnection off and cancel any pending attempt."""
        self._enabled = False
        self._cancel_pending()
        session = self._session
        if session is not None:
            session.enabled = False
            if session.state in (
                ConnectionState.SCHEDULING_RECONNECT,
                ConnectionState.RECONNECTING,
            ):
                session.state = ConnectionState.DISCONNECTED
        log.info("connection.reconnect.disabled", agent_id=self._agent_id)

    def force_reconnect(self) -> asyncio.Task[bool]:
        """Cancel any pending attempt and reconnect immediately.

        Also the operator path out of PERMANENTLY_FAILED. Must be called
        with a running event loop.

        Returns:
            The reconnect task; await it for the outcome.
        """
        session = self._require_session()
        self._cancel_pending()
        session.attempt_count = 0
        session.next_delay_ms = 0
        session.state = ConnectionState.SCHEDULING_RECONNECT
        self._reconnecting = True
        self._stats.total_reconnects += 1
        log.info("connection.reconnect.forced", agent_id=session.agent_id)

        task = asyncio.get_running_loop().create_task(self.perform_reconnect())
        self._reconnect_task = task
        return task

    def get_stats(self) -> dict[str, Any]:
        """Cumulative statistics plus the current session state."""
        session = self._session
        last_error = session.last_error if session else None
        return {
            **asdict(self._stats),
            "agent_id": self._agent_id,
            "state": session.state.value if session else None,
            "generation": session.generation if session else 0,
            "current_attempt": session.attempt_count if session else 0,
            "next_delay_ms": session.next_delay_ms if session else None,
            "last_error": last_error.category.value if last_error else None,
            "is_reconnecting": self._reconnecting,
            "enabled": self._enabled,
        }

    def reset_stats(self) -> None:
        """Zero the statistics and the attempt counter."""
        self._stats = ReconnectStats()
        if self._session is not None:
            self._session.attempt_count = 0

    async def close(self) -> None:
        """Stop supervising: cancel timers and close the current connection."""
        self.disable()
        session = self._session
        if session is not None:
            await self._dispose(session.connection)
            if session.state is not ConnectionState.PERMANENTLY_FAILED:
                session.state = ConnectionState.DISCONNECTED
        log.info("connection.session.closed", agent_id=self._agent_id)

    def _require_session(self) -> ConnectionSession:
        if self._session is None:
            raise ValidationError("No connection attached", field="session")
        return self._session
