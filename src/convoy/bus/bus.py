"""Message Bus: direct messages, broadcasts and typed fleet notifications.

The bus keeps a subscriber entry per registered agent (message counters
and join time) and a bounded, time-ordered message log. Liveness is not
tracked here: heartbeats and inactivity checks go straight to the
AgentDirectory.

Handlers subscribe per message kind and run synchronously, in
subscription order, inside ``send``. A handler that raises is logged and
skipped so one faulty handler cannot block delivery to the others.

Usage:
    bus = MessageBus(directory)
    bus.register_agent("miner-1")
    bus.register_agent("guard-1")
    unsubscribe = bus.on(MessageKind.DANGER_ALERT, on_danger)
    bus.alert_danger("miner-1", "creeper", {"x": 4, "z": 9}, severity=8)
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
import math
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from convoy.agents.directory import as_position
from convoy.bus.messages import (
    BROADCAST,
    Message,
    MessageKind,
    MessagePayload,
    coerce_kind,
    parse_payload,
)
from convoy.observability.logging import get_logger

if TYPE_CHECKING:
    from convoy.agents.directory import AgentDirectory
    from convoy.config.models import BusConfig

log = get_logger(__name__)

MessageHandler = Callable[[Message], Any]

SYSTEM_SENDER = "system"
WALKING_SPEED = 4.3
"""Approximate agent walking speed in blocks per second, used for ETAs."""


@dataclass(slots=True)
class Subscriber:
    """Bus-side bookkeeping for one registered agent."""

    agent_id: str
    joined_at: float
    messages_sent: int = 0
    messages_received: int = 0


def _coordinates(value: Any) -> dict[str, float] | None:
    position = as_position(value)
    if position is None:
        return None
    return {"x": position.x, "y": position.y, "z": position.z}


class MessageBus:
    """In-process publish/subscribe bus for fleet agents."""

    def __init__(
        self,
        directory: AgentDirectory,
        *,
        message_retention_ms: int = 3_600_000,
        max_messages: int = 10_000,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the bus.

        Args:
            directory: Agent registry that owns liveness.
            message_retention_ms: Default age horizon for cleanup().
            max_messages: Hard bound on the message log; oldest drop first.
            clock: Source of epoch seconds; defaults to the directory clock.
        """
        self._directory = directory
        self._retention_ms = message_retention_ms
        self._clock = clock or directory.now
        self._subscribers: dict[str, Subscriber] = {}
        self._handlers: dict[MessageKind, list[MessageHandler]] = {}
        self._log: deque[Message] = deque(maxlen=max_messages)
        self._total_delivered = 0
        self._handler_failures = 0

    @classmethod
    def from_config(
        cls,
        directory: AgentDirectory,
        config: BusConfig,
        *,
        clock: Callable[[], float] | None = None,
    ) -> MessageBus:
        """Build a bus from the ``bus`` config section."""
        return cls(
            directory,
            message_retention_ms=config.message_retention_ms,
            max_messages=config.max_messages,
            clock=clock,
        )

    # -------------------------------------------------------------------------
    # Membership
    # -------------------------------------------------------------------------

    def register_agent(
        self,
        agent_id: str,
        handle: Any = None,
        *,
        capabilities: Iterable[str] = (),
    ) -> Subscriber:
        """Add an agent to the bus and announce it to the others.

        Unknown agents are registered in the directory; known ones are
        heartbeated (and get their handle replaced when one is given).
        Only the first registration is announced; later calls refresh
        liveness and the handle.
        """
        if agent_id in self._directory:
            self._directory.heartbeat(agent_id)
            if handle is not None:
                self._directory.update_status(agent_id, handle=handle)
        else:
            self._directory.register(agent_id, capabilities, handle)

        subscriber = self._subscribers.get(agent_id)
        if subscriber is not None:
            log.debug("bus.agent.refreshed", agent_id=agent_id)
            return subscriber
        subscriber = Subscriber(agent_id=agent_id, joined_at=self._clock())
        self._subscribers[agent_id] = subscriber

        record = self._directory.get(agent_id)
        announced = sorted(record.capabilities) if record else []
        log.info("bus.agent.registered", agent_id=agent_id)
        self.broadcast(
            MessageKind.AGENT_JOINED,
            {"agent_id": agent_id, "capabilities": announced},
            exclude=agent_id,
        )
        return subscriber

    def unregister_agent(self, agent_id: str) -> bool:
        """Remove an agent from the bus and announce its departure."""
        if self._subscribers.pop(agent_id, None) is None:
            return False
        log.info("bus.agent.unregistered", agent_id=agent_id)
        self.broadcast(MessageKind.AGENT_LEFT, {"agent_id": agent_id})
        return True

    def is_registered(self, agent_id: str) -> bool:
        return agent_id in self._subscribers

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    def send(
        self,
        sender: str,
        recipient: str,
        kind: MessageKind | str,
        payload: MessagePayload | dict[str, Any] | None = None,
    ) -> bool:
        """Deliver one message and run the kind's handlers.

        A recipient of BROADCAST fans out to every agent except the sender.

        Returns:
            False if the recipient is not registered.

        Raises:
            ValidationError: On an unknown kind or an invalid payload.
        """
        kind = coerce_kind(kind)
        validated = parse_payload(kind, payload)
        if recipient == BROADCAST:
            return self._fan_out(sender, kind, validated, exclude=sender) > 0
        return self._deliver(sender, recipient, kind, validated)

    def broadcast(
        self,
        kind: MessageKind | str,
        payload: MessagePayload | dict[str, Any] | None = None,
        exclude: str | None = None,
        sender: str = SYSTEM_SENDER,
    ) -> int:
        """Send to every registered agent except ``exclude``.

        Returns:
            Number of recipients the message was delivered to.
        """
        kind = coerce_kind(kind)
        validated = parse_payload(kind, payload)
        return self._fan_out(sender, kind, validated, exclude=exclude)

    def _fan_out(
        self,
        sender: str,
        kind: MessageKind,
        payload: MessagePayload,
        *,
        exclude: str | None,
    ) -> int:
        delivered = 0
        for agent_id in list(self._subscribers):
            if agent_id == exclude:
                continue
            if self._deliver(sender, agent_id, kind, payload):
                delivered += 1
        log.debug("bus.message.broadcast", kind=kind.value, sender=sender, recipients=delivered)
        return delivered

    def _deliver(
        self,
        sender: str,
        recipient: str,
        kind: MessageKind,
        payload: MessagePayload,
    ) -> bool:
        target = self._subscribers.get(recipient)
        if target is None:
            log.debug(
                "bus.message.undeliverable",
                sender=sender,
                recipient=recipient,
                kind=kind.value,
            )
            return False

        message = Message(
            sender=sender,
            recipient=recipient,
            kind=kind,
            payload=payload,
            timestamp=self._clock(),
        )
        self._log.append(message)
        self._total_delivered += 1
        target.messages_received += 1
        source = self._subscribers.get(sender)
        if source is not None:
            source.messages_sent += 1

        for handler in list(self._handlers.get(kind, ())):
            try:
                handler(message)
            except Exception:
                self._handler_failures += 1
                log.exception(
                    "bus.handler.failed",
                    kind=kind.value,
                    message_id=message.id,
                    recipient=recipient,
                )
        return True

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def on(self, kind: MessageKind | str, handler: MessageHandler) -> Callable[[], None]:
        """Subscribe a handler to one message kind.

        Returns:
            Callable that removes the handler again.
        """
        resolved = coerce_kind(kind)
        self._handlers.setdefault(resolved, []).append(handler)

        def _unsubscribe() -> None:
            self.off(resolved, handler)

        return _unsubscribe

    def off(self, kind: MessageKind | str, handler: MessageHandler) -> None:
        """Remove a handler; unknown handlers are ignored."""
        handlers = self._handlers.get(coerce_kind(kind))
        if handlers and handler in handlers:
            handlers.remove(handler)

    # -------------------------------------------------------------------------
    # Liveness and retention
    # -------------------------------------------------------------------------

    def heartbeat(self, agent_id: str) -> bool:
        """Refresh the agent's liveness in the directory."""
        return self._directory.heartbeat(agent_id)

    def check_inactive(self, timeout_ms: int | None = None) -> list[str]:
        """Sweep the directory for silent agents; returns newly offline ids."""
        return self._directory.sweep_inactive(timeout_ms)

    def cleanup(self, max_age_ms: int | None = None) -> int:
        """Purge messages older than the retention horizon.

        Returns:
            Number of messages removed.
        """
        max_age_ms = self._retention_ms if max_age_ms is None else max_age_ms
        cutoff = self._clock() - max_age_ms / 1000
        removed = 0
        while self._log and self._log[0].timestamp <= cutoff:
            self._log.popleft()
            removed += 1
        if removed:
            log.info("bus.messages.purged", removed=removed, remaining=len(self._log))
        return removed

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_messages(self, agent_id: str, since: float = 0.0) -> list[Message]:
        """Messages delivered to ``agent_id`` after ``since`` (epoch seconds)."""
        return [m for m in self._log if m.recipient == agent_id and m.timestamp > since]

    def get_active_agents(self) -> list[dict[str, Any]]:
        """Summaries of registered agents that are not offline."""
        active = []
        for agent_id in self._subscribers:
            record = self._directory.get(agent_id)
            if record is not None and record.is_online:
                active.append(record.to_summary())
        return active

    def get_stats(self) -> dict[str, Any]:
        """Get bus statistics."""
        return {
            "registered_agents": len(self._subscribers),
            "active_agents": len(self.get_active_agents()),
            "logged_messages": len(self._log),
            "total_delivered": self._total_delivered,
            "messages_sent": sum(s.messages_sent for s in self._subscribers.values()),
            "messages_received": sum(s.messages_received for s in self._subscribers.values()),
            "handler_kinds": sum(1 for h in self._handlers.values() if h),
            "handler_failures": self._handler_failures,
        }

    # -------------------------------------------------------------------------
    # Typed notifications
    # -------------------------------------------------------------------------

    def request_help(self, agent_id: str, reason: str, urgency: int = 5) -> int:
        """Ask every other agent for help; the sender's position is attached."""
        record = self._directory.get(agent_id)
        position = _coordinates(record.position) if record else None
        log.info("bus.help.requested", agent_id=agent_id, reason=reason, urgency=urgency)
        return self.broadcast(
            MessageKind.HELP_REQUEST,
            {"reason": reason, "urgency": urgency, "position": position},
            exclude=agent_id,
            sender=agent_id,
        )

    def respond_to_help(self, responder: str, requester: str, accepted: bool = True) -> bool:
        """Answer a help request; accepted answers carry an ETA when positions are known."""
        eta = self._eta_seconds(responder, requester) if accepted else None
        return self.send(
            responder,
            requester,
            MessageKind.HELP_RESPONSE,
            {"accepted": accepted, "eta_seconds": eta},
        )

    def _eta_seconds(self, first: str, second: str) -> int | None:
        a, b = self._directory.get(first), self._directory.get(second)
        if a is None or b is None or a.position is None or b.position is None:
            return None
        return math.ceil(a.position.distance_to(b.position) / WALKING_SPEED)

    def share_resource(
        self, agent_id: str, resource_type: str, position: Any, amount: int = 1
    ) -> int:
        """Tell the others where a resource was found."""
        log.info(
            "bus.resource.shared",
            agent_id=agent_id,
            resource_type=resource_type,
            amount=amount,
        )
        return self.broadcast(
            MessageKind.RESOURCE_FOUND,
            {"resource_type": resource_type, "position": _coordinates(position), "amount": amount},
            exclude=agent_id,
            sender=agent_id,
        )

    def propose_activity(
        self,
        proposer: str,
        activity: str,
        required_agents: int = 2,
        details: dict[str, Any] | None = None,
    ) -> str:
        """Propose a group activity.

        Returns:
            The proposal id other agents answer with accept_activity().
        """
        proposal_id = str(uuid4())
        self.broadcast(
            MessageKind.ACTIVITY_PROPOSAL,
            {
                "proposal_id": proposal_id,
                "activity": activity,
                "required_agents": required_agents,
                "details": details or {},
            },
            exclude=proposer,
            sender=proposer,
        )
        log.info(
            "bus.activity.proposed",
            proposer=proposer,
            proposal_id=proposal_id,
            activity=activity,
            required_agents=required_agents,
        )
        return proposal_id

    def accept_activity(self, agent_id: str, proposal_id: str) -> int:
        """Announce acceptance of a proposal to the whole fleet."""
        return self.broadcast(
            MessageKind.ACTIVITY_RESPONSE,
            {"proposal_id": proposal_id, "accepted": True},
            sender=agent_id,
        )

    def alert_danger(
        self, agent_id: str, danger_type: str, position: Any, severity: int = 5
    ) -> int:
        """Warn the others about a danger at ``position``."""
        log.warning(
            "bus.danger.alerted",
            agent_id=agent_id,
            danger_type=danger_type,
            severity=severity,
        )
        return self.broadcast(
            MessageKind.DANGER_ALERT,
            {"danger_type": danger_type, "position": _coordinates(position), "severity": severity},
            exclude=agent_id,
            sender=agent_id,
        )

    def share_strategy(self, agent_id: str, strategy: dict[str, Any], priority: int = 5) -> int:
        return self.broadcast(
            MessageKind.STRATEGY_UPDATE,
            {"strategy": strategy, "priority": priority},
            exclude=agent_id,
            sender=agent_id,
        )
