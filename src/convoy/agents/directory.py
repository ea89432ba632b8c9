"""Agent Directory: registry of fleet agents and their liveness.

The directory is the single owner of agent state: capabilities, status,
current task, position, health and the last heartbeat. The message bus
and the scheduler read and update it but never keep their own copy.

Usage:
    directory = AgentDirectory()
    directory.register("miner-1", {"mining", "building"}, position={"x": 0, "z": 4})
    directory.heartbeat("miner-1")
    idle_miners = directory.query(capabilities={"mining"}, status=AgentStatus.IDLE)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
import math
import time
from typing import Any

from convoy.core.errors import ValidationError
from convoy.events.base import EventDispatcher, EventListener
from convoy.events.fleet import (
    create_agent_offline_event,
    create_agent_recovered_event,
    create_agent_registered_event,
)
from convoy.observability.logging import get_logger

log = get_logger(__name__)

DEFAULT_HEARTBEAT_TIMEOUT_MS = 60_000
DEFAULT_HEALTH = 20.0
DEFAULT_HELP_RADIUS = 50.0


class AgentStatus(str, Enum):
    """Lifecycle status of an agent."""

    IDLE = "idle"
    BUSY = "busy"
    OFFLINE = "offline"


@dataclass(frozen=True, slots=True)
class Position:
    """Point in world coordinates. Distances ignore the vertical axis."""

    x: float
    y: float = 0.0
    z: float = 0.0

    def distance_to(self, other: Position) -> float:
        """Planar (x/z) distance to another position."""
        return math.hypot(self.x - other.x, self.z - other.z)


def as_position(value: Any) -> Position | None:
    """Coerce a mapping or an object exposing x/z into a Position.

    Returns None for None or for values without usable coordinates.
    """
    if value is None or isinstance(value, Position):
        return value
    if isinstance(value, Mapping):
        getter = value.get
    else:

        def getter(key: str, default: Any = None) -> Any:
            return getattr(value, key, default)

    x, z = getter("x"), getter("z")
    if x is None or z is None:
        return None
    try:
        return Position(float(x), float(getter("y", 0.0) or 0.0), float(z))
    except (TypeError, ValueError):
        return None


@dataclass(slots=True)
class AgentRecord:
    """Directory entry for one agent.

    Attributes:
        agent_id: Unique agent identifier.
        capabilities: Skills the agent offers.
        status: Current lifecycle status.
        current_task: Task id while busy, None otherwise.
        position: Last reported position, if any.
        health: Last reported health.
        last_heartbeat: Epoch seconds of the last heartbeat.
        handle: Opaque connection handle owned by the caller.
        registered_at: Epoch seconds of the (latest) registration.
    """

    agent_id: str
    capabilities: frozenset[str]
    status: AgentStatus = AgentStatus.IDLE
    current_task: int | None = None
    position: Position | None = None
    health: float = DEFAULT_HEALTH
    last_heartbeat: float = field(default_factory=time.time)
    handle: Any = None
    registered_at: float = field(default_factory=time.time)

    @property
    def is_online(self) -> bool:
        return self.status is not AgentStatus.OFFLINE

    def to_summary(self) -> dict[str, Any]:
        """Plain-dict summary used by status snapshots."""
        return {
            "agent_id": self.agent_id,
            "status": self.status.value,
            "capabilities": sorted(self.capabilities),
            "current_task": self.current_task,
            "health": self.health,
            "position": (
                {"x": self.position.x, "y": self.position.y, "z": self.position.z}
                if self.position
                else None
            ),
            "last_heartbeat": self.last_heartbeat,
        }


_UPDATABLE_FIELDS = frozenset({"position", "health", "status", "current_task", "handle"})


def _check_invariant(record: AgentRecord) -> None:
    if record.status is AgentStatus.BUSY and record.current_task is None:
        raise ValidationError(
            f"Agent {record.agent_id} cannot be busy without a task",
            field="current_task",
            value=None,
        )
    if record.status is AgentStatus.IDLE and record.current_task is not None:
        raise ValidationError(
            f"Agent {record.agent_id} cannot be idle while holding a task",
            field="current_task",
            value=record.current_task,
        )


class AgentDirectory:
    """In-memory registry of agents, keyed by id in registration order."""

    def __init__(
        self,
        *,
        heartbeat_timeout_ms: int = DEFAULT_HEARTBEAT_TIMEOUT_MS,
        default_health: float = DEFAULT_HEALTH,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the directory.

        Args:
            heartbeat_timeout_ms: Default silence before an agent is swept offline.
            default_health: Health assigned when register() receives none.
            clock: Source of epoch seconds; defaults to time.time.
        """
        self._agents: dict[str, AgentRecord] = {}
        self._heartbeat_timeout_ms = heartbeat_timeout_ms
        self._default_health = default_health
        self._clock = clock or time.time
        self._events = EventDispatcher("directory")

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def __iter__(self) -> Iterator[AgentRecord]:
        return iter(list(self._agents.values()))

    def now(self) -> float:
        """Current time according to the directory clock."""
        return self._clock()

    def on(self, event_type: str, listener: EventListener) -> Callable[[], None]:
        """Subscribe to ``directory.agent.*`` events."""
        return self._events.on(event_type, listener)

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(
        self,
        agent_id: str,
        capabilities: Iterable[str],
        handle: Any = None,
        *,
        position: Any = None,
        health: float | None = None,
    ) -> AgentRecord:
        """Create or overwrite an agent record with status idle.

        Re-registering an agent replaces its record, so any task reference
        it held is dropped; callers release that task first.
        """
        if not agent_id:
            raise ValidationError("agent_id must be a non-empty string", field="agent_id")

        now = self._clock()
        record = AgentRecord(
            agent_id=agent_id,
            capabilities=frozenset(capabilities),
            position=as_position(position),
            health=self._default_health if health is None else float(health),
            last_heartbeat=now,
            handle=handle,
            registered_at=now,
        )
        replaced = agent_id in self._agents
        self._agents[agent_id] = record

        log.info(
            "directory.agent.registered",
            agent_id=agent_id,
            capabilities=sorted(record.capabilities),
            replaced=replaced,
        )
        self._events.emit(create_agent_registered_event(agent_id, sorted(record.capabilities)))
        return record

    def unregister(self, agent_id: str) -> AgentRecord | None:
        """Mark an agent offline. The record is kept for inspection."""
        record = self._agents.get(agent_id)
        if record is None:
            log.warning("directory.agent.unknown", agent_id=agent_id, operation="unregister")
            return None
        if record.status is not AgentStatus.OFFLINE:
            self._mark_offline(record, reason="unregistered")
        return record

    def get(self, agent_id: str) -> AgentRecord | None:
        return self._agents.get(agent_id)

    # -------------------------------------------------------------------------
    # State updates
    # -------------------------------------------------------------------------

    def update_status(self, agent_id: str, **fields: Any) -> AgentRecord | None:
        """Shallow-merge fields into an agent record.

        Accepted fields: position, health, status, current_task, handle.

        Returns:
            The updated record, or None if the agent is unknown.

        Raises:
            ValidationError: On an unknown field name, or if the merge would
                leave a busy agent without a task (or an idle one with a task).
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown agent fields: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
                details={"allowed": sorted(_UPDATABLE_FIELDS)},
            )

        record = self._agents.get(agent_id)
        if record is None:
            log.warning("directory.agent.unknown", agent_id=agent_id, operation="update_status")
            return None

        status = fields.get("status", record.status)
        try:
            status = AgentStatus(status)
        except ValueError as e:
            raise ValidationError(
                f"Invalid agent status: {status!r}", field="status", value=status
            ) from e
        current_task = fields.get("current_task", record.current_task)
        candidate = AgentRecord(
            agent_id=record.agent_id,
            capabilities=record.capabilities,
            status=status,
            current_task=current_task,
        )
        _check_invariant(candidate)

        if "position" in fields:
            record.position = as_position(fields["position"])
        if "health" in fields:
            record.health = float(fields["health"])
        if "handle" in fields:
            record.handle = fields["handle"]
        record.status = status
        record.current_task = current_task
        return record

    def mark_busy(self, agent_id: str, task_id: int) -> AgentRecord:
        """Bind a task to an idle agent."""
        record = self._require(agent_id)
        if record.status is not AgentStatus.IDLE:
            raise ValidationError(
                f"Agent {agent_id} is not idle",
                field="status",
                value=record.status.value,
            )
        record.status = AgentStatus.BUSY
        record.current_task = task_id
        return record

    def release(self, agent_id: str, task_id: int | None = None) -> AgentRecord | None:
        """Clear an agent's task reference.

        A busy agent becomes idle; an offline agent stays offline. When
        ``task_id`` is given, only that task is released.
        """
        record = self._agents.get(agent_id)
        if record is None:
            return None
        if task_id is not None and record.current_task != task_id:
            return record
        record.current_task = None
        if record.status is AgentStatus.BUSY:
            record.status = AgentStatus.IDLE
        return record

    # -------------------------------------------------------------------------
    # Liveness
    # -------------------------------------------------------------------------

    def heartbeat(self, agent_id: str) -> bool:
        """Refresh an agent's last-seen time.

        An offline agent comes back as busy if it still holds a task,
        otherwise idle.

        Returns:
            False if the agent is unknown.
        """
        record = self._agents.get(agent_id)
        if record is None:
            return False
        record.last_heartbeat = self._clock()
        if record.status is AgentStatus.OFFLINE:
            record.status = (
                AgentStatus.BUSY if record.current_task is not None else AgentStatus.IDLE
            )
            log.info(
                "directory.agent.recovered",
                agent_id=agent_id,
                status=record.status.value,
            )
            self._events.emit(create_agent_recovered_event(agent_id, record.status.value))
        return True

    def sweep_inactive(self, timeout_ms: int | None = None) -> list[str]:
        """Mark agents silent for longer than ``timeout_ms`` offline.

        Returns:
            Ids of the agents that went offline during this sweep.
        """
        timeout_ms = self._heartbeat_timeout_ms if timeout_ms is None else timeout_ms
        cutoff = self._clock() - timeout_ms / 1000
        newly_offline = []
        for record in list(self._agents.values()):
            if record.status is AgentStatus.OFFLINE:
                continue
            if record.last_heartbeat < cutoff:
                self._mark_offline(record, reason="heartbeat_timeout")
                newly_offline.append(record.agent_id)
        return newly_offline

    def _mark_offline(self, record: AgentRecord, *, reason: str) -> None:
        record.status = AgentStatus.OFFLINE
        log.warning(
            "directory.agent.went_offline",
            agent_id=record.agent_id,
            reason=reason,
            current_task=record.current_task,
            silent_seconds=round(self._clock() - record.last_heartbeat, 3),
        )
        self._events.emit(
            create_agent_offline_event(
                record.agent_id, record.last_heartbeat, record.current_task, reason
            )
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def query(
        self,
        *,
        capabilities: Iterable[str] = (),
        status: AgentStatus | None = None,
        predicate: Callable[[AgentRecord], bool] | None = None,
    ) -> list[AgentRecord]:
        """Agents whose capabilities cover ``capabilities``, in registration order."""
        required = frozenset(capabilities)
        return [
            record
            for record in self._agents.values()
            if required <= record.capabilities
            and (status is None or record.status is status)
            and (predicate is None or predicate(record))
        ]

    def find_nearby(
        self, agent_id: str, radius: float = DEFAULT_HELP_RADIUS
    ) -> list[tuple[AgentRecord, float]]:
        """Idle agents within ``radius`` of ``agent_id``, nearest first.

        Agents without a known position are skipped.
        """
        origin = self._agents.get(agent_id)
        if origin is None or origin.position is None:
            return []
        nearby = []
        for record in self._agents.values():
            if record.agent_id == agent_id or record.status is not AgentStatus.IDLE:
                continue
            if record.position is None:
                continue
            distance = origin.position.distance_to(record.position)
            if distance < radius:
                nearby.append((record, distance))
        nearby.sort(key=lambda item: item[1])
        return nearby

    def snapshot(self) -> list[dict[str, Any]]:
        """Summaries of every agent, in registration order."""
        return [record.to_summary() for record in self._agents.values()]

    def _require(self, agent_id: str) -> AgentRecord:
        record = self._agents.get(agent_id)
        if record is None:
            raise ValidationError(f"Unknown agent: {agent_id}", field="agent_id", value=agent_id)
        return record
