"""Fleet Coordinator: composition root for directory, scheduler, bus and connections.

This module provides:
- Explicit construction of the AgentDirectory, TaskScheduler and MessageBus
  from one ConvoyConfig
- One ReconnectManager per agent connection, wired back into the directory
- Background loops for the liveness sweep, message cleanup and the
  reassignment tick

Architecture:
- The coordinator owns every component; nothing is a process-wide singleton
- Agents that go offline (silence or a permanent connection failure) have
  their task failed, which requeues it for the rest of the fleet
- A successful reconnect swaps the handle in the directory and bus and
  counts as a heartbeat

Usage:
    fleet = FleetCoordinator(load_config())
    fleet.register_agent("miner-1", {"mining"}, position={"x": 0, "z": 0})
    fleet.attach_connection("miner-1", connection, create_connection)
    await fleet.start()

    task_id = fleet.submit("mine", {"location": {"x": 12, "z": -3}},
                           required_capabilities={"mining"})
    ...
    await fleet.stop()
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
import random
from typing import Any

from convoy.agents.directory import AgentDirectory, AgentRecord
from convoy.bus.bus import SYSTEM_SENDER, MessageBus
from convoy.bus.messages import MessageKind
from convoy.config.models import ConvoyConfig
from convoy.core.errors import SchedulingError
from convoy.core.types import Result
from convoy.events.base import BaseEvent
from convoy.observability.logging import get_logger
from convoy.orchestration.scheduler import Task, TaskScheduler
from convoy.resilience.connection import ConnectionFactory
from convoy.resilience.manager import ReconnectManager

log = get_logger(__name__)

_TERMINAL_CONNECTION_EVENTS = (
    "connection.auth.failed",
    "connection.ban.detected",
    "connection.reconnect.exhausted",
)


class FleetCoordinator:
    """Wires the fleet components together and runs their periodic work."""

    def __init__(
        self,
        config: ConvoyConfig | None = None,
        *,
        clock: Callable[[], float] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            config: Fleet configuration; defaults to ConvoyConfig().
            clock: Source of epoch seconds shared by all components.
            rng: Random source for reconnect jitter.
        """
        self._config = config or ConvoyConfig()
        self._rng = rng

        self.directory = AgentDirectory(
            heartbeat_timeout_ms=self._config.directory.heartbeat_timeout_ms,
            default_health=self._config.directory.default_health,
            clock=clock,
        )
        self.scheduler = TaskScheduler.from_config(
            self.directory,
            self._config.scheduler,
            max_health=self._config.directory.max_health,
        )
        self.bus = MessageBus.from_config(self.directory, self._config.bus)

        self._managers: dict[str, ReconnectManager] = {}
        self._loops: list[asyncio.Task[None]] = []
        self._running = False

        self.directory.on("directory.agent.recovered", self._on_agent_recovered)
        self.scheduler.on("scheduler.task.assigned", self._on_task_assigned)

    @property
    def config(self) -> ConvoyConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._running

    # -------------------------------------------------------------------------
    # Agents
    # -------------------------------------------------------------------------

    def register_agent(
        self,
        agent_id: str,
        capabilities: Iterable[str],
        handle: Any = None,
        *,
        position: Any = None,
        health: float | None = None,
    ) -> AgentRecord:
        """Register (or re-register) an agent and make it eligible for work.

        A task still held from a previous registration is failed by the
        scheduler so it can be retried.
        """
        record = self.directory.register(
            agent_id, capabilities, handle, position=position, health=health
        )
        self.bus.register_agent(agent_id, handle)
        self.scheduler.tick()
        return record

    def unregister_agent(self, agent_id: str) -> bool:
        """Take an agent out of the fleet.

        The directory record is kept (offline), its task is failed and
        requeued, reconnection stops, and the bus announces the departure.
        """
        if agent_id not in self.directory:
            return False
        manager = self._managers.pop(agent_id, None)
        if manager is not None:
            manager.disable()
        self.directory.unregister(agent_id)
        self.scheduler.release_agent(agent_id, "unregistered")
        self.bus.unregister_agent(agent_id)
        log.info("fleet.agent.unregistered", agent_id=agent_id)
        return True

    def heartbeat(
        self,
        agent_id: str,
        *,
        position: Any = None,
        health: float | None = None,
    ) -> bool:
        """Record a heartbeat, optionally with a fresh position and health."""
        if agent_id not in self.directory:
            return False
        updates: dict[str, Any] = {}
        if position is not None:
            updates["position"] = position
        if health is not None:
            updates["health"] = health
        if updates:
            self.directory.update_status(agent_id, **updates)
        return self.directory.heartbeat(agent_id)

    def request_help(
        self, agent_id: str, reason: str, urgency: int = 5
    ) -> list[tuple[str, float]]:
        """Broadcast a help request and list idle agents close enough to respond.

        Returns:
            (agent_id, distance) pairs within 50 blocks, nearest first.
        """
        self.bus.request_help(agent_id, reason, urgency)
        helpers = [(r.agent_id, d) for r, d in self.directory.find_nearby(agent_id)]
        log.info(
            "fleet.help.requested",
            agent_id=agent_id,
            reason=reason,
            urgency=urgency,
            nearby=len(helpers),
        )
        return helpers

    # -------------------------------------------------------------------------
    # Connections
    # -------------------------------------------------------------------------

    def attach_connection(
        self,
        agent_id: str,
        connection: Any,
        factory: ConnectionFactory,
    ) -> ReconnectManager:
        """Supervise an agent's connection with its own ReconnectManager.

        An earlier manager for the same agent is disabled and replaced.
        """
        previous = self._managers.pop(agent_id, None)
        if previous is not None:
            previous.disable()

        manager = ReconnectManager(
            factory, self._config.reconnect, agent_id=agent_id, rng=self._rng
        )
        manager.on("connection.reconnect.succeeded", self._on_reconnected)
        for event_type in _TERMINAL_CONNECTION_EVENTS:
            manager.on(event_type, self._on_connection_lost)
        manager.attach(connection)
        self._managers[agent_id] = manager

        if agent_id in self.directory:
            self.directory.update_status(agent_id, handle=connection)
        return manager

    def get_manager(self, agent_id: str) -> ReconnectManager | None:
        return self._managers.get(agent_id)

    def _on_reconnected(self, event: BaseEvent) -> None:
        agent_id = event.aggregate_id
        connection = event.data.get("connection")
        if agent_id not in self.directory:
            return
        self.directory.update_status(agent_id, handle=connection)
        self.bus.register_agent(agent_id, connection)
        self.directory.heartbeat(agent_id)
        self.scheduler.tick()

    def _on_connection_lost(self, event: BaseEvent) -> None:
        agent_id = event.aggregate_id
        log.error("fleet.agent.connection_lost", agent_id=agent_id, cause=event.type)
        self.directory.unregister(agent_id)
        self.scheduler.release_agent(agent_id, event.type)

    def _on_agent_recovered(self, event: BaseEvent) -> None:
        self.scheduler.tick()

    def _on_task_assigned(self, event: BaseEvent) -> None:
        agent_id = event.data["agent_id"]
        if not self.bus.is_registered(agent_id):
            return
        task = self.scheduler.get_task(int(event.aggregate_id))
        if task is None:
            return
        self.bus.send(
            SYSTEM_SENDER,
            agent_id,
            MessageKind.TASK_NOTICE,
            {
                "task_id": task.id,
                "event": "assigned",
                "details": {"type": task.type, "priority": task.priority},
            },
        )

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    def submit(
        self,
        type: str,
        payload: dict[str, Any] | None = None,
        priority: int | None = None,
        required_capabilities: Iterable[str] = (),
    ) -> int:
        return self.scheduler.submit(type, payload, priority, required_capabilities)

    def complete(self, task_id: int, result: Any = None) -> Result[Task, SchedulingError]:
        return self.scheduler.complete(task_id, result)

    def fail(self, task_id: int, reason: str = "") -> Result[Task, SchedulingError]:
        return self.scheduler.fail(task_id, reason)

    def cancel(self, task_id: int, reason: str = "") -> Result[Task, SchedulingError]:
        return self.scheduler.cancel(task_id, reason)

    # -------------------------------------------------------------------------
    # Periodic work
    # -------------------------------------------------------------------------

    def sweep(self) -> list[str]:
        """Mark silent agents offline and requeue their tasks.

        Returns:
            Ids of agents that went offline in this sweep.
        """
        offline = self.directory.sweep_inactive()
        for agent_id in offline:
            self.scheduler.release_agent(agent_id, "heartbeat_timeout")
        if offline:
            log.warning("fleet.sweep.agents_offline", agents=offline)
        self.scheduler.tick()
        return offline

    async def start(self) -> None:
        """Start the sweep, cleanup and reassignment loops."""
        if self._running:
            return
        self._running = True
        self._loops = [
            asyncio.create_task(
                self._run_periodic("sweep", self._config.directory.sweep_interval_ms, self.sweep)
            ),
            asyncio.create_task(
                self._run_periodic(
                    "cleanup", self._config.bus.cleanup_interval_ms, self.bus.cleanup
                )
            ),
            asyncio.create_task(
                self._run_periodic(
                    "reassign", self._config.scheduler.reassign_interval_ms, self.scheduler.tick
                )
            ),
        ]
        log.info("fleet.coordinator.started", agents=len(self.directory))

    async def stop(self) -> None:
        """Cancel the background loops and close every supervised connection."""
        self._running = False
        for loop in self._loops:
            loop.cancel()
        if self._loops:
            await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops = []

        for manager in list(self._managers.values()):
            await manager.close()
        log.info("fleet.coordinator.stopped", connections=len(self._managers))

    async def _run_periodic(self, name: str, interval_ms: int, action: Callable[[], Any]) -> None:
        while self._running:
            await asyncio.sleep(interval_ms / 1000)
            try:
                action()
            except Exception:
                log.exception("fleet.loop.failed", loop=name)

    def get_status(self) -> dict[str, Any]:
        """Team status: agents, task statistics, bus and connection stats."""
        return {
            "running": self._running,
            "agents": self.directory.snapshot(),
            "scheduler": self.scheduler.get_statistics(),
            "bus": self.bus.get_stats(),
            "connections": {
                agent_id: manager.get_stats() for agent_id, manager in self._managers.items()
            },
        }
