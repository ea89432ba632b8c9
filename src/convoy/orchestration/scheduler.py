"""Task Scheduler: priority queue and capability-aware assignment.

This module provides:
- A pending queue ordered by priority (higher first), FIFO among equals
- Assignment of each pending task to the best-scoring idle capable agent
- Completion, failure with bounded retry, and cancellation
- Release of tasks held by agents that go offline

Architecture:
- Agent state lives in the AgentDirectory; the scheduler marks agents busy
  and releases them, it never keeps its own agent table
- Assignment passes are explicit and never nest: a trigger arriving while a
  pass runs (for example from an event listener) makes the running pass
  loop once more
- Expected caller mistakes come back as Result.err, not exceptions

Usage:
    scheduler = TaskScheduler(directory)
    task_id = scheduler.submit("mine", {"location": {"x": 10, "z": 4}},
                               priority=8, required_capabilities={"mining"})
    ...
    result = scheduler.complete(task_id, {"blocks": 12})
    if result.is_err:
        ...
"""

from __future__ import annotations

import bisect
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from convoy.agents.directory import AgentStatus
from convoy.core.errors import InvalidTaskStateError, SchedulingError, UnknownTaskError
from convoy.core.types import Result
from convoy.events.base import BaseEvent, EventDispatcher, EventListener
from convoy.events.fleet import (
    create_task_assigned_event,
    create_task_cancelled_event,
    create_task_completed_event,
    create_task_failed_event,
    create_task_retried_event,
    create_task_submitted_event,
)
from convoy.observability.logging import get_logger
from convoy.orchestration.scoring import select_best_agent

if TYPE_CHECKING:
    from convoy.agents.directory import AgentDirectory
    from convoy.config.models import SchedulerConfig

log = get_logger(__name__)

DEFAULT_PRIORITY = 5
DEFAULT_MAX_RETRIES = 3


# =============================================================================
# Task Status Enum
# =============================================================================


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED})


# =============================================================================
# Task
# =============================================================================


@dataclass(slots=True, eq=False)
class Task:
    """A unit of work tracked by the scheduler.

    Attributes:
        id: Monotonic task id, starting at 1.
        type: Caller-defined task kind ("mine", "build", ...).
        payload: Opaque task data; ``payload["location"]`` feeds scoring.
        priority: Higher values are assigned first.
        required_capabilities: Capabilities an agent must all have.
        status: Current lifecycle state.
        assigned_to: Agent holding the task while assigned.
        created_at: Submission time (epoch seconds).
        assigned_at: Time of the latest assignment.
        completed_at: Time the task reached a terminal state.
        retry_count: Position in its retry chain (0 for a fresh task).
        result: Value reported by complete().
        failure_reason: Reason reported by fail() or cancel().
        origin_id: Id of the first task of the retry chain.
    """

    id: int
    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    priority: int = DEFAULT_PRIORITY
    required_capabilities: frozenset[str] = frozenset()
    status: TaskStatus = TaskStatus.PENDING
    assigned_to: str | None = None
    created_at: float = 0.0
    assigned_at: float | None = None
    completed_at: float | None = None
    retry_count: int = 0
    result: Any = None
    failure_reason: str | None = None
    origin_id: int | None = None

    @property
    def is_terminal(self) -> bool:
        """Check if task is in a terminal state."""
        return self.status in TERMINAL_STATUSES

    @property
    def duration_seconds(self) -> float | None:
        """Time between assignment and the terminal transition."""
        if self.assigned_at is not None and self.completed_at is not None:
            return self.completed_at - self.assigned_at
        return None


def _queue_key(task: Task) -> tuple[int, int]:
    return (-task.priority, task.id)


# =============================================================================
# Scheduler
# =============================================================================


class TaskScheduler:
    """Priority queue of tasks assigned to agents from an AgentDirectory."""

    def __init__(
        self,
        directory: AgentDirectory,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        default_priority: int = DEFAULT_PRIORITY,
        max_terminal_tasks: int = 1000,
        max_health: float = 20.0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            directory: Agent registry used for candidate lookup.
            max_retries: Requeues allowed per retry chain.
            default_priority: Priority used when submit() receives none.
            max_terminal_tasks: Terminal tasks retained before eviction.
            max_health: Health value that scores as full health.
            clock: Source of epoch seconds; defaults to the directory clock.
        """
        self._directory = directory
        self._max_retries = max_retries
        self._default_priority = default_priority
        self._max_terminal_tasks = max_terminal_tasks
        self._max_health = max_health
        self._clock = clock or directory.now

        self._tasks: dict[int, Task] = {}
        self._pending: list[Task] = []
        self._terminal: deque[int] = deque()
        self._next_id = 1

        self._assigning = False
        self._rerun = False

        self._counters = {
            "submitted": 0,
            "assigned": 0,
            "completed": 0,
            "failed": 0,
            "retried": 0,
            "cancelled": 0,
        }
        self._events = EventDispatcher("scheduler")
        directory.on("directory.agent.registered", self._on_agent_registered)

    @classmethod
    def from_config(
        cls,
        directory: AgentDirectory,
        config: SchedulerConfig,
        *,
        max_health: float = 20.0,
        clock: Callable[[], float] | None = None,
    ) -> TaskScheduler:
        """Build a scheduler from the ``scheduler`` config section."""
        return cls(
            directory,
            max_retries=config.max_retries,
            default_priority=config.default_priority,
            max_terminal_tasks=config.max_terminal_tasks,
            max_health=max_health,
            clock=clock,
        )

    def on(self, event_type: str, listener: EventListener) -> Callable[[], None]:
        """Subscribe to ``scheduler.task.*`` events."""
        return self._events.on(event_type, listener)

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    def submit(
        self,
        type: str,
        payload: dict[str, Any] | None = None,
        priority: int | None = None,
        required_capabilities: Iterable[str] = (),
    ) -> int:
        """Queue a task and run an assignment pass.

        Returns:
            The new task id.
        """
        task = self._enqueue(
            type,
            dict(payload or {}),
            self._default_priority if priority is None else priority,
            frozenset(required_capabilities),
        )
        self._run_assignment()
        return task.id

    def _enqueue(
        self,
        type: str,
        payload: dict[str, Any],
        priority: int,
        required_capabilities: frozenset[str],
        *,
        retry_count: int = 0,
        origin_id: int | None = None,
    ) -> Task:
        task_id = self._next_id
        self._next_id += 1
        task = Task(
            id=task_id,
            type=type,
            payload=payload,
            priority=priority,
            required_capabilities=required_capabilities,
            created_at=self._clock(),
            retry_count=retry_count,
            origin_id=task_id if origin_id is None else origin_id,
        )
        self._tasks[task_id] = task
        bisect.insort(self._pending, task, key=_queue_key)
        self._counters["submitted"] += 1

        log.info(
            "scheduler.task.submitted",
            task_id=task_id,
            task_type=type,
            priority=priority,
            required_capabilities=sorted(required_capabilities),
            retry_count=retry_count,
        )
        self._events.emit(
            create_task_submitted_event(
                task_id, type, priority, sorted(required_capabilities), retry_count
            )
        )
        return task

    # -------------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------------

    def tick(self) -> int:
        """Run an assignment pass outside any other trigger.

        Returns:
            Number of tasks assigned (0 if a pass was already running).
        """
        return self._run_assignment()

    def _run_assignment(self) -> int:
        if self._assigning:
            self._rerun = True
            return 0

        self._assigning = True
        assigned = 0
        try:
            while True:
                self._rerun = False
                assigned += self._assignment_pass()
                if not self._rerun:
                    break
        finally:
            self._assigning = False
        return assigned

    def _assignment_pass(self) -> int:
        assigned = 0
        for task in list(self._pending):
            if task.status is not TaskStatus.PENDING:
                continue
            candidates = self._directory.query(
                capabilities=task.required_capabilities,
                status=AgentStatus.IDLE,
            )
            best = select_best_agent(
                candidates,
                task.required_capabilities,
                task.payload,
                max_health=self._max_health,
            )
            if best is None:
                continue

            agent, score = best
            self._remove_pending(task)
            self._directory.mark_busy(agent.agent_id, task.id)
            task.status = TaskStatus.ASSIGNED
            task.assigned_to = agent.agent_id
            task.assigned_at = self._clock()
            self._counters["assigned"] += 1
            assigned += 1

            log.info(
                "scheduler.task.assigned",
                task_id=task.id,
                agent_id=agent.agent_id,
                score=round(score, 3),
                priority=task.priority,
            )
            self._events.emit(create_task_assigned_event(task.id, agent.agent_id, score))
        return assigned

    def _remove_pending(self, task: Task) -> None:
        for index, queued in enumerate(self._pending):
            if queued is task:
                del self._pending[index]
                return

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def complete(self, task_id: int, result: Any = None) -> Result[Task, SchedulingError]:
        """Mark an assigned task completed and free its agent.

        Completing a task that is already terminal is a no-op returning Ok.
        """
        task = self._tasks.get(task_id)
        if task is None:
            return self._unknown(task_id, "complete")
        if task.is_terminal:
            log.debug("scheduler.task.already_terminal", task_id=task_id, status=task.status.value)
            return Result.ok(task)
        if task.status is not TaskStatus.ASSIGNED:
            return Result.err(
                InvalidTaskStateError(
                    f"Task {task_id} is not assigned",
                    task_id=task_id,
                    status=task.status.value,
                )
            )

        agent_id = task.assigned_to
        task.status = TaskStatus.COMPLETED
        task.result = result
        task.completed_at = self._clock()
        self._release(task)
        self._counters["completed"] += 1

        log.info(
            "scheduler.task.completed",
            task_id=task_id,
            agent_id=agent_id,
            duration_seconds=task.duration_seconds,
        )
        self._events.emit(
            create_task_completed_event(task_id, agent_id, task.duration_seconds, result)
        )
        self._retire(task)
        self._run_assignment()
        return Result.ok(task)

    def fail(self, task_id: int, reason: str = "") -> Result[Task, SchedulingError]:
        """Mark a pending or assigned task failed and requeue it if retries remain.

        The retry is a new task with the same type, payload and capabilities,
        one priority step lower and ``retry_count + 1``.
        """
        task = self._tasks.get(task_id)
        if task is None:
            return self._unknown(task_id, "fail")
        if task.is_terminal:
            log.debug("scheduler.task.already_terminal", task_id=task_id, status=task.status.value)
            return Result.ok(task)

        agent_id = task.assigned_to
        self._finish(task, TaskStatus.FAILED, reason)
        self._counters["failed"] += 1
        will_retry = task.retry_count < self._max_retries

        log.warning(
            "scheduler.task.failed",
            task_id=task_id,
            agent_id=agent_id,
            reason=reason,
            retry_count=task.retry_count,
            will_retry=will_retry,
        )
        self._events.emit(create_task_failed_event(task_id, agent_id, reason, will_retry))

        if will_retry:
            retry = self._enqueue(
                task.type,
                task.payload,
                task.priority - 1,
                task.required_capabilities,
                retry_count=task.retry_count + 1,
                origin_id=task.origin_id,
            )
            self._counters["retried"] += 1
            log.info(
                "scheduler.task.retried",
                task_id=task_id,
                retry_task_id=retry.id,
                retry_count=retry.retry_count,
                priority=retry.priority,
            )
            self._events.emit(
                create_task_retried_event(task_id, retry.id, retry.retry_count, retry.priority)
            )

        self._retire(task)
        self._run_assignment()
        return Result.ok(task)

    def cancel(self, task_id: int, reason: str = "") -> Result[Task, SchedulingError]:
        """Withdraw a pending or assigned task without retrying it."""
        task = self._tasks.get(task_id)
        if task is None:
            return self._unknown(task_id, "cancel")
        if task.is_terminal:
            log.debug("scheduler.task.already_terminal", task_id=task_id, status=task.status.value)
            return Result.ok(task)

        agent_id = task.assigned_to
        self._finish(task, TaskStatus.CANCELLED, reason)
        self._counters["cancelled"] += 1

        log.info("scheduler.task.cancelled", task_id=task_id, agent_id=agent_id, reason=reason)
        self._events.emit(create_task_cancelled_event(task_id, agent_id, reason))
        self._retire(task)
        self._run_assignment()
        return Result.ok(task)

    def release_agent(self, agent_id: str, reason: str = "agent_offline") -> Task | None:
        """Fail whatever task the agent holds.

        Used when an agent goes offline or its connection fails permanently.
        The failed task is retried like any other failure.

        Returns:
            The failed task, or None if the agent held nothing.
        """
        held = [
            t
            for t in self._tasks.values()
            if t.status is TaskStatus.ASSIGNED and t.assigned_to == agent_id
        ]
        if not held:
            self._directory.release(agent_id)
            return None
        task = held[0]
        log.info("scheduler.agent.released", agent_id=agent_id, task_id=task.id, reason=reason)
        return self.fail(task.id, reason).unwrap()

    def _on_agent_registered(self, event: BaseEvent) -> None:
        # A fresh record is idle, so any task still held under this id is orphaned.
        agent_id = event.aggregate_id
        for task in [
            t
            for t in self._tasks.values()
            if t.status is TaskStatus.ASSIGNED and t.assigned_to == agent_id
        ]:
            log.warning("scheduler.agent.re_registered", agent_id=agent_id, task_id=task.id)
            self.fail(task.id, "re_registered")

    def _finish(self, task: Task, status: TaskStatus, reason: str) -> None:
        if task.status is TaskStatus.PENDING:
            self._remove_pending(task)
        else:
            self._release(task)
        task.status = status
        task.failure_reason = reason or None
        task.completed_at = self._clock()

    def _release(self, task: Task) -> None:
        if task.assigned_to is not None:
            self._directory.release(task.assigned_to, task.id)

    def _retire(self, task: Task) -> None:
        self._terminal.append(task.id)
        while len(self._terminal) > self._max_terminal_tasks:
            evicted = self._terminal.popleft()
            self._tasks.pop(evicted, None)

    def _unknown(self, task_id: int, operation: str) -> Result[Task, SchedulingError]:
        log.warning("scheduler.task.unknown", task_id=task_id, operation=operation)
        return Result.err(UnknownTaskError(f"Unknown task: {task_id}", task_id=task_id))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_task(self, task_id: int) -> Task | None:
        """Get task by ID."""
        return self._tasks.get(task_id)

    def pending_tasks(self) -> list[Task]:
        """Pending tasks in assignment order."""
        return list(self._pending)

    def tasks_for_agent(self, agent_id: str) -> list[Task]:
        """Retained tasks ever assigned to ``agent_id``, oldest first."""
        return [t for t in self._tasks.values() if t.assigned_to == agent_id]

    def get_statistics(self) -> dict[str, Any]:
        """Get scheduler statistics.

        Returns:
            Counts of retained tasks by status, queue size, and cumulative
            counters that survive eviction.
        """
        by_status = {status.value: 0 for status in TaskStatus}
        for task in self._tasks.values():
            by_status[task.status.value] += 1
        return {
            "queue_size": len(self._pending),
            "tasks_by_status": by_status,
            "retained_tasks": len(self._tasks),
            "total_submitted": self._counters["submitted"],
            "total_assigned": self._counters["assigned"],
            "total_completed": self._counters["completed"],
            "total_failed": self._counters["failed"],
            "total_retried": self._counters["retried"],
            "total_cancelled": self._counters["cancelled"],
        }
