"""Event factories for the agent directory and the task scheduler.

Event Types:
    directory.agent.registered - Agent record created or overwritten
    directory.agent.went_offline - Liveness sweep or unregister marked an agent offline
    directory.agent.recovered - Offline agent heartbeated again
    scheduler.task.submitted - Task entered the pending queue
    scheduler.task.assigned - Task handed to the best idle agent
    scheduler.task.completed - Assigned task reported success
    scheduler.task.failed - Task reported failure
    scheduler.task.retried - Failed task requeued at lower priority
    scheduler.task.cancelled - Task withdrawn before finishing
"""

from typing import Any

from convoy.events.base import BaseEvent


def create_agent_registered_event(agent_id: str, capabilities: list[str]) -> BaseEvent:
    """Create event for an agent registering with the directory."""
    return BaseEvent(
        type="directory.agent.registered",
        aggregate_type="agent",
        aggregate_id=agent_id,
        data={"capabilities": capabilities},
    )


def create_agent_offline_event(
    agent_id: str,
    last_heartbeat: float,
    current_task: int | None,
    reason: str,
) -> BaseEvent:
    """Create event for an agent being marked offline.

    Args:
        agent_id: Agent marked offline.
        last_heartbeat: Epoch seconds of the last heartbeat seen.
        current_task: Task the agent still held, if any.
        reason: "heartbeat_timeout" or "unregistered".
    """
    return BaseEvent(
        type="directory.agent.went_offline",
        aggregate_type="agent",
        aggregate_id=agent_id,
        data={
            "last_heartbeat": last_heartbeat,
            "current_task": current_task,
            "reason": reason,
        },
    )


def create_agent_recovered_event(agent_id: str, status: str) -> BaseEvent:
    """Create event for an offline agent coming back online."""
    return BaseEvent(
        type="directory.agent.recovered",
        aggregate_type="agent",
        aggregate_id=agent_id,
        data={"status": status},
    )


def create_task_submitted_event(
    task_id: int,
    task_type: str,
    priority: int,
    required_capabilities: list[str],
    retry_count: int,
) -> BaseEvent:
    """Create event for a task entering the pending queue."""
    return BaseEvent(
        type="scheduler.task.submitted",
        aggregate_type="task",
        aggregate_id=str(task_id),
        data={
            "task_type": task_type,
            "priority": priority,
            "required_capabilities": required_capabilities,
            "retry_count": retry_count,
        },
    )


def create_task_assigned_event(task_id: int, agent_id: str, score: float) -> BaseEvent:
    """Create event for a task assignment."""
    return BaseEvent(
        type="scheduler.task.assigned",
        aggregate_type="task",
        aggregate_id=str(task_id),
        data={"agent_id": agent_id, "score": score},
    )


def create_task_completed_event(
    task_id: int,
    agent_id: str | None,
    duration_seconds: float | None,
    result: Any,
) -> BaseEvent:
    """Create event for a task completing successfully."""
    return BaseEvent(
        type="scheduler.task.completed",
        aggregate_type="task",
        aggregate_id=str(task_id),
        data={
            "agent_id": agent_id,
            "duration_seconds": duration_seconds,
            "result": result,
        },
    )


def create_task_failed_event(
    task_id: int,
    agent_id: str | None,
    reason: str,
    will_retry: bool,
) -> BaseEvent:
    """Create event for a task failing."""
    return BaseEvent(
        type="scheduler.task.failed",
        aggregate_type="task",
        aggregate_id=str(task_id),
        data={"agent_id": agent_id, "reason": reason, "will_retry": will_retry},
    )


def create_task_retried_event(
    task_id: int,
    retry_task_id: int,
    retry_count: int,
    priority: int,
) -> BaseEvent:
    """Create event linking a failed task to its requeued successor."""
    return BaseEvent(
        type="scheduler.task.retried",
        aggregate_type="task",
        aggregate_id=str(task_id),
        data={
            "retry_task_id": retry_task_id,
            "retry_count": retry_count,
            "priority": priority,
        },
    )


def create_task_cancelled_event(task_id: int, agent_id: str | None, reason: str) -> BaseEvent:
    """Create event for a task cancellation."""
    return BaseEvent(
        type="scheduler.task.cancelled",
        aggregate_type="task",
        aggregate_id=str(task_id),
        data={"agent_id": agent_id, "reason": reason},
    )
