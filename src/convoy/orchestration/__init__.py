"""Task scheduling and fleet composition."""

from convoy.orchestration.coordinator import FleetCoordinator
from convoy.orchestration.scheduler import TERMINAL_STATUSES, Task, TaskScheduler, TaskStatus
from convoy.orchestration.scoring import score_agent, select_best_agent

__all__ = [
    "FleetCoordinator",
    "TERMINAL_STATUSES",
    "Task",
    "TaskScheduler",
    "TaskStatus",
    "score_agent",
    "select_best_agent",
]
