"""Agent registry and liveness tracking."""

from convoy.agents.directory import (
    AgentDirectory,
    AgentRecord,
    AgentStatus,
    Position,
    as_position,
)

__all__ = ["AgentDirectory", "AgentRecord", "AgentStatus", "Position", "as_position"]
