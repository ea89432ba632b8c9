"""Fitness scoring for task assignment.

score = 100 + 20 * (health / max_health) - distance / 10 + 10 * |required & capabilities|

Distance is the planar distance from the agent's position to the task's
``payload["location"]`` and only counts when both are known. Because every
eligible agent covers all required capabilities, the capability bonus is
the same for all candidates of one task; it shifts the absolute score
reported in assignment events but never the ranking.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from convoy.agents.directory import AgentRecord, as_position

BASE_SCORE = 100.0
HEALTH_WEIGHT = 20.0
DISTANCE_DIVISOR = 10.0
CAPABILITY_BONUS = 10.0


def score_agent(
    agent: AgentRecord,
    required_capabilities: frozenset[str],
    payload: Mapping[str, Any] | None = None,
    *,
    max_health: float = 20.0,
) -> float:
    """Score one agent for one task. Higher is better."""
    score = BASE_SCORE + HEALTH_WEIGHT * (agent.health / max_health)

    location = as_position((payload or {}).get("location"))
    if location is not None and agent.position is not None:
        score -= agent.position.distance_to(location) / DISTANCE_DIVISOR

    score += CAPABILITY_BONUS * len(required_capabilities & agent.capabilities)
    return score


def select_best_agent(
    candidates: Sequence[AgentRecord],
    required_capabilities: frozenset[str],
    payload: Mapping[str, Any] | None = None,
    *,
    max_health: float = 20.0,
) -> tuple[AgentRecord, float] | None:
    """Pick the highest-scoring candidate; the first one wins ties.

    Returns:
        (agent, score), or None when there are no candidates.
    """
    best: tuple[AgentRecord, float] | None = None
    for agent in candidates:
        score = score_agent(agent, required_capabilities, payload, max_health=max_health)
        if best is None or score > best[1]:
            best = (agent, score)
    return best
