"""Unit tests for convoy.orchestration.scoring module."""

import pytest

from convoy.agents.directory import AgentRecord, Position
from convoy.orchestration.scoring import score_agent, select_best_agent


def _agent(
    agent_id: str,
    capabilities: set[str] = frozenset({"mining"}),
    *,
    health: float = 20.0,
    position: Position | None = None,
) -> AgentRecord:
    return AgentRecord(
        agent_id=agent_id,
        capabilities=frozenset(capabilities),
        health=health,
        position=position,
    )


class TestScoreAgent:
    """Test score_agent formula."""

    def test_full_health_no_location(self) -> None:
        """Base 100 plus 20 for full health plus 10 per matched capability."""
        agent = _agent("a", {"mining", "building"})

        assert score_agent(agent, frozenset({"mining"})) == 130.0

    def test_health_scales_linearly(self) -> None:
        """Half health contributes half the health weight."""
        agent = _agent("a", health=10)

        assert score_agent(agent, frozenset()) == 110.0

    def test_custom_max_health(self) -> None:
        """max_health sets what counts as full health."""
        agent = _agent("a", health=50)

        assert score_agent(agent, frozenset(), max_health=100) == 110.0

    def test_distance_penalty(self) -> None:
        """Distance to the task location costs one point per ten blocks."""
        agent = _agent("a", position=Position(0, 64, 0))
        payload = {"location": {"x": 30, "y": 12, "z": 40}}

        assert score_agent(agent, frozenset(), payload) == pytest.approx(115.0)

    def test_distance_ignored_without_positions(self) -> None:
        """Missing agent position or task location means no penalty."""
        payload = {"location": {"x": 300, "z": 400}}

        assert score_agent(_agent("a"), frozenset(), payload) == 120.0
        located = _agent("b", position=Position(1, 0, 1))
        assert score_agent(located, frozenset(), {"location": None}) == 120.0


class TestSelectBestAgent:
    """Test select_best_agent."""

    def test_empty_candidates(self) -> None:
        """No candidates gives None."""
        assert select_best_agent([], frozenset()) is None

    def test_highest_score_wins(self) -> None:
        """The healthier and closer agent is chosen."""
        payload = {"location": {"x": 0, "z": 0}}
        far = _agent("far", position=Position(200, 0, 0))
        near = _agent("near", position=Position(10, 0, 0))

        best = select_best_agent([far, near], frozenset({"mining"}), payload)

        assert best is not None
        agent, score = best
        assert agent.agent_id == "near"
        assert score == pytest.approx(129.0)

    def test_tie_goes_to_first(self) -> None:
        """Equal scores keep the earliest candidate."""
        first, second = _agent("first"), _agent("second")

        best = select_best_agent([first, second], frozenset({"mining"}))

        assert best is not None
        assert best[0] is first
