"""Unit tests for convoy.bus.bus module."""

import pytest

from convoy.agents.directory import AgentDirectory, AgentStatus
from convoy.bus.bus import MessageBus
from convoy.bus.messages import BROADCAST, Message, MessageKind
from convoy.core.errors import ValidationError


@pytest.fixture
def directory(clock) -> AgentDirectory:
    """Directory on the fake clock."""
    return AgentDirectory(clock=clock)


@pytest.fixture
def bus(directory: AgentDirectory) -> MessageBus:
    """Bus with three registered agents."""
    bus = MessageBus(directory)
    directory.register("alpha", ["mining"], position={"x": 0, "z": 0})
    directory.register("beta", ["building"], position={"x": 40, "z": 0})
    directory.register("gamma", ["farming"])
    for agent_id in ("alpha", "beta", "gamma"):
        bus.register_agent(agent_id)
    return bus


def _kinds(bus: MessageBus, agent_id: str) -> list[MessageKind]:
    return [m.kind for m in bus.get_messages(agent_id)]


class TestMembership:
    """Test register_agent and unregister_agent."""

    def test_join_announced_to_others_only(self, bus: MessageBus) -> None:
        """AGENT_JOINED reaches everyone except the joining agent."""
        assert MessageKind.AGENT_JOINED not in _kinds(bus, "gamma")
        joined = [m for m in bus.get_messages("alpha") if m.kind is MessageKind.AGENT_JOINED]
        assert [m.payload.agent_id for m in joined] == ["beta", "gamma"]
        assert joined[0].payload.capabilities == ["building"]
        assert joined[0].sender == "system"

    def test_unknown_agent_added_to_directory(
        self, directory: AgentDirectory, bus: MessageBus
    ) -> None:
        """Registering an unknown agent on the bus registers it in the directory."""
        bus.register_agent("delta", capabilities=["scouting"])

        record = directory.get("delta")
        assert record is not None
        assert record.capabilities == frozenset({"scouting"})
        assert bus.is_registered("delta")

    def test_known_agent_heartbeats_and_swaps_handle(
        self, directory: AgentDirectory, bus: MessageBus, clock
    ) -> None:
        """Re-registering refreshes liveness and the connection handle."""
        clock.advance(10)
        handle = object()

        bus.register_agent("alpha", handle)

        record = directory.get("alpha")
        assert record.last_heartbeat == clock.now
        assert record.handle is handle

    def test_repeat_registration_not_announced(self, bus: MessageBus) -> None:
        """Registering an existing subscriber again sends no second AGENT_JOINED."""
        before = _kinds(bus, "alpha").count(MessageKind.AGENT_JOINED)

        bus.register_agent("beta", object())

        assert _kinds(bus, "alpha").count(MessageKind.AGENT_JOINED) == before

    def test_unregister_announces_departure(self, bus: MessageBus) -> None:
        """AGENT_LEFT goes to the remaining agents."""
        assert bus.unregister_agent("gamma") is True

        assert not bus.is_registered("gamma")
        assert _kinds(bus, "alpha")[-1] is MessageKind.AGENT_LEFT
        assert bus.unregister_agent("gamma") is False


class TestDelivery:
    """Test send and broadcast."""

    def test_direct_message(self, bus: MessageBus) -> None:
        """A direct message reaches only its recipient."""
        delivered = bus.send(
            "alpha", "beta", MessageKind.TASK_NOTICE, {"task_id": 3, "event": "done"}
        )

        assert delivered is True
        assert _kinds(bus, "beta")[-1] is MessageKind.TASK_NOTICE
        assert MessageKind.TASK_NOTICE not in _kinds(bus, "gamma")

    def test_unknown_recipient(self, bus: MessageBus) -> None:
        """Sending to an unregistered agent returns False."""
        assert bus.send("alpha", "ghost", "agent_left", {"agent_id": "x"}) is False

    def test_broadcast_excludes_sender(self, bus: MessageBus) -> None:
        """A BROADCAST recipient never delivers back to the sender."""
        bus.send("alpha", BROADCAST, MessageKind.STRATEGY_UPDATE, {"strategy": {"mode": "mine"}})

        assert MessageKind.STRATEGY_UPDATE not in _kinds(bus, "alpha")
        assert MessageKind.STRATEGY_UPDATE in _kinds(bus, "beta")
        assert MessageKind.STRATEGY_UPDATE in _kinds(bus, "gamma")

    def test_broadcast_counts_recipients(self, bus: MessageBus) -> None:
        """broadcast returns the number of deliveries."""
        assert bus.broadcast(MessageKind.AGENT_LEFT, {"agent_id": "x"}) == 3
        assert bus.broadcast(MessageKind.AGENT_LEFT, {"agent_id": "x"}, exclude="beta") == 2

    def test_invalid_kind_and_payload(self, bus: MessageBus) -> None:
        """Unknown kinds and bad payloads raise before delivery."""
        with pytest.raises(ValidationError):
            bus.send("alpha", "beta", "gossip", {})
        with pytest.raises(ValidationError):
            bus.send("alpha", "beta", MessageKind.HELP_REQUEST, {"urgency": 3})
        assert MessageKind.HELP_REQUEST not in _kinds(bus, "beta")


class TestHandlers:
    """Test handler subscription and fault isolation."""

    def test_handlers_run_in_order(self, bus: MessageBus) -> None:
        """Handlers for a kind run in subscription order."""
        order: list[str] = []
        bus.on(MessageKind.DANGER_ALERT, lambda m: order.append(f"first:{m.recipient}"))
        bus.on("danger_alert", lambda m: order.append(f"second:{m.recipient}"))

        bus.send("alpha", "beta", MessageKind.DANGER_ALERT, {"danger_type": "lava"})

        assert order == ["first:beta", "second:beta"]

    def test_failing_handler_isolated(self, bus: MessageBus) -> None:
        """A raising handler is counted and the next handler still runs."""
        received: list[Message] = []

        def _boom(message: Message) -> None:
            raise RuntimeError("handler bug")

        bus.on(MessageKind.DANGER_ALERT, _boom)
        bus.on(MessageKind.DANGER_ALERT, received.append)

        assert bus.send("alpha", "beta", MessageKind.DANGER_ALERT, {"danger_type": "lava"})
        assert len(received) == 1
        assert bus.get_stats()["handler_failures"] == 1

    def test_unsubscribe(self, bus: MessageBus) -> None:
        """The callable returned by on() stops delivery to the handler."""
        received: list[Message] = []
        unsubscribe = bus.on(MessageKind.DANGER_ALERT, received.append)

        unsubscribe()
        bus.send("alpha", "beta", MessageKind.DANGER_ALERT, {"danger_type": "lava"})

        assert received == []


class TestRetention:
    """Test cleanup, the log bound and get_messages."""

    def test_cleanup_by_age(self, bus: MessageBus, clock) -> None:
        """Messages at or beyond the retention age are purged."""
        clock.advance(100)
        bus.send("alpha", "beta", MessageKind.AGENT_LEFT, {"agent_id": "x"})
        before = bus.get_stats()["logged_messages"]

        removed = bus.cleanup(max_age_ms=100_000)

        assert removed == before - 1
        assert bus.get_stats()["logged_messages"] == 1

    def test_default_retention(self, bus: MessageBus, clock) -> None:
        """Without an argument the configured retention applies."""
        clock.advance(3600)

        assert bus.cleanup() == bus.get_stats()["total_delivered"]

    def test_log_is_bounded(self, directory: AgentDirectory) -> None:
        """The oldest messages are dropped beyond max_messages."""
        bus = MessageBus(directory, max_messages=2)
        bus.register_agent("a")
        for task_id in range(5):
            bus.send("system", "a", MessageKind.TASK_NOTICE, {"task_id": task_id, "event": "x"})

        assert [m.payload.task_id for m in bus.get_messages("a")] == [3, 4]

    def test_get_messages_since(self, bus: MessageBus, clock) -> None:
        """Only messages newer than ``since`` are returned."""
        since = clock.now
        clock.advance(1)
        bus.send("alpha", "beta", MessageKind.AGENT_LEFT, {"agent_id": "x"})

        assert _kinds(bus, "beta") != [MessageKind.AGENT_LEFT]
        assert [m.kind for m in bus.get_messages("beta", since)] == [MessageKind.AGENT_LEFT]


class TestTypedHelpers:
    """Test the typed notification helpers."""

    def test_request_help_carries_position(self, bus: MessageBus) -> None:
        """Help requests go to the others with the sender's position."""
        assert bus.request_help("alpha", "zombies", urgency=8) == 2

        (request,) = [m for m in bus.get_messages("beta") if m.kind is MessageKind.HELP_REQUEST]
        assert request.sender == "alpha"
        assert request.payload.urgency == 8
        assert request.payload.position.x == 0.0
        assert not [m for m in bus.get_messages("alpha") if m.kind is MessageKind.HELP_REQUEST]

    def test_urgency_and_severity_not_range_checked(self, bus: MessageBus) -> None:
        """Any integer urgency or severity is delivered as given."""
        assert bus.request_help("alpha", "creeper", urgency=11) == 2
        bus.alert_danger("alpha", "lava", {"x": 0, "z": 0}, severity=0)

        request, danger = [
            m
            for m in bus.get_messages("beta")
            if m.kind in (MessageKind.HELP_REQUEST, MessageKind.DANGER_ALERT)
        ]
        assert request.payload.urgency == 11
        assert danger.payload.severity == 0

    def test_respond_to_help_eta(self, bus: MessageBus) -> None:
        """ETA is the distance divided by walking speed, rounded up."""
        bus.respond_to_help("beta", "alpha")

        response = bus.get_messages("alpha")[-1]
        assert response.kind is MessageKind.HELP_RESPONSE
        assert response.payload.accepted is True
        assert response.payload.eta_seconds == 10

    def test_respond_without_positions(self, bus: MessageBus) -> None:
        """Unknown positions or a refusal give no ETA."""
        bus.respond_to_help("gamma", "alpha")
        assert bus.get_messages("alpha")[-1].payload.eta_seconds is None

        bus.respond_to_help("beta", "alpha", accepted=False)
        assert bus.get_messages("alpha")[-1].payload.eta_seconds is None

    def test_activity_round_trip(self, bus: MessageBus) -> None:
        """Proposals exclude the proposer; acceptances reach everyone."""
        proposal_id = bus.propose_activity("alpha", "raid", required_agents=3)

        proposal = bus.get_messages("beta")[-1]
        assert proposal.payload.proposal_id == proposal_id
        assert MessageKind.ACTIVITY_PROPOSAL not in _kinds(bus, "alpha")

        assert bus.accept_activity("beta", proposal_id) == 3
        assert _kinds(bus, "beta")[-1] is MessageKind.ACTIVITY_RESPONSE

    def test_share_resource_and_alert(self, bus: MessageBus) -> None:
        """Resource and danger notices carry coordinates."""
        bus.share_resource("alpha", "diamond", {"x": 5, "y": 12, "z": 6}, amount=3)
        bus.alert_danger("alpha", "creeper", {"x": 1, "z": 1}, severity=9)

        resource, danger = bus.get_messages("gamma")[-2:]
        assert resource.payload.position.y == 12.0
        assert resource.payload.amount == 3
        assert danger.payload.severity == 9

    def test_share_strategy(self, bus: MessageBus) -> None:
        """Strategy updates go to everyone but the sender."""
        assert bus.share_strategy("alpha", {"focus": "iron"}, priority=7) == 2


class TestStatsAndLiveness:
    """Test get_active_agents, get_stats and liveness passthrough."""

    def test_offline_agents_not_active(self, directory: AgentDirectory, bus: MessageBus) -> None:
        """Agents offline in the directory are not listed as active."""
        directory.unregister("gamma")

        active = [a["agent_id"] for a in bus.get_active_agents()]

        assert active == ["alpha", "beta"]
        assert bus.get_stats()["registered_agents"] == 3
        assert bus.get_stats()["active_agents"] == 2

    def test_check_inactive_uses_directory(
        self, directory: AgentDirectory, bus: MessageBus, clock
    ) -> None:
        """check_inactive sweeps the directory."""
        clock.advance(61)
        bus.heartbeat("alpha")

        assert bus.check_inactive() == ["beta", "gamma"]
        assert directory.get("alpha").status is AgentStatus.IDLE

    def test_sent_and_received_counters(self, bus: MessageBus) -> None:
        """Per-agent counters feed the totals."""
        bus.send("alpha", "beta", MessageKind.AGENT_LEFT, {"agent_id": "x"})

        stats = bus.get_stats()
        assert stats["messages_sent"] == 1
        assert stats["messages_received"] == stats["total_delivered"]
