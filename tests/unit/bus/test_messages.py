"""Unit tests for convoy.bus.messages module."""

import pytest

from convoy.bus.messages import (
    PAYLOAD_MODELS,
    DangerAlertPayload,
    HelpRequestPayload,
    Message,
    MessageKind,
    TaskNoticePayload,
    coerce_kind,
    parse_payload,
)
from convoy.core.errors import ValidationError


class TestMessageKind:
    """Test MessageKind and coerce_kind."""

    def test_every_kind_has_a_schema(self) -> None:
        """PAYLOAD_MODELS covers the closed set of kinds."""
        assert set(PAYLOAD_MODELS) == set(MessageKind)

    def test_coerce_from_string(self) -> None:
        """Kind names are accepted as strings."""
        assert coerce_kind("danger_alert") is MessageKind.DANGER_ALERT
        assert coerce_kind(MessageKind.TASK_NOTICE) is MessageKind.TASK_NOTICE

    def test_unknown_kind(self) -> None:
        """Unknown kinds raise ValidationError."""
        with pytest.raises(ValidationError, match="Unknown message kind") as exc_info:
            coerce_kind("gossip")

        assert exc_info.value.field == "kind"


class TestParsePayload:
    """Test parse_payload validation."""

    def test_mapping_validated(self) -> None:
        """A mapping becomes the kind's payload model."""
        payload = parse_payload(
            MessageKind.HELP_REQUEST, {"reason": "zombies", "urgency": 9, "position": {"x": 1, "z": 2}}
        )

        assert isinstance(payload, HelpRequestPayload)
        assert payload.urgency == 9
        assert payload.position is not None
        assert payload.position.y == 0.0

    def test_model_instance_passes_through(self) -> None:
        """An instance of the right model is returned unchanged."""
        notice = TaskNoticePayload(task_id=1, event="assigned")

        assert parse_payload(MessageKind.TASK_NOTICE, notice) is notice

    def test_model_of_other_kind_rejected(self) -> None:
        """A payload model belonging to another kind is rejected."""
        notice = TaskNoticePayload(task_id=1, event="assigned")

        with pytest.raises(ValidationError, match="does not belong"):
            parse_payload(MessageKind.DANGER_ALERT, notice)

    def test_missing_required_field(self) -> None:
        """Schema violations raise ValidationError with details."""
        with pytest.raises(ValidationError, match="Invalid payload") as exc_info:
            parse_payload(MessageKind.DANGER_ALERT, {"severity": 3})

        assert "validation_errors" in exc_info.value.details

    def test_extra_field_rejected(self) -> None:
        """Unknown payload keys are not silently dropped."""
        with pytest.raises(ValidationError):
            parse_payload(MessageKind.AGENT_LEFT, {"agent_id": "a", "mood": "sad"})

    def test_severity_must_be_integer(self) -> None:
        """Severity accepts any integer but not free text."""
        payload = parse_payload(MessageKind.DANGER_ALERT, {"danger_type": "lava", "severity": 11})
        assert payload.severity == 11

        with pytest.raises(ValidationError):
            parse_payload(MessageKind.DANGER_ALERT, {"danger_type": "lava", "severity": "high"})

    def test_none_means_empty(self) -> None:
        """None validates as an empty mapping."""
        with pytest.raises(ValidationError):
            parse_payload(MessageKind.AGENT_LEFT, None)


class TestMessage:
    """Test the Message model."""

    def test_serializes_concrete_payload(self) -> None:
        """Dumping a message keeps the payload's own fields."""
        message = Message(
            sender="scout",
            recipient="miner",
            kind=MessageKind.DANGER_ALERT,
            payload=DangerAlertPayload(danger_type="creeper", severity=8),
            timestamp=10.0,
        )

        data = message.model_dump(mode="json")

        assert data["kind"] == "danger_alert"
        assert data["payload"]["danger_type"] == "creeper"
        assert data["payload"]["severity"] == 8
        assert len(data["id"]) == 36
