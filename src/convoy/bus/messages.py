"""Message kinds and payload schemas for the fleet message bus.

Every message kind has exactly one payload model. Payloads arrive either
as model instances or as plain mappings; ``parse_payload`` validates both
against the kind's schema and turns schema violations into Convoy
``ValidationError`` (a caller bug, not a delivery failure).
"""

from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny
from pydantic import ValidationError as PydanticValidationError

from convoy.core.errors import ValidationError

BROADCAST = "*"
"""Recipient marker: deliver to every registered agent except the sender."""


class MessageKind(str, Enum):
    """Closed set of message kinds carried by the bus."""

    AGENT_JOINED = "agent_joined"
    AGENT_LEFT = "agent_left"
    HELP_REQUEST = "help_request"
    HELP_RESPONSE = "help_response"
    RESOURCE_FOUND = "resource_found"
    ACTIVITY_PROPOSAL = "activity_proposal"
    ACTIVITY_RESPONSE = "activity_response"
    DANGER_ALERT = "danger_alert"
    STRATEGY_UPDATE = "strategy_update"
    TASK_NOTICE = "task_notice"


class Coordinates(BaseModel, frozen=True):
    """World position carried inside payloads."""

    x: float
    y: float = 0.0
    z: float


class MessagePayload(BaseModel):
    """Base class for all payload models."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class AgentJoinedPayload(MessagePayload):
    agent_id: str
    capabilities: list[str] = Field(default_factory=list)


class AgentLeftPayload(MessagePayload):
    agent_id: str


class HelpRequestPayload(MessagePayload):
    reason: str
    urgency: int = 5
    position: Coordinates | None = None


class HelpResponsePayload(MessagePayload):
    accepted: bool
    eta_seconds: int | None = Field(default=None, ge=0)


class ResourceFoundPayload(MessagePayload):
    resource_type: str
    position: Coordinates | None = None
    amount: int = Field(default=1, ge=0)


class ActivityProposalPayload(MessagePayload):
    proposal_id: str
    activity: str
    required_agents: int = Field(default=2, ge=1)
    details: dict[str, Any] = Field(default_factory=dict)


class ActivityResponsePayload(MessagePayload):
    proposal_id: str
    accepted: bool = True


class DangerAlertPayload(MessagePayload):
    danger_type: str
    position: Coordinates | None = None
    severity: int = 5


class StrategyUpdatePayload(MessagePayload):
    strategy: dict[str, Any]
    priority: int = 5


class TaskNoticePayload(MessagePayload):
    task_id: int
    event: str
    details: dict[str, Any] = Field(default_factory=dict)


PAYLOAD_MODELS: dict[MessageKind, type[MessagePayload]] = {
    MessageKind.AGENT_JOINED: AgentJoinedPayload,
    MessageKind.AGENT_LEFT: AgentLeftPayload,
    MessageKind.HELP_REQUEST: HelpRequestPayload,
    MessageKind.HELP_RESPONSE: HelpResponsePayload,
    MessageKind.RESOURCE_FOUND: ResourceFoundPayload,
    MessageKind.ACTIVITY_PROPOSAL: ActivityProposalPayload,
    MessageKind.ACTIVITY_RESPONSE: ActivityResponsePayload,
    MessageKind.DANGER_ALERT: DangerAlertPayload,
    MessageKind.STRATEGY_UPDATE: StrategyUpdatePayload,
    MessageKind.TASK_NOTICE: TaskNoticePayload,
}


class Message(BaseModel, frozen=True):
    """One delivered message.

    Attributes:
        id: Unique message identifier (UUID).
        sender: Agent id of the sender, or "system".
        recipient: Agent id of the recipient.
        kind: Message kind.
        payload: Validated payload model for ``kind``.
        timestamp: Delivery time (epoch seconds).
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    sender: str
    recipient: str
    kind: MessageKind
    payload: SerializeAsAny[MessagePayload]
    timestamp: float


def coerce_kind(kind: MessageKind | str) -> MessageKind:
    """Turn a kind name into a MessageKind.

    Raises:
        ValidationError: If the kind is not part of the closed set.
    """
    try:
        return MessageKind(kind)
    except ValueError as e:
        raise ValidationError(f"Unknown message kind: {kind!r}", field="kind", value=kind) from e


def parse_payload(kind: MessageKind, payload: Any) -> MessagePayload:
    """Validate a payload against the schema of ``kind``.

    Raises:
        ValidationError: If the payload does not match the schema.
    """
    model = PAYLOAD_MODELS[kind]
    if isinstance(payload, model):
        return payload
    if isinstance(payload, MessagePayload):
        raise ValidationError(
            f"Payload {type(payload).__name__} does not belong to kind {kind.value}",
            field="payload",
            details={"expected": model.__name__},
        )
    try:
        return model.model_validate(payload or {})
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid payload for {kind.value}",
            field="payload",
            details={"validation_errors": e.errors(include_url=False)},
        ) from e
