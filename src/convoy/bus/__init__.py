"""Fleet message bus: direct messages, broadcasts and typed notifications."""

from convoy.bus.bus import MessageBus, MessageHandler, Subscriber
from convoy.bus.messages import (
    BROADCAST,
    PAYLOAD_MODELS,
    Coordinates,
    Message,
    MessageKind,
    MessagePayload,
    coerce_kind,
    parse_payload,
)

__all__ = [
    "BROADCAST",
    "PAYLOAD_MODELS",
    "Coordinates",
    "Message",
    "MessageBus",
    "MessageHandler",
    "MessageKind",
    "MessagePayload",
    "Subscriber",
    "coerce_kind",
    "parse_payload",
]
