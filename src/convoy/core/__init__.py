"""Convoy core module - shared types and errors."""

from convoy.core.errors import (
    ConfigError,
    ConnectionFailedError,
    ConvoyError,
    InvalidTaskStateError,
    SchedulingError,
    UnknownTaskError,
    ValidationError,
)
from convoy.core.types import AgentId, Payload, Result, TaskId, Timestamp

__all__ = [
    # Types
    "Result",
    "AgentId",
    "TaskId",
    "Timestamp",
    "Payload",
    # Errors
    "ConvoyError",
    "ConfigError",
    "ValidationError",
    "SchedulingError",
    "UnknownTaskError",
    "InvalidTaskStateError",
    "ConnectionFailedError",
]
