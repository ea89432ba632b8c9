"""Connection resilience: failure classification, backoff and reconnection."""

from convoy.resilience.backoff import JITTER_RATIO, compute_delay, delay_schedule
from convoy.resilience.classifier import (
    TERMINAL_CATEGORIES,
    ErrorCategory,
    ErrorClassification,
    classify_disconnect,
    classify_error,
    classify_kick,
    is_terminal,
)
from convoy.resilience.connection import ConnectionEvent, ConnectionFactory, ConnectionHandle
from convoy.resilience.manager import (
    ConnectionSession,
    ConnectionState,
    ReconnectManager,
    ReconnectStats,
)

__all__ = [
    # Classification
    "ErrorCategory",
    "ErrorClassification",
    "TERMINAL_CATEGORIES",
    "classify_disconnect",
    "classify_error",
    "classify_kick",
    "is_terminal",
    # Backoff
    "JITTER_RATIO",
    "compute_delay",
    "delay_schedule",
    # Connection contract
    "ConnectionEvent",
    "ConnectionFactory",
    "ConnectionHandle",
    # Manager
    "ConnectionSession",
    "ConnectionState",
    "ReconnectManager",
    "ReconnectStats",
]
