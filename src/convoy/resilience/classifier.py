"""Deterministic classification of connection failures for reconnect policy.

Structured signals win: exception types (ConnectionRefusedError,
socket.gaierror, TimeoutError) and ``errno``/``code`` attributes set by the
connection layer. Message text is only consulted when no structured signal
is present, using case-insensitive substring patterns.
"""

from __future__ import annotations

from dataclasses import dataclass
import errno
from enum import Enum
import json
import socket
from typing import Any


class ErrorCategory(str, Enum):
    """Reconnect-relevant failure categories."""

    NETWORK = "network"
    AUTH = "auth"
    KICKED_PERMANENT = "kicked_permanent"
    KICKED_TEMPORARY = "kicked_temporary"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


TERMINAL_CATEGORIES = frozenset({ErrorCategory.AUTH, ErrorCategory.KICKED_PERMANENT})

_NETWORK_PATTERNS: tuple[str, ...] = ("econnrefused", "enotfound", "etimedout")
_AUTH_PATTERNS: tuple[str, ...] = ("invalid credentials", "authentication", "session")
_TIMEOUT_PATTERNS: tuple[str, ...] = ("timeout", "timed out")
_PERMANENT_BAN_PATTERNS: tuple[str, ...] = ("banned", "permanent")

_NETWORK_CODES = frozenset(
    {
        "ECONNREFUSED",
        "ENOTFOUND",
        "ETIMEDOUT",
        "ECONNRESET",
        "EHOSTUNREACH",
        "ENETUNREACH",
        "EPIPE",
    }
)
_NETWORK_ERRNOS = frozenset(
    {
        errno.ECONNREFUSED,
        errno.ETIMEDOUT,
        errno.ECONNRESET,
        errno.EHOSTUNREACH,
        errno.ENETUNREACH,
        errno.EPIPE,
    }
)


@dataclass(frozen=True, slots=True)
class ErrorClassification:
    """Normalized classification result."""

    category: ErrorCategory
    message: str
    matched_rule: str
    matched_pattern: str | None = None

    @property
    def is_terminal(self) -> bool:
        """Terminal failures suppress automatic reconnection."""
        return is_terminal(self.category)

    def to_event_details(self) -> dict[str, object]:
        return {
            "category": self.category.value,
            "matched_rule": self.matched_rule,
            "matched_pattern": self.matched_pattern,
        }


def is_terminal(category: ErrorCategory) -> bool:
    return category in TERMINAL_CATEGORIES


def classify_error(error: BaseException | str | None) -> ErrorClassification:
    """Classify a generic connection error or a failed connection attempt."""
    message = _describe(error)

    if isinstance(error, BaseException):
        structured = _classify_structured(error, message)
        if structured is not None:
            return structured

    classified = _classify_text(message)
    if classified is not None:
        return classified
    return ErrorClassification(ErrorCategory.UNKNOWN, message, "fallback_unknown")


def classify_disconnect(reason: Any = None) -> ErrorClassification:
    """Classify a disconnect; an unclassifiable reason counts as network."""
    message = _describe(reason)
    if isinstance(reason, BaseException):
        structured = _classify_structured(reason, message)
        if structured is not None:
            return structured
    classified = _classify_text(message) if message else None
    if classified is not None:
        return classified
    return ErrorClassification(ErrorCategory.NETWORK, message, "disconnect_default")


def classify_kick(reason: Any = None) -> ErrorClassification:
    """Classify a kick. Ban phrases are only honoured here."""
    message = _describe(reason)
    pattern = _first_match(message.lower(), _PERMANENT_BAN_PATTERNS)
    if pattern is not None:
        return ErrorClassification(
            ErrorCategory.KICKED_PERMANENT, message, "permanent_ban", pattern
        )
    return ErrorClassification(ErrorCategory.KICKED_TEMPORARY, message, "kick_default")


def _classify_structured(error: BaseException, message: str) -> ErrorClassification | None:
    if isinstance(error, ConnectionRefusedError):
        return ErrorClassification(ErrorCategory.NETWORK, message, "connection_refused")
    if isinstance(error, socket.gaierror):
        return ErrorClassification(ErrorCategory.NETWORK, message, "name_resolution")
    if isinstance(error, TimeoutError):
        return ErrorClassification(ErrorCategory.TIMEOUT, message, "timeout_exception")

    code = getattr(error, "code", None)
    if isinstance(code, str) and code.upper() in _NETWORK_CODES:
        return ErrorClassification(ErrorCategory.NETWORK, message, "error_code", code.upper())
    err_no = getattr(error, "errno", None)
    if isinstance(err_no, int) and err_no in _NETWORK_ERRNOS:
        return ErrorClassification(
            ErrorCategory.NETWORK, message, "errno", errno.errorcode.get(err_no)
        )
    return None


def _classify_text(message: str) -> ErrorClassification | None:
    haystack = message.lower()

    pattern = _first_match(haystack, _NETWORK_PATTERNS)
    if pattern is not None:
        return ErrorClassification(ErrorCategory.NETWORK, message, "network_text", pattern)

    pattern = _first_match(haystack, _AUTH_PATTERNS)
    if pattern is not None:
        return ErrorClassification(ErrorCategory.AUTH, message, "auth_text", pattern)

    pattern = _first_match(haystack, _TIMEOUT_PATTERNS)
    if pattern is not None:
        return ErrorClassification(ErrorCategory.TIMEOUT, message, "timeout_text", pattern)

    return None


def _describe(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, BaseException):
        return str(value) or type(value).__name__
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
