"""Core types for Convoy - Result type and domain aliases.

This module provides:
- Result[T, E]: success-or-failure value for expected failures
- Type aliases shared by the directory, scheduler, bus and resilience layers
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast


@dataclass(frozen=True, slots=True)
class Result[T, E]:
    """Either a success value (Ok) or an expected failure (Err).

    The scheduler returns Result from complete/fail/cancel so callers can
    react to an unknown task id or a wrong task state without exceptions.
    Exceptions stay reserved for programming errors.

    Usage:
        result = scheduler.complete(task_id, {"mined": 12})
        if result.is_err:
            log.warning("task.complete.rejected", error=str(result.error))
    """

    _value: T | None
    _error: E | None
    _is_ok: bool

    @classmethod
    def ok(cls, value: T) -> "Result[T, E]":
        """Create a successful Result containing the given value."""
        return cls(_value=value, _error=None, _is_ok=True)

    @classmethod
    def err(cls, error: E) -> "Result[T, E]":
        """Create a failed Result containing the given error."""
        return cls(_value=None, _error=error, _is_ok=False)

    @property
    def is_ok(self) -> bool:
        """Return True if this Result is Ok."""
        return self._is_ok

    @property
    def is_err(self) -> bool:
        """Return True if this Result is Err."""
        return not self._is_ok

    def __repr__(self) -> str:
        if self._is_ok:
            return f"Ok({self._value!r})"
        return f"Err({self._error!r})"

    @property
    def value(self) -> T:
        """Return the Ok value.

        Raises:
            ValueError: If this Result is Err.
        """
        if not self._is_ok:
            msg = "Cannot access value on Err result"
            raise ValueError(msg)
        return cast(T, self._value)

    @property
    def error(self) -> E:
        """Return the Err value.

        Raises:
            ValueError: If this Result is Ok.
        """
        if self._is_ok:
            msg = "Cannot access error on Ok result"
            raise ValueError(msg)
        return cast(E, self._error)

    def unwrap(self) -> T:
        """Return the Ok value or raise ValueError carrying the error text."""
        if self._is_ok:
            return cast(T, self._value)
        raise ValueError(str(self._error))

    def unwrap_or(self, default: T) -> T:
        """Return the Ok value or the provided default if Err."""
        if self._is_ok:
            return cast(T, self._value)
        return default

    def map[U](self, fn: Callable[[T], U]) -> "Result[U, E]":
        """Transform the Ok value, leaving an Err untouched."""
        if self._is_ok:
            return Result.ok(fn(cast(T, self._value)))
        return Result.err(cast(E, self._error))


AgentId = str
"""Type alias for agent identifiers (bot usernames in the source domain)."""

TaskId = int
"""Type alias for task identifiers - monotonically increasing integers."""

Timestamp = float
"""Type alias for wall-clock timestamps in epoch seconds."""

Payload = dict[str, Any]
"""Type alias for opaque task payloads and event data."""
