"""Error hierarchy for Convoy.

This module defines the exception hierarchy for Convoy. These exceptions
are used for unexpected errors (programming bugs) and as error types in
Result for expected failures.

Exception Hierarchy:
    ConvoyError (base)
    ├── ConfigError            - Configuration loading and validation issues
    ├── ValidationError        - Invalid message payloads, invariant violations
    ├── SchedulingError        - Task lifecycle failures returned by the scheduler
    │   ├── UnknownTaskError       - Task id was never issued (or was evicted)
    │   └── InvalidTaskStateError  - Operation not valid in the task's state
    └── ConnectionFailedError  - A reconnect attempt failed
"""

from typing import Any


class ConvoyError(Exception):
    """Base exception for all Convoy errors.

    All Convoy-specific exceptions inherit from this class.
    This allows catching all Convoy errors with a single except clause.

    Attributes:
        message: Human-readable error description.
        details: Optional dict with additional context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error description.
            details: Optional dict with additional context about the error.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class ConfigError(ConvoyError):
    """Error from configuration operations.

    Raised when configuration loading, parsing, or validation fails.

    Attributes:
        config_key: The configuration key that caused the error.
        config_file: Path to the config file if applicable.
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        config_file: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize config error.

        Args:
            message: Human-readable error description.
            config_key: The configuration key that caused the error.
            config_file: Path to the config file if applicable.
            details: Optional dict with additional context.
        """
        super().__init__(message, details)
        self.config_key = config_key
        self.config_file = config_file


class ValidationError(ConvoyError):
    """Error from data validation operations.

    Raised when a message payload does not match its schema, an unknown
    field is merged into an agent record, or a status change would break
    the busy/current-task invariant.

    Attributes:
        field: The field that failed validation.
        value: The invalid value if safe to include.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize validation error.

        Args:
            message: Human-readable error description.
            field: The field that failed validation.
            value: The invalid value (only include if safe).
            details: Optional dict with additional context.
        """
        super().__init__(message, details)
        self.field = field
        self.value = value

    def __str__(self) -> str:
        """Return string representation including the offending field."""
        base = self.message
        if self.field:
            base = f"{base} (field: {self.field}, value: {self.value!r})"
        if self.details:
            base = f"{base} (details: {self.details})"
        return base


class SchedulingError(ConvoyError):
    """Error from task lifecycle operations.

    Returned (not raised) by the scheduler inside Result.err for expected
    caller mistakes such as completing a task that is not assigned.

    Attributes:
        task_id: The task the operation targeted.
    """

    def __init__(
        self,
        message: str,
        *,
        task_id: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize scheduling error.

        Args:
            message: Human-readable error description.
            task_id: The task the operation targeted.
            details: Optional dict with additional context.
        """
        super().__init__(message, details)
        self.task_id = task_id


class UnknownTaskError(SchedulingError):
    """The task id is not known to the scheduler."""


class InvalidTaskStateError(SchedulingError):
    """The operation is not valid for the task's current status.

    Attributes:
        status: The task status at the time of the call.
    """

    def __init__(
        self,
        message: str,
        *,
        task_id: int | None = None,
        status: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize invalid state error.

        Args:
            message: Human-readable error description.
            task_id: The task the operation targeted.
            status: The task status at the time of the call.
            details: Optional dict with additional context.
        """
        super().__init__(message, task_id=task_id, details=details)
        self.status = status


class ConnectionFailedError(ConvoyError):
    """A reconnect attempt for an agent's connection failed.

    Attributes:
        agent_id: Agent whose connection failed.
        category: Classified error category value.
    """

    def __init__(
        self,
        message: str,
        *,
        agent_id: str | None = None,
        category: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize connection error.

        Args:
            message: Human-readable error description.
            agent_id: Agent whose connection failed.
            category: Classified error category value.
            details: Optional dict with additional context.
        """
        super().__init__(message, details)
        self.agent_id = agent_id
        self.category = category

    @classmethod
    def from_exception(
        cls, exc: BaseException, *, agent_id: str | None = None, category: str | None = None
    ) -> "ConnectionFailedError":
        """Create ConnectionFailedError from the exception raised by a factory.

        Args:
            exc: The original exception.
            agent_id: Agent whose connection failed.
            category: Classified error category value.

        Returns:
            A ConnectionFailedError with __cause__ set to the original exception.
        """
        error = cls(
            str(exc) or type(exc).__name__,
            agent_id=agent_id,
            category=category,
            details={"original_exception": type(exc).__name__},
        )
        error.__cause__ = exc
        return error
