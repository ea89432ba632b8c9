"""Pydantic models for Convoy configuration.

This module defines the configuration schema using Pydantic v2. Every
section is frozen and accepts both snake_case field names and the camelCase
option names used by fleet launch scripts (``baseDelayMs``, ``maxAttempts``,
``heartbeatTimeoutMs`` ...).

Classes:
    ReconnectConfig: Backoff and reconnect policy per agent connection
    DirectoryConfig: Liveness tracking and health scale
    BusConfig: Message retention and log bounds
    SchedulerConfig: Retry bound, reassignment tick, terminal task retention
    ConvoyConfig: Top-level configuration combining all sections
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from convoy.observability.logging import LoggingConfig

_SECTION_CONFIG = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class ReconnectConfig(BaseModel):
    """Reconnect policy for one agent connection.

    Attributes:
        base_delay_ms: Delay before the first reconnect attempt.
        max_delay_ms: Upper bound for any computed delay.
        factor: Exponential growth factor between attempts.
        jitter: Perturb each delay by a uniform +/-30%.
        max_attempts: Attempts before giving up; -1 means unlimited.
        enabled: Whether automatic reconnection starts enabled.
        connect_timeout_ms: Upper bound for one connection factory call.
    """

    model_config = _SECTION_CONFIG

    base_delay_ms: int = Field(default=1000, ge=1)
    max_delay_ms: int = Field(default=60000, ge=1)
    factor: float = Field(default=2.0, ge=1.0)
    jitter: bool = True
    max_attempts: int = Field(default=-1, ge=-1)
    enabled: bool = True
    connect_timeout_ms: int = Field(default=30000, ge=1)

    @field_validator("max_delay_ms")
    @classmethod
    def validate_max_delay(cls, v: int, info: object) -> int:
        """Validate that max_delay_ms >= base_delay_ms."""
        data = getattr(info, "data", {})
        base = data.get("base_delay_ms", 1000)
        if v < base:
            msg = f"max_delay_ms ({v}) must be >= base_delay_ms ({base})"
            raise ValueError(msg)
        return v


class DirectoryConfig(BaseModel):
    """Agent directory configuration.

    Attributes:
        heartbeat_timeout_ms: Silence after which an agent is marked offline.
        sweep_interval_ms: Period of the liveness sweep.
        max_health: Health value treated as full health when scoring.
        default_health: Health assigned to agents registered without one.
    """

    model_config = _SECTION_CONFIG

    heartbeat_timeout_ms: int = Field(default=60000, ge=1)
    sweep_interval_ms: int = Field(default=60000, ge=1)
    max_health: float = Field(default=20.0, gt=0.0)
    default_health: float = Field(default=20.0, ge=0.0)


class BusConfig(BaseModel):
    """Message bus configuration.

    Attributes:
        message_retention_ms: Age after which messages are purged.
        cleanup_interval_ms: Period of the retention sweep.
        max_messages: Hard bound on the in-memory message log.
    """

    model_config = _SECTION_CONFIG

    message_retention_ms: int = Field(default=3_600_000, ge=1)
    cleanup_interval_ms: int = Field(default=3_600_000, ge=1)
    max_messages: int = Field(default=10_000, ge=1)


class SchedulerConfig(BaseModel):
    """Task scheduler configuration.

    Attributes:
        max_retries: Requeues allowed for one logical unit of work.
        default_priority: Priority used when submit() receives none.
        reassign_interval_ms: Period of the reassignment tick for tasks
            left pending because no eligible agent was idle.
        max_terminal_tasks: Completed/failed/cancelled tasks kept for
            inspection before the oldest are evicted.
    """

    model_config = _SECTION_CONFIG

    max_retries: int = Field(default=3, ge=0)
    default_priority: int = 5
    reassign_interval_ms: int = Field(default=30000, ge=1)
    max_terminal_tasks: int = Field(default=1000, ge=1)


class ConvoyConfig(BaseModel):
    """Top-level Convoy configuration.

    Validates against config.yaml in ~/.convoy/.

    Attributes:
        reconnect: Reconnect policy applied to every agent connection
        directory: Liveness tracking configuration
        bus: Message retention configuration
        scheduler: Task scheduling configuration
        logging: Structured logging configuration
    """

    model_config = _SECTION_CONFIG

    reconnect: ReconnectConfig = Field(default_factory=ReconnectConfig)
    directory: DirectoryConfig = Field(default_factory=DirectoryConfig)
    bus: BusConfig = Field(default_factory=BusConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def get_default_config() -> ConvoyConfig:
    """Get the default Convoy configuration."""
    return ConvoyConfig()


def get_config_dir() -> Path:
    """Get the Convoy configuration directory path (~/.convoy/)."""
    return Path.home() / ".convoy"
