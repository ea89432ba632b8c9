"""Structured logging configuration for Convoy.

Configures structlog with one processor chain for the whole process. Two
output modes are supported: DEV (coloured console) and PROD (JSON lines).
When file logging is enabled every entry is also written as JSON to a
daily-rotating file.

Standard log keys:
- agent_id: Agent the entry concerns
- task_id: Scheduler task identifier
- kind: Message kind on the bus
- attempt: Reconnect attempt number
- category: Classified connection error category

Event naming convention:
- dot.notation, domain.entity.verb_past_tense
  (e.g. "scheduler.task.assigned", "connection.reconnect.scheduled")

Usage:
    from convoy.observability import configure_logging, get_logger, bind_context

    configure_logging(LoggingConfig(mode=LogMode.DEV))
    log = get_logger(__name__)
    bind_context(agent_id="miner-1")
    log.info("directory.agent.registered", capabilities=["mining"])
"""

from __future__ import annotations

from enum import Enum
import logging
from logging.handlers import TimedRotatingFileHandler
import os
from pathlib import Path
import sys
from typing import Any

from pydantic import BaseModel, Field
import structlog

# Keys whose values never reach a log sink verbatim. Kick reasons and
# factory errors occasionally echo session tokens back.
_REDACTED_KEYS = frozenset({"password", "token", "secret", "credential", "session_token"})


class LogMode(str, Enum):
    """Logging output mode."""

    DEV = "dev"
    PROD = "prod"


class LoggingConfig(BaseModel, frozen=True):
    """Configuration for structured logging.

    Attributes:
        mode: Output mode (dev for human-readable, prod for JSON).
        log_level: Minimum log level to output.
        log_dir: Directory for log files. Defaults to ~/.convoy/logs/.
        max_log_days: Number of rotated daily files to keep.
        enable_file_logging: Whether to write logs to files.
    """

    mode: LogMode = Field(default=LogMode.DEV)
    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".convoy" / "logs")
    max_log_days: int = Field(default=7, ge=1, le=365)
    enable_file_logging: bool = Field(default=False)


_configured: bool = False
_current_config: LoggingConfig | None = None
_console_logging_enabled: bool = True


def _get_mode_from_env() -> LogMode:
    """Read CONVOY_LOG_MODE; anything other than "prod" means DEV."""
    if os.environ.get("CONVOY_LOG_MODE", "dev").lower() == "prod":
        return LogMode.PROD
    return LogMode.DEV


def _get_log_level(level_str: str) -> int:
    level = logging.getLevelName(level_str.upper())
    return level if isinstance(level, int) else logging.INFO


def _setup_file_handler(config: LoggingConfig) -> TimedRotatingFileHandler | None:
    if not config.enable_file_logging:
        return None

    config.log_dir.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(config.log_dir / "convoy.log"),
        when="midnight",
        interval=1,
        backupCount=config.max_log_days,
        encoding="utf-8",
        utc=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(_get_log_level(config.log_level))
    return handler


def _redact_sensitive(
    _logger: Any,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor replacing values of sensitive keys."""
    for key in list(event_dict):
        if key.lower() in _REDACTED_KEYS:
            event_dict[key] = "<REDACTED>"
    return event_dict


def _get_processors(mode: LogMode) -> list[Any]:
    """Build the processor chain ending in the mode's renderer."""
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _redact_sensitive,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        structlog.processors.format_exc_info,
    ]
    if mode == LogMode.DEV:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.append(structlog.processors.JSONRenderer())
    return processors


def set_console_logging(enabled: bool) -> None:
    """Enable or disable console (stderr) log output."""
    global _console_logging_enabled
    _console_logging_enabled = enabled


class _TeeLogger:
    """Writes rendered entries to stderr and, optionally, a file handler."""

    def __init__(self, file_handler: TimedRotatingFileHandler | None = None) -> None:
        self._file_handler = file_handler

    def _log(self, message: str, level: int) -> None:
        if _console_logging_enabled:
            print(message, file=sys.stderr)
        if self._file_handler:
            record = logging.LogRecord(
                name="convoy",
                level=level,
                pathname="",
                lineno=0,
                msg=message,
                args=(),
                exc_info=None,
            )
            self._file_handler.emit(record)

    def msg(self, message: str) -> None:
        self._log(message, logging.INFO)

    def debug(self, message: str) -> None:
        self._log(message, logging.DEBUG)

    def info(self, message: str) -> None:
        self._log(message, logging.INFO)

    def warning(self, message: str) -> None:
        self._log(message, logging.WARNING)

    warn = warning

    def error(self, message: str) -> None:
        self._log(message, logging.ERROR)

    exception = error

    def critical(self, message: str) -> None:
        self._log(message, logging.CRITICAL)

    fatal = critical


class _TeeLoggerFactory:
    def __init__(self, file_handler: TimedRotatingFileHandler | None = None) -> None:
        self._file_handler = file_handler

    def __call__(self, *_args: Any) -> _TeeLogger:
        return _TeeLogger(self._file_handler)


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Configure structlog for the process.

    Call once at startup. Reconfiguring replaces the previous file handler.

    Args:
        config: Logging configuration. If None, uses defaults with the mode
            taken from the CONVOY_LOG_MODE environment variable.
    """
    global _configured, _current_config

    if config is None:
        config = LoggingConfig(mode=_get_mode_from_env())
    _current_config = config

    log_level = _get_log_level(config.log_level)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    file_handler = _setup_file_handler(config)
    if file_handler:
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=_get_processors(config.mode),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=_TeeLoggerFactory(file_handler),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a bound logger, configuring defaults on first use.

    Args:
        name: Optional logger name, usually ``__name__``.

    Returns:
        A bound structlog logger.
    """
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables included in every later entry of this async context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove context variables from the logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


def get_current_config() -> LoggingConfig | None:
    """Return the active LoggingConfig, or None before configuration."""
    return _current_config


def is_configured() -> bool:
    """Return True once configure_logging has run."""
    return _configured


def reset_logging() -> None:
    """Reset module state and structlog defaults. Intended for tests."""
    global _configured, _current_config
    _configured = False
    _current_config = None
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
