"""Observability module for Convoy.

Structured logging shared by every component: configure_logging, get_logger,
bind_context, unbind_context.
"""

from convoy.observability.logging import (
    LoggingConfig,
    LogMode,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    reset_logging,
    set_console_logging,
    unbind_context,
)

__all__ = [
    "LogMode",
    "LoggingConfig",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "reset_logging",
    "set_console_logging",
    "unbind_context",
]
