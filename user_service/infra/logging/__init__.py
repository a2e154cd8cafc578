"""Structured logging: dictConfig + QueueHandler, JSON lines, contextvars."""

from __future__ import annotations

from user_service.infra.logging.config import configure_logging, setup_logging, shutdown
from user_service.infra.logging.context import (
    ContextInjectingFilter,
    clear_log_context,
    get_log_context,
    log_context,
    set_log_context,
)
from user_service.infra.logging.formatters import JSONFormatter

__all__ = [
    "ContextInjectingFilter",
    "JSONFormatter",
    "clear_log_context",
    "configure_logging",
    "get_log_context",
    "log_context",
    "set_log_context",
    "setup_logging",
    "shutdown",
]
