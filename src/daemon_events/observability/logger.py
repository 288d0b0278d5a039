"""Structured logging with session_id support.

Uses structlog for structured logging with JSON or console output.
Every structlog entry carries the session_id of the monitor session
that produced it, so interleaved sessions can be told apart.
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any

import structlog

# Context var for session_id propagation; copied into every task
# spawned after it is set.
_session_id: ContextVar[str] = ContextVar("session_id", default="")


def get_session_id() -> str:
    """Get current session ID from context ("" outside a session)."""
    return _session_id.get()


def set_session_id(session_id: str) -> None:
    """Set session ID in context."""
    _session_id.set(session_id)


def new_session_id() -> str:
    """Generate and set a new session ID."""
    sid = uuid.uuid4().hex[:12]
    _session_id.set(sid)
    return sid


def _add_session_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor: add session_id when inside a session."""
    sid = get_session_id()
    if sid:
        event_dict.setdefault("session_id", sid)
    return event_dict


def setup_logging(
    level: str = "INFO",
    format: str = "console",
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        format: "json" for machine consumption, "console" for humans.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        _add_session_id,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
        level=log_level,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for a module."""
    return structlog.get_logger(name)
