"""Structured logging configuration.

Purpose: JSON-formatted logs with booking-session correlation.

Pattern: structlog with standard library integration. Wizards bind their
session id to the logger, so every event of one booking can be grouped.
"""
import logging
import sys
import uuid
from typing import Optional

import structlog

from salon_booking import config

# Retry chatter from the HTTP stack is already reported by our own events
NOISY_LOGGERS = ("urllib3", "werkzeug")


def setup_structured_logging(log_level: Optional[str] = None, log_format: Optional[str] = None):
    """
    Configure structured logging for the engine.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR); defaults to LOG_LEVEL
        log_format: "json" for machine-readable output, "console" for local
            development; defaults to LOG_FORMAT
    """
    level = getattr(logging, (log_level or config.LOG_LEVEL).upper())
    fmt = (log_format or config.LOG_FORMAT).lower()
    renderer = (
        structlog.dev.ConsoleRenderer()
        if fmt == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Structlog logger for a module (pass __name__)."""
    return structlog.get_logger(name)


def generate_session_id() -> str:
    """Booking session id: "bk-" followed by 12 hex characters."""
    return f"bk-{uuid.uuid4().hex[:12]}"
