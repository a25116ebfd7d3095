"""
Logging utilities for hookguard
"""

import sys
import logging
from typing import Optional, TextIO

import structlog


def setup_logging(level: str = "INFO", service: Optional[str] = None, stream: Optional[TextIO] = None) -> None:
    """
    Setup structured logging for hookguard.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        service: Optional service name to include in every log line
        stream: Where log lines go; defaults to stdout
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="ISO", utc=True),
            structlog.processors.JSONRenderer()
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stdout,
        level=getattr(logging, level.upper())
    )

    if service:
        structlog.contextvars.bind_contextvars(service=service)
