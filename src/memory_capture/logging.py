"""Logging configuration for the memory capture hook.

Everything goes to stderr. Stdout belongs to the hook protocol of the
calling tool environment and must stay clean.
"""

import logging
import sys
from typing import Any

import structlog

from memory_capture.config import get_settings
from memory_capture.constants import COMPONENT_TAG


def prefix_component_tag(logger: Any, method_name: str, rendered: str) -> str:
    """Prefix a rendered line with the fixed component tag."""
    return f"[{COMPONENT_TAG}] {rendered}"


def setup_logging() -> None:
    """Configure structured logging."""
    settings = get_settings()

    # Set log level
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer(colors=False)
                if settings.is_development
                else structlog.processors.JSONRenderer()
            ),
            prefix_component_tag,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Also configure standard library logging for third-party packages
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=log_level,
    )

    # Reduce noise from httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]
