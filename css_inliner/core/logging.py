"""Logging configuration utilities."""

import logging
import sys
from typing import Optional

import structlog

from .config import settings

_configured = False


def configure_logging(level: int | str | None = None, *, json: bool | None = None) -> None:
    """Configure structlog on top of stdlib logging.

    Debug deployments get the console renderer, everything else emits one JSON
    object per line. Calling this again reconfigures both layers.
    """

    global _configured

    log_level = level or (logging.DEBUG if settings.debug else logging.INFO)
    use_json = (not settings.debug) if json is None else json

    renderer = structlog.processors.JSONRenderer() if use_json else structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        stream=sys.stdout,
        force=_configured,
    )
    _configured = True


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Create a structured logger."""

    return structlog.get_logger(name or "css_inliner")
