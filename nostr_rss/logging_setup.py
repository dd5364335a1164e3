"""structlog logger construction.

Loggers are built explicitly and handed to the components that need them;
nothing here mutates structlog's process-wide configuration.
"""

import logging
import sys

import structlog


def _renderer(fmt: str):
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def build_logger(level: str = "INFO", fmt: str = "console", service: str | None = None):
    """Return a level-filtered BoundLogger writing to stderr."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"unknown log level: {level!r}")

    logger = structlog.wrap_logger(
        structlog.PrintLogger(file=sys.stderr),
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            _renderer(fmt),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
    )
    if service:
        logger = logger.bind(service=service)
    return logger


def get_logger(name: str):
    """Module-level fallback logger for components constructed without one."""
    return structlog.get_logger(name)
