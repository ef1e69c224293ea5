"""Logging configuration for the Marketplace domain."""

import logging
import os

import structlog

_configured = False


def configure_logging(level=None, json_output=None):
    """Configure structlog once per process.

    ``LOG_LEVEL`` and ``LOG_FORMAT`` (``console`` or ``json``) environment
    variables are used when arguments are not given.
    """
    global _configured
    if _configured:
        return

    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    if json_output is None:
        json_output = os.environ.get("LOG_FORMAT", "console") == "json"

    logging.basicConfig(format="%(message)s", level=getattr(logging, level_name, logging.INFO))

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name, logging.INFO)),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Suppress noisy library loggers
    logging.getLogger("protean").setLevel(logging.WARNING)
    _configured = True


def get_logger(name):
    return structlog.get_logger(name)
