"""Logging configuration for the Checkout domain."""

import logging
import os

import structlog

# Suppress noisy library loggers
logging.getLogger("protean").setLevel(logging.WARNING)
logging.getLogger("stripe").setLevel(logging.WARNING)


def configure_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Configure structlog for a process entry point (API server, worker).

    Console rendering is used unless ``CHECKOUT_LOG_JSON`` is set.
    """
    level_name = (level or os.environ.get("CHECKOUT_LOG_LEVEL", "INFO")).upper()
    if json_output is None:
        json_output = os.environ.get("CHECKOUT_LOG_JSON", "").lower() in ("1", "true", "yes")

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
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level_name)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
