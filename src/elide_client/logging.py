"""Structured logging for elide-client.

Stores and the transport emit key/value events (``commit_started``,
``upstream_rejected``, ...) through ``get_logger``. Nothing is configured
at import time; an application or the CLI calls ``configure_logging``
once, usually with ``ClientConfig.log_level``.
"""
from __future__ import annotations

import logging

import structlog

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Route elide-client events to stdout.

    Unknown level names fall back to INFO. ``json_output=False`` renders
    events for a terminal instead of as JSON lines.
    """
    name = level.upper() if level.upper() in _LEVELS else "INFO"
    numeric = getattr(logging, name)
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    logging.basicConfig(format="%(message)s", level=numeric)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        # Loggers resolve sys.stdout per call so swapped streams are honoured
        cache_logger_on_first_use=False,
    )


def get_logger(name: str = "elide_client"):
    return structlog.get_logger(name)
