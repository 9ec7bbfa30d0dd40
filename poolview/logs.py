"""structlog setup for entry points.

Library modules only call structlog.get_logger(); processors are configured
once by whatever process hosts them.
"""

from __future__ import annotations

import logging

import structlog


def configure_logging(level: str = "info", *, json_output: bool = False) -> None:
    """Configure structlog processors.

    Args:
        level: Minimum log level name (debug, info, warning, error)
        json_output: Render JSON lines instead of the console renderer
    """
    log_level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)
    renderer = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
    )


__all__ = ["configure_logging"]
