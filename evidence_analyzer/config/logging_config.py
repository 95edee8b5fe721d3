"""structlog configuration shared by every entry point."""

import logging

import structlog

from .settings import get_settings


def configure_logging(level: str | None = None, json_output: bool = True) -> None:
    """Configure structlog on top of the standard library logger.

    Args:
        level: Minimum log level name (e.g. "DEBUG", "INFO"). Defaults to
            the configured `log_level`.
        json_output: Render JSON lines; otherwise use the console renderer.
    """
    level = level or get_settings().log_level
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO))

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
