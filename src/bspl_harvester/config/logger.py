"""Harvester logger configuration.

This module configures structlog to write structured logs to stderr so the
result stream (or whatever the caller does with stdout) stays clean.

Environment:
    HARVEST_LOG_LEVEL: Minimum level name (default INFO).
    HARVEST_LOG_FORMAT: "json" (default) or "console" for human-readable output.
"""

import logging
import os
import sys

import structlog


def configure_logging(level: str = None, log_format: str = None):
    """Configure structlog for the harvester.

    Logs are rendered as JSON lines by default; the console renderer is meant
    for local runs only.

    Args:
        level: Log level name. Falls back to HARVEST_LOG_LEVEL, then INFO.
        log_format: "json" or "console". Falls back to HARVEST_LOG_FORMAT.
    """
    level_name = (level or os.getenv("HARVEST_LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    log_format = (log_format or os.getenv("HARVEST_LOG_FORMAT", "json")).lower()

    # Third-party libraries (aiohttp, asyncio) log through stdlib logging
    logging.basicConfig(
        stream=sys.stderr,
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if log_format == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# Configure logging when module is imported
configure_logging()

# Export configured logger
logger = structlog.get_logger()
