"""
Logging Configuration

Structured logging for the dispatch subsystem. Modules log through
``structlog.get_logger(__name__)`` with an event name and key/value context:

    logger.info("webhook_delivered", subscription_id=sub.id, status_code=200)

JSON output for production, human-readable console output for development.
"""

import logging
import sys
from typing import Optional

import structlog

from .config import DispatchSettings, get_settings


def setup_logging(
    level: Optional[str] = None,
    format: Optional[str] = None,
    settings: Optional[DispatchSettings] = None,
) -> None:
    """
    Configure structlog and the standard library root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json, pretty)
        settings: Settings to take defaults from
    """
    settings = settings or get_settings()
    level = (level or settings.log_level).upper()
    format = format or settings.log_format
    numeric_level = getattr(logging, level)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if format == "json":
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    # Third-party libraries (httpx, aiohttp) log through the standard library
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    )
    root_logger.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(numeric_level, logging.WARNING))
