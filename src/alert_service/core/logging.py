"""Structured logging configuration.

Package modules log through the standard library (``logging.getLogger``).
``setup_logging`` renders those records with structlog, merging any
context bound with ``alert_context`` (rule and alert ids during dispatch).
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from alert_service.core.config import Settings, get_settings

# Transport libraries log every request or SMTP exchange at INFO
NOISY_LOGGERS = ("aiohttp.access", "aiohttp.client", "aiosmtplib")


def setup_logging(settings: Settings | None = None) -> None:
    """Configure root logging with structlog rendering.

    Args:
        settings: Settings providing ``log_level`` and ``log_format``;
            defaults to the environment settings.
    """
    settings = settings or get_settings()

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    processors = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if settings.log_format == "json":
        processors.append(structlog.processors.format_exc_info)
    processors.append(renderer)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(settings.log_level.upper())

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def alert_context(**values: str) -> Iterator[None]:
    """Bind values to every log record emitted inside the block.

    Bindings live in context variables, so each asyncio task sees its own.

    Example:
        >>> with alert_context(rule_id="high-cpu", alert_id=alert.id):
        ...     logger.warning("Notification failed")
    """
    with structlog.contextvars.bound_contextvars(**values):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
