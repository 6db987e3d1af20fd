# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Structured logging configuration using structlog.

Logs are rendered as JSON outside development and as colored console output
in development. Records emitted through the standard library
(``logging.getLogger(__name__)``), which is what the services use, go through
the same structlog processor chain so both styles share one format and the
bound context (user id, job name, request id).

Example:
    >>> import logging
    >>> from simonkey.utils.logging import setup_logging, bind_context
    >>> from simonkey.core.config import get_settings
    >>> setup_logging(get_settings())
    >>> bind_context(user_id="u1")
    >>> logging.getLogger(__name__).info("KPIs updated: notebooks=%d", 3)
"""

import logging
import sys
from typing import TYPE_CHECKING

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from simonkey.core.config.settings import Settings

_NOISY_LOGGERS = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "sqlalchemy.engine",
    "asyncio",
    "urllib3",
    "google.auth",
    "apscheduler.executors",
    "dramatiq.broker",
)


def setup_logging(settings: "Settings") -> None:
    """Configure structured logging for the application.

    Args:
        settings: Application settings containing log_level and debug flag.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_development or settings.debug:
        renderer: Processor = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    final_processors: list[Processor] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if not (settings.is_development or settings.debug):
        final_processors.append(structlog.processors.format_exc_info)
    final_processors.append(renderer)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=final_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger("simonkey").setLevel(log_level)


def bind_context(**kwargs: object) -> None:
    """Bind context variables to all subsequent log calls in this context.

    Args:
        **kwargs: Key-value pairs to bind to the logging context.

    Example:
        >>> bind_context(job="freeze_sweep", run_id="abc-123")
        >>> logger.info("Sweep started")  # includes job and run_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables.

    Called at the end of each request or job to prevent context leakage.
    """
    structlog.contextvars.clear_contextvars()
