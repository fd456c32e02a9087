"""
Structured logging setup.

Log lines are JSON in production (LOG_LEVEL=INFO and above) and colored
console output when debugging. Every line carries the request id bound by
``RequestIDMiddleware`` and any booking context a service bound.
"""

from __future__ import annotations

import logging
import sys
from datetime import date
from decimal import Decimal
from typing import Any, Callable, MutableMapping, cast
from uuid import UUID

import structlog

from rental_reservations.config import LOG_LEVEL

# Type alias for structlog processor
Processor = Callable[[Any, str, MutableMapping[str, Any]], Any]

QUIET_LOGGERS = ("urllib3", "requests", "stripe", "uvicorn.access")


def stringify_domain_values(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Render ids, amounts and dates as plain strings instead of their repr."""
    for key, value in event_dict.items():
        if isinstance(value, (UUID, Decimal)):
            event_dict[key] = str(value)
        elif isinstance(value, date):
            event_dict[key] = value.isoformat()
    return event_dict


def _renderer(level: str) -> Processor:
    if level == "DEBUG":
        return cast(Processor, structlog.dev.ConsoleRenderer(colors=True))
    return cast(Processor, structlog.processors.JSONRenderer())


def setup_logging(level: str = LOG_LEVEL) -> None:
    """
    Configure stdlib logging and structlog for the whole process.

    Args:
        level: Log level name, defaults to ``LOG_LEVEL`` from the environment
    """
    logging.basicConfig(
        format="[%(asctime)s] %(levelname)s in %(name)s:%(lineno)d: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        level=level,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            stringify_domain_values,
            _renderer(level),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
