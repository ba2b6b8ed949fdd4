"""
Logging

structlog setup for the table-access service.

Every event carries `channel`:
    app     operational events (queries, retries, translated backend errors)
    audit   one event per write attempt, emitted by StructlogAuditSink

Development prints coloured console lines; other environments write one JSON
object per line with umlauts kept readable. LOG_LEVEL filters structlog and
stdlib records alike.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.typing import EventDict, FilteringBoundLogger, Processor, WrappedLogger

from datenassistent.config.settings import settings

AUDIT_LOGGER_NAME = "datenassistent.audit"


def _default_channel(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("channel", "app")
    return event_dict


def _processors(console: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        _default_channel,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if console:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    return processors


def setup_logging() -> None:
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    structlog.configure(
        processors=_processors(console=settings.is_development),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # uvicorn and SQLAlchemy keep their stdlib loggers
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)


def get_logger(name: str | None = None) -> FilteringBoundLogger:
    return structlog.get_logger(name)


def log_context(**kwargs: Any) -> None:
    """Attach request-scoped fields (request_id, path, ...) to later events."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_log_context() -> None:
    structlog.contextvars.clear_contextvars()


setup_logging()

logger = get_logger("datenassistent")
audit_logger = get_logger(AUDIT_LOGGER_NAME).bind(channel="audit")
