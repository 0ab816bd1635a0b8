"""Structured logging using structlog.

Every record carries the service identity taken from the settings the
application was started with. Graph stores log through ``LoggerMixin``,
whose logger is pre-bound with the store's engine (and SQL dialect), so
call sites only add what varies per operation, usually ``database``.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from graphlens.common.config import Settings, get_settings

# Third-party loggers quieted to WARNING, keyed by the backend that pulls them in
NOISY_LOGGERS: dict[str, tuple[str, ...]] = {
    "api": ("uvicorn", "uvicorn.access", "uvicorn.error"),
    "sql": ("sqlalchemy.engine", "sqlalchemy.pool", "aiosqlite", "asyncpg", "aioodbc"),
    "neo4j": ("neo4j", "neo4j.io", "neo4j.pool"),
    "memgraph": ("neo4j", "neo4j.io", "neo4j.pool"),
}


def service_context(settings: Settings) -> Processor:
    """Processor stamping service, version and environment on each event."""
    context = {
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }

    def add_service_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        for key, value in context.items():
            event_dict.setdefault(key, value)
        return event_dict

    return add_service_context


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        settings: Application settings. Uses global settings if not provided.
    """
    if settings is None:
        settings = get_settings()
    log_settings = settings.logging

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_settings.include_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if log_settings.include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ]
        ))

    processors.append(service_context(settings))

    if log_settings.format == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_settings.level),
    )

    for source in ["api", *settings.api.backends]:
        for logger_name in NOISY_LOGGERS.get(source, ()):
            logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger, optionally bound with initial context.

    Example:
        logger = get_logger(__name__, engine="neo4j")
        logger.info("Graph created", graph_id="example")
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


class LoggerMixin:
    """Mixin giving instances a logger bound with ``log_context()``."""

    def log_context(self) -> dict[str, Any]:
        """Key-value pairs attached to every record this instance logs."""
        return {}

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        if not hasattr(self, "_logger"):
            self._logger = get_logger(self.__class__.__name__, **self.log_context())
        return self._logger


def bind_context(**context: Any) -> None:
    """Bind request-scoped context; it follows the task across awaits."""
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
