"""
Structured logging for zeebe-testbed.

All modules log through structlog with event-style messages
(``container.started``, ``wait.ready``, ``command.sent``) and keyword fields.
``configure_logging()`` is called once by the entry point (CLI or test
session); library code only calls ``get_logger(__name__)``.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="zeebe-testbed")
            │
            ▼
        processor chain:
          1. merge_contextvars   (LogContext / bind_context fields)
          2. TimeStamper(iso)
          3. add_log_level, add_logger_name
          4. service metadata
          5. TestbedError values -> to_dict()
          6. JSONRenderer (not a tty) or ConsoleRenderer (tty)

    JSON output keeps ECS field names (``@timestamp``, ``log.level``) so a CI
    job can ship testbed logs next to the broker's own.

Examples:
    >>> from zeebe_testbed.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> logger = get_logger(__name__)
    >>> logger.info("container.started", container="zeebe-abc123")

    >>> with LogContext(run_id="3f2a9c1e0b7d"):
    ...     logger.warning("wait.timed_out", polls=30)

Tags:
    logging, structlog, observability, testbed
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from zeebe_testbed.core.errors import TestbedError

_SERVICE_NAME = "zeebe-testbed"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def _render_testbed_errors(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Replace TestbedError field values with their structured form."""
    for key, value in event_dict.items():
        if isinstance(value, TestbedError):
            event_dict[key] = value.to_dict()
    return event_dict


def _ecs_field_names(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    if "timestamp" in event_dict:
        event_dict["@timestamp"] = event_dict.pop("timestamp")
    if "level" in event_dict:
        event_dict["log.level"] = event_dict.pop("level")
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "zeebe-testbed",
    stream: TextIO | None = None,
) -> None:
    """Configure structlog for the process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Value of the ``service.name`` field
        stream: Output stream (stderr by default, keeping stdout for results)
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    stream = stream or sys.stderr
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    if json_format is None:
        json_format = not stream.isatty()

    processors: list[Processor] = [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
        _render_testbed_errors,
    ]

    if json_format:
        processors += [
            _ecs_field_names,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=stream.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    # grpc and other libraries log through stdlib
    logging.basicConfig(format="%(message)s", stream=stream, level=numeric_level)


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind fields to every later log call in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging fields.

    Fields bound by an enclosing scope are restored on exit, so nested
    scopes can shadow ``run_id`` or ``container``.

    Example:
        with LogContext(run_id="3f2a9c1e0b7d"):
            with LogContext(container="zeebe-testbed-zeebe-3f2a9c1e"):
                logger.info("wait.started")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs
        self._tokens: Any = None

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
