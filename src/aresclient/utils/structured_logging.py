r"""Structured logging utilities for machine-readable log output.

The executor logs every attempt and every terminal outcome with
structured fields (route, attempt, outcome, latency, circuit state). With
the default formatter these fields are invisible; configure a handler with
``StructuredFormatter`` to emit them as JSON for log aggregation systems.

Example:
    ```python
    import logging

    from aresclient.utils.structured_logging import StructuredFormatter

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logger = logging.getLogger("aresclient")
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    ```

    Correlate all the attempts of one logical request:

    ```python
    from aresclient.utils.structured_logging import correlation_scope

    with correlation_scope("request-123"):
        response = await client.get("https://api.example.com/data")
    ```
"""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "clear_correlation_id",
    "correlation_scope",
    "get_correlation_id",
    "log_structured",
    "set_correlation_id",
]

import contextvars
import json
import logging
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Generator

# Task-local and thread-local correlation ID
_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "aresclient_correlation_id", default=None
)

# Attributes present on every LogRecord, never copied as extra fields
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}


def get_correlation_id() -> str | None:
    """Get the correlation ID of the current context.

    Example:
        ```pycon
        >>> from aresclient.utils.structured_logging import (
        ...     clear_correlation_id,
        ...     get_correlation_id,
        ...     set_correlation_id,
        ... )
        >>> set_correlation_id("req-123")
        >>> get_correlation_id()
        'req-123'
        >>> clear_correlation_id()
        >>> get_correlation_id() is None
        True

        ```
    """
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the correlation ID for the current context."""
    _correlation_id.set(None)


@contextmanager
def correlation_scope(correlation_id: str) -> Generator[None, None, None]:
    """Set a correlation ID for the duration of a ``with`` block.

    The previous correlation ID is restored on exit.

    Args:
        correlation_id: The correlation ID (request ID, trace ID, ...).
    """
    token = _correlation_id.set(correlation_id)
    try:
        yield
    finally:
        _correlation_id.reset(token)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Standard fields in the output: ``timestamp`` (ISO 8601, UTC),
    ``level``, ``logger``, ``message``, ``module``, ``function``, ``line``,
    and ``correlation_id`` when set. Fields passed through ``extra`` are
    added as-is; values that are not JSON serializable are rendered with
    ``str``.

    Example:
        ```pycon
        >>> import json
        >>> import logging
        >>> from io import StringIO
        >>> from aresclient.utils.structured_logging import StructuredFormatter
        >>> stream = StringIO()
        >>> handler = logging.StreamHandler(stream)
        >>> handler.setFormatter(StructuredFormatter())
        >>> logger = logging.getLogger("doctest_structured_formatter")
        >>> logger.addHandler(handler)
        >>> logger.setLevel(logging.INFO)
        >>> logger.info("attempt completed", extra={"route": "https://api.example.com:443"})
        >>> json.loads(stream.getvalue())["route"]
        'https://api.example.com:443'

        ```
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = get_correlation_id()
        if correlation_id is not None:
            log_data["correlation_id"] = correlation_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: ARG002, N802
        """Format the record creation time as ISO 8601 with milliseconds."""
        return (
            time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
            + f".{int(record.msecs):03d}Z"
        )


def log_structured(logger: logging.Logger, level: int, message: str, **fields: Any) -> None:
    """Log a message with structured fields.

    Args:
        logger: The logger to use.
        level: The log level (e.g. ``logging.DEBUG``).
        message: The log message.
        **fields: Structured fields, included in the JSON output of
            ``StructuredFormatter``.
    """
    if logger.isEnabledFor(level):
        logger.log(level, message, extra=fields)
