"""
Logging utilities for the ragcore retrieval engine.

Provides structured logging with correlation support for tracing a document
through ingestion (document → chunk → field) and a query through search.
Correlation fields live in a context variable so that concurrently running
asyncio tasks each see their own context.
"""

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional


CORRELATION_FIELDS = (
    "correlation_id",
    "document_id",
    "chunk_id",
    "field",
    "query_id",
    "provider",
)

_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "ragcore_log_context", default={}
)


class CorrelationFilter(logging.Filter):
    """Stamps the active correlation context onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Correlation fields present on a record, in CORRELATION_FIELDS order."""
    values = {}
    for name in CORRELATION_FIELDS:
        value = getattr(record, name, None)
        if value is not None:
            values[name] = value
    return values


class StructuredFormatter(logging.Formatter):
    """
    Formatter emitting one JSON object per record.

    Keys: level, logger, message, an optional UTC timestamp, any correlation
    fields set on the record, and the formatted exception if there is one.
    """

    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.include_timestamp:
            created = datetime.fromtimestamp(record.created, tz=timezone.utc)
            entry["timestamp"] = created.isoformat()

        entry.update(record_context(record))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Plain-text formatter that appends correlation fields in brackets.

    Format: TIMESTAMP - LOGGER - LEVEL - MESSAGE [document_id=X chunk_id=Y]
    """

    def __init__(self, include_timestamp: bool = True):
        prefix = "%(asctime)s - " if include_timestamp else ""
        super().__init__(prefix + "%(name)s - %(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = record_context(record)
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        return f"{line} [{pairs}]"


def configure_logging(
    level: int = logging.INFO,
    format_string: Optional[str] = None,
    include_timestamp: bool = True,
    structured: bool = False,
) -> None:
    """
    Configure logging for the ragcore package.

    Args:
        level: Logging level (default: INFO)
        format_string: Custom format string (optional, ignored if structured=True)
        include_timestamp: Whether to include timestamp in log messages
        structured: If True, output JSON-structured logs; if False, human-readable

    Example:
        >>> from ragcore.core.logging import configure_logging
        >>> configure_logging(level=logging.DEBUG, structured=True)
    """
    package_logger = logging.getLogger("ragcore")
    package_logger.setLevel(level)

    # Only add handler if none exist (avoid duplicate handlers)
    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)
        handler.addFilter(CorrelationFilter())

        if structured:
            formatter = StructuredFormatter(include_timestamp=include_timestamp)
        elif format_string:
            formatter = logging.Formatter(format_string)
        else:
            formatter = HumanReadableFormatter(include_timestamp=include_timestamp)

        handler.setFormatter(formatter)
        package_logger.addHandler(handler)


class CorrelationContext:
    """
    Context manager for adding correlation fields to log records.

    Contexts nest: inner fields are merged over the outer ones and the outer
    context is restored on exit.

    Example:
        >>> with CorrelationContext(document_id=12):
        ...     with CorrelationContext(chunk_id=7, field="notes"):
        ...         logger.info("Embedding field")  # carries document_id, chunk_id, field
    """

    def __init__(self, **fields: Any):
        self.context = {k: v for k, v in fields.items() if v is not None}
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> "CorrelationContext":
        merged = dict(_context.get())
        merged.update(self.context)
        self._token = _context.set(merged)
        return self

    def __exit__(self, *args) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None

    @classmethod
    def get_current(cls) -> Dict[str, Any]:
        """Get the current correlation context."""
        return dict(_context.get())
