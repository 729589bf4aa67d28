"""
Unit tests for logging utilities.

Tests for:
- CorrelationContext nesting
- CorrelationFilter stamping records
- Structured and human-readable formatters
- configure_logging
"""

import asyncio
import json
import logging

import pytest

from ragcore.core.logging import (
    CorrelationContext,
    CorrelationFilter,
    HumanReadableFormatter,
    StructuredFormatter,
    configure_logging,
)


def make_record(message="Embedding field"):
    return logging.LogRecord(
        name="ragcore.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )


@pytest.fixture
def package_logger():
    logger = logging.getLogger("ragcore")
    saved_handlers = list(logger.handlers)
    saved_level = logger.level
    logger.handlers = []
    yield logger
    logger.handlers = saved_handlers
    logger.setLevel(saved_level)


class TestCorrelationContext:
    """Tests for CorrelationContext."""

    def test_empty_by_default(self):
        """Test no fields are set outside a context."""
        assert CorrelationContext.get_current() == {}

    def test_nested_contexts_merge(self):
        """Test inner fields are added to outer ones and restored on exit."""
        with CorrelationContext(document_id=12):
            with CorrelationContext(chunk_id=7, field="notes"):
                assert CorrelationContext.get_current() == {
                    "document_id": 12, "chunk_id": 7, "field": "notes",
                }
            assert CorrelationContext.get_current() == {"document_id": 12}
        assert CorrelationContext.get_current() == {}

    def test_none_values_ignored(self):
        """Test fields passed as None are not recorded."""
        with CorrelationContext(document_id=1, chunk_id=None):
            assert CorrelationContext.get_current() == {"document_id": 1}

    def test_tasks_are_isolated(self):
        """Test concurrent tasks each see their own context."""
        async def worker(chunk_id):
            with CorrelationContext(chunk_id=chunk_id):
                await asyncio.sleep(0)
                return CorrelationContext.get_current()["chunk_id"]

        async def _run():
            return await asyncio.gather(worker(1), worker(2), worker(3))

        assert asyncio.run(_run()) == [1, 2, 3]


class TestFormatters:
    """Tests for the log formatters."""

    def test_filter_stamps_context(self):
        """Test the filter copies context fields onto the record."""
        record = make_record()

        with CorrelationContext(document_id=5, query_id="abc"):
            CorrelationFilter().filter(record)

        assert record.document_id == 5
        assert record.query_id == "abc"

    def test_structured_formatter(self):
        """Test JSON output includes message and correlation fields."""
        record = make_record()
        record.chunk_id = 9

        data = json.loads(StructuredFormatter(include_timestamp=False).format(record))

        assert data == {
            "level": "INFO",
            "logger": "ragcore.test",
            "message": "Embedding field",
            "chunk_id": 9,
        }

    def test_structured_formatter_timestamp(self):
        """Test a timestamp is added by default."""
        data = json.loads(StructuredFormatter().format(make_record()))

        assert "timestamp" in data

    def test_human_readable_formatter(self):
        """Test context fields are appended in brackets."""
        record = make_record()
        record.document_id = 3
        record.field = "content"

        line = HumanReadableFormatter(include_timestamp=False).format(record)

        assert line == "ragcore.test - INFO - Embedding field [document_id=3 field=content]"

    def test_human_readable_without_context(self):
        """Test no brackets are added without context."""
        line = HumanReadableFormatter(include_timestamp=False).format(make_record())

        assert line == "ragcore.test - INFO - Embedding field"


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_adds_single_handler(self, package_logger):
        """Test repeated configuration does not duplicate handlers."""
        configure_logging(level=logging.DEBUG)
        configure_logging(level=logging.DEBUG)

        assert len(package_logger.handlers) == 1
        assert package_logger.level == logging.DEBUG

    def test_structured_handler(self, package_logger):
        """Test structured mode installs the JSON formatter and context filter."""
        configure_logging(structured=True)

        handler = package_logger.handlers[0]
        assert isinstance(handler.formatter, StructuredFormatter)
        assert any(isinstance(f, CorrelationFilter) for f in handler.filters)
