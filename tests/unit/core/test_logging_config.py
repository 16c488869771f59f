"""
Tests for logging infrastructure.
"""

import io
import json
import logging

import pytest

from blobgallery.core.config_manager import LoggingConfig
from blobgallery.core.logging_config import (
    JSONFormatter,
    SensitiveDataFilter,
    _parse_size,
    correlation_id,
    correlation_scope,
    log_with_context,
    setup_logging,
    setup_logging_from_config,
)


def _record(msg, *args, level=logging.INFO):
    return logging.LogRecord("blobgallery.test", level, __file__, 1, msg, args, None)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    correlation_id.set(None)


class TestLoggingSetup:
    """Test suite for logging setup."""

    def test_setup_logging_defaults(self):
        """Test setting up logging with defaults."""
        setup_logging()

        root_logger = logging.getLogger()
        assert root_logger.level == logging.INFO
        assert len(root_logger.handlers) == 1

    def test_setup_logging_with_file(self, tmp_path):
        """Test setting up logging with file output."""
        log_file = tmp_path / "logs" / "gallery.log"
        setup_logging(level="DEBUG", log_file=str(log_file))

        logging.getLogger("blobgallery.test").debug("written to file")

        assert log_file.exists()
        assert "written to file" in log_file.read_text()

    def test_module_levels(self):
        """Test per-module log levels."""
        setup_logging(module_levels={"blobgallery.upload": "DEBUG"})
        assert logging.getLogger("blobgallery.upload").level == logging.DEBUG

    def test_setup_from_config(self):
        """Test configuring from the logging config section."""
        setup_logging_from_config(LoggingConfig(level="WARNING", format="text"))
        assert logging.getLogger().level == logging.WARNING

    def test_console_stream(self):
        """Console output goes to the given stream."""
        buffer = io.StringIO()
        setup_logging(level="INFO", format_type="text", stream=buffer)

        logging.getLogger("blobgallery.test").warning("to the buffer")

        assert "to the buffer" in buffer.getvalue()

    def test_parse_size(self):
        """Test size strings."""
        assert _parse_size("10MB") == 10 * 1024 * 1024
        assert _parse_size("1GB") == 1024 ** 3
        assert _parse_size("512KB") == 512 * 1024
        assert _parse_size("100B") == 100
        assert _parse_size("2048") == 2048


class TestSensitiveDataFilter:
    """Test credential redaction."""

    def test_redacts_account_key(self):
        """Account keys in connection strings are redacted."""
        record = _record("Connecting with DefaultEndpointsProtocol=http;AccountName=a;AccountKey=c2VjcmV0;")
        SensitiveDataFilter().filter(record)

        assert "c2VjcmV0" not in record.getMessage()
        assert "AccountKey=***REDACTED***" in record.getMessage()
        assert "AccountName=a" in record.getMessage()

    def test_redacts_arguments(self):
        """Secrets passed as %-style arguments are redacted too."""
        record = _record("url=%s", "https://acct.blob.core.windows.net/c?sv=2021&sig=abcDEF123")
        SensitiveDataFilter().filter(record)

        assert "abcDEF123" not in record.getMessage()
        assert "sv=2021" in record.getMessage()

    def test_redacts_authorization_header(self):
        assert "token" not in SensitiveDataFilter.redact("Authorization: SharedKey acct:token")

    def test_leaves_plain_messages(self):
        record = _record("Committed 'a.png' from 3 blocks")
        SensitiveDataFilter().filter(record)
        assert record.getMessage() == "Committed 'a.png' from 3 blocks"


class TestJSONFormatter:
    """Test JSON log output."""

    def test_format(self):
        """Test the base fields."""
        data = json.loads(JSONFormatter().format(_record("hello %s", "world", level=logging.WARNING)))

        assert data["message"] == "hello world"
        assert data["level"] == "WARNING"
        assert data["module"] == "blobgallery.test"
        assert "timestamp" in data
        assert "correlation_id" not in data

    def test_correlation_id(self):
        """Test that the current correlation ID is included."""
        with correlation_scope("req-123"):
            data = json.loads(JSONFormatter().format(_record("hello")))
        assert data["correlation_id"] == "req-123"

    def test_context(self):
        """Test extra context from log_with_context."""
        records = []

        class Capture(logging.Handler):
            def emit(self, record):
                records.append(record)

        logger = logging.getLogger("blobgallery.test.context")
        logger.addHandler(Capture())
        logger.setLevel(logging.INFO)

        log_with_context(logger, logging.INFO, "staged", block=3)

        data = json.loads(JSONFormatter().format(records[0]))
        assert data["context"] == {"block": 3}


class TestCorrelationScope:
    """Test correlation ID scoping."""

    def test_scope_restores_previous(self):
        with correlation_scope("outer"):
            with correlation_scope("inner") as corr_id:
                assert corr_id == "inner"
                assert correlation_id.get() == "inner"
            assert correlation_id.get() == "outer"
        assert correlation_id.get() is None
