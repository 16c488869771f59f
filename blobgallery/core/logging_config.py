"""
Logging infrastructure for BlobGallery.

Structured logging with JSON formatting, storage credential redaction,
and per-request correlation IDs.
"""

import logging
import logging.handlers
import json
import sys
import re
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, TextIO
from contextvars import ContextVar

# Context variable for correlation IDs
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)


class SensitiveDataFilter(logging.Filter):
    """Filter to redact storage credentials from log messages."""

    PATTERNS = [
        (re.compile(r'(Authorization:\s+)(?:Bearer\s+|SharedKey\s+)?\S+', re.IGNORECASE), r'\1***REDACTED***'),
        (re.compile(r'(AccountKey=)[^;"\s]+', re.IGNORECASE), r'\1***REDACTED***'),
        (re.compile(r'(SharedAccessSignature=)[^;&"\s]+', re.IGNORECASE), r'\1***REDACTED***'),
        (re.compile(r'(sig=)[^;&"\s]+', re.IGNORECASE), r'\1***REDACTED***'),
        (re.compile(r'(account_key["\']?\s*[:=]\s*["\']?)[^"\'\s,}]+', re.IGNORECASE), r'\1***REDACTED***'),
    ]

    @classmethod
    def redact(cls, text: str) -> str:
        for pattern, replacement in cls.PATTERNS:
            text = pattern.sub(replacement, text)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact sensitive data from log record."""
        if record.args:
            # Render now so secrets passed as %-style arguments are redacted too
            record.msg = record.getMessage()
            record.args = None
        if isinstance(record.msg, str):
            record.msg = self.redact(record.msg)
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }

        if corr_id := correlation_id.get():
            log_data["correlation_id"] = corr_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "context"):
            log_data["context"] = record.context

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    def __init__(self):
        fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        super().__init__(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    log_file: Optional[str] = None,
    rotation_size: str = "10MB",
    rotation_count: int = 5,
    module_levels: Optional[Dict[str, str]] = None,
    stream: Optional[TextIO] = None
) -> None:
    """
    Configure BlobGallery logging.

    Args:
        level: Default log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Log format ("json" or "text")
        log_file: Optional file path for log output
        rotation_size: Size limit for log rotation (e.g., "10MB")
        rotation_count: Number of rotated log files to keep
        module_levels: Optional dict of module-specific log levels
                      e.g., {"blobgallery.upload": "DEBUG"}
        stream: Console stream (default: stdout)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    formatter = JSONFormatter() if format_type == "json" else TextFormatter()

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=_parse_size(rotation_size),
            backupCount=rotation_count,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(SensitiveDataFilter())
        root_logger.addHandler(file_handler)

        root_logger.info(f"Logging to file: {log_file} (rotation: {rotation_size}, count: {rotation_count})")

    if module_levels:
        for module_name, module_level in module_levels.items():
            logging.getLogger(module_name).setLevel(getattr(logging, module_level.upper()))

    root_logger.info(f"Logging configured: level={level}, format={format_type}")


def setup_logging_from_config(config, stream: Optional[TextIO] = None) -> None:
    """Configure logging from a ``LoggingConfig`` section."""
    setup_logging(
        level=getattr(config.level, "value", config.level),
        format_type=config.format,
        log_file=config.file,
        rotation_size=config.rotation_size,
        rotation_count=config.rotation_count,
        module_levels=config.module_levels,
        stream=stream,
    )


def _parse_size(size_str: str) -> int:
    """
    Parse size string to bytes.

    Args:
        size_str: Size string (e.g., "10MB", "1GB")

    Returns:
        Size in bytes
    """
    size_str = size_str.upper().strip()

    # Check longer suffixes first to avoid matching 'B' in 'MB'
    multipliers = [
        ('GB', 1024 ** 3),
        ('MB', 1024 ** 2),
        ('KB', 1024),
        ('B', 1),
    ]

    for suffix, multiplier in multipliers:
        if size_str.endswith(suffix):
            number = size_str[:-len(suffix)].strip()
            return int(float(number) * multiplier)

    return int(size_str)


@contextmanager
def correlation_scope(corr_id: str) -> Iterator[str]:
    """Bind a correlation ID for the duration of a block."""
    token = correlation_id.set(corr_id)
    try:
        yield corr_id
    finally:
        correlation_id.reset(token)


def log_with_context(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """
    Log a message with additional context.

    Args:
        logger: Logger instance
        level: Log level
        message: Log message
        **context: Additional context to include in log
    """
    extra = {"context": context} if context else {}
    logger.log(level, message, extra=extra)
