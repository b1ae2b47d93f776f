# ============================================================================
# src/clinical_inference/utils/logging.py
# ============================================================================
"""
Logging configuration and utilities for the clinical inference builders.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone
import json

from .aws_context import CONTEXT_FIELDS, AwsContextFilter
from .exceptions import ConfigurationError


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    format_json: bool = False,
    aws_context: bool = True,
    context_filter: Optional[logging.Filter] = None
) -> None:
    """
    Setup logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for logging
        format_json: Whether to use JSON format
        aws_context: Attach AWS execution context to every record
        context_filter: Pre-built context filter (skips the metadata probe)
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        raise ConfigurationError(f"Unknown log level: {level}")

    # Create formatters
    if format_json:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    # Setup handlers
    handlers = []

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    handlers.append(console_handler)

    # File handler
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    if aws_context and context_filter is None:
        context_filter = AwsContextFilter()

    for handler in handlers:
        handler.setFormatter(formatter)
        if aws_context:
            handler.addFilter(context_filter)

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True
    )


def setup_logging_from_settings(settings=None) -> None:
    """Configure logging from LoggingSettings (environment driven)."""
    from ..config.logging_config import logging_settings

    settings = settings or logging_settings
    setup_logging(
        level=settings.LOG_LEVEL,
        format_json=settings.LOG_FORMAT_JSON,
        aws_context=settings.ENABLE_AWS_CONTEXT
    )


class JsonFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # AWS execution context
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value:
                log_data[field] = value

        # Add exception info if present
        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        # Add extra fields
        if hasattr(record, 'extra'):
            log_data['extra'] = record.extra

        return json.dumps(log_data, default=str)


class LogContext:
    """Context manager for adding context to logs."""

    def __init__(self, logger: logging.Logger, **context):
        self.logger = logger
        self.context = context
        self.old_factory = None

    def __enter__(self):
        self.old_factory = logging.getLogRecordFactory()

        def record_factory(*args, **kwargs):
            record = self.old_factory(*args, **kwargs)
            for key, value in self.context.items():
                setattr(record, key, value)
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        logging.setLogRecordFactory(self.old_factory)
