"""
Logging configuration for fastwifi.

Provides text or JSON log lines, configurable log levels, and optional file
output with rotation. Console logs go to stderr because stdout carries the
benchmark report.

Usage:
    from logging_config import setup_logging, get_logger

    # Call once at application startup
    setup_logging()

    # Get a logger for your module
    logger = get_logger(__name__)
    logger.info('Connected', extra={'ssid': 'HomeNet'})

Environment variables:
    FASTWIFI_LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    FASTWIFI_LOG_FILE: Path to a log file (no file logging when unset)
    FASTWIFI_LOG_FORMAT: 'json' for structured logging, 'text' for human-readable
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# LogRecord attributes that are not user supplied 'extra' fields
STANDARD_ATTRS = frozenset(
    {
        'name',
        'msg',
        'args',
        'created',
        'filename',
        'funcName',
        'levelname',
        'levelno',
        'lineno',
        'module',
        'msecs',
        'pathname',
        'process',
        'processName',
        'relativeCreated',
        'stack_info',
        'exc_info',
        'exc_text',
        'thread',
        'threadName',
        'taskName',
        'message',
    }
)


def extra_fields(record: logging.LogRecord) -> dict:
    """Return the fields passed to a log call through ``extra``."""
    return {
        k: v
        for k, v in record.__dict__.items()
        if k not in STANDARD_ATTRS and not k.startswith('_')
    }


class JsonFormatter(logging.Formatter):
    """
    Formats log records as JSON for structured logging.

    Output includes timestamp, level, logger name, message, and any extra fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        extra = extra_fields(record)
        if extra:
            log_data['extra'] = extra

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """
    Human-readable formatter with consistent structure.

    Format: TIMESTAMP | LEVEL | LOGGER | MESSAGE [extra fields]
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime(
            '%Y-%m-%d %H:%M:%S'
        )
        base = f'{timestamp} | {record.levelname:8} | {record.name:16} | {record.getMessage()}'

        extra = extra_fields(record)
        if extra:
            extra_str = ' '.join(f'{k}={v}' for k, v in extra.items())
            base = f'{base} [{extra_str}]'

        if record.exc_info:
            base = f'{base}\n{self.formatException(record.exc_info)}'

        return base


def get_log_level(default: str = 'INFO') -> int:
    """
    Get log level from environment variable.

    Args:
        default: Default level if FASTWIFI_LOG_LEVEL is not set

    Returns:
        Logging level constant (e.g., logging.INFO)
    """
    level_name = os.environ.get('FASTWIFI_LOG_LEVEL', default).upper()
    level_map = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'WARN': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL,
    }
    return level_map.get(level_name, logging.INFO)


def get_formatter(log_format: Optional[str] = None) -> logging.Formatter:
    """
    Get formatter by name, falling back to FASTWIFI_LOG_FORMAT.

    Returns:
        JsonFormatter if format is 'json', TextFormatter otherwise
    """
    if log_format is None:
        log_format = os.environ.get('FASTWIFI_LOG_FORMAT', 'text')
    if log_format.lower() == 'json':
        return JsonFormatter()
    return TextFormatter()


def setup_logging(
    level: Optional[int] = None,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    max_bytes: int = 5 * 1024 * 1024,  # 5 MB
    backup_count: int = 3,
) -> None:
    """
    Configure logging for the application.

    Should be called once at application startup. Handlers carry no level of
    their own, so later changes to the root level apply everywhere.

    Args:
        level: Log level (default: from FASTWIFI_LOG_LEVEL env var or INFO)
        log_file: Path to log file (default: from FASTWIFI_LOG_FILE env var)
        log_format: 'json' or 'text' (default: from FASTWIFI_LOG_FORMAT env var)
        max_bytes: Maximum size of each log file before rotation
        backup_count: Number of backup files to keep
    """
    if level is None:
        level = get_log_level()

    formatter = get_formatter(log_format)

    if log_file is None:
        log_file = os.environ.get('FASTWIFI_LOG_FILE')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.warning(
                f'Could not set up file logging to {log_file}: {e}',
                extra={'component': 'logging_config'},
            )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name."""
    return logging.getLogger(name)
