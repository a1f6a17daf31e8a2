"""
Structured logging configuration for the session store.

Provides JSON-formatted logging with redaction of session identifiers,
cookie tokens and key material.
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from sessionstore.core.config import SessionSettings

# Attributes every LogRecord carries; anything else came in through `extra`
_RECORD_ATTRIBUTES = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName', 'taskName',
    'processName', 'process', 'exc_info', 'exc_text', 'stack_info',
}

# Base32 session ids are 52 characters; signed tokens are payload.timestamp.signature
_SESSION_ID_PATTERN = re.compile(r'\b([A-Z2-7]{6})[A-Z2-7]{46}\b')
_TOKEN_PATTERN = re.compile(r'\b([A-Za-z0-9_\-]{6})[A-Za-z0-9_\-]*\.[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]{27,}')


class SessionIdFilter(logging.Filter):
    """
    Mask session identifiers and signed cookie tokens in log messages.

    The first six characters are kept so related log lines can still be
    matched up.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = _SESSION_ID_PATTERN.sub(r'\1****', message)
        masked = _TOKEN_PATTERN.sub(r'\1****', masked)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging with sensitive field redaction.
    """

    def __init__(self, include_sensitive: bool = False):
        """
        Initialize structured formatter.

        Args:
            include_sensitive: Whether to include potentially sensitive data in logs
        """
        super().__init__()
        self.include_sensitive = include_sensitive

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON"""

        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRIBUTES:
                continue
            if not self.include_sensitive and self._is_sensitive_field(key):
                extra_fields[key] = "[REDACTED]"
            else:
                extra_fields[key] = value

        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=self._json_default)

    def _is_sensitive_field(self, key: str) -> bool:
        """Check if field contains sensitive data"""
        sensitive_keywords = {
            'session_id', 'secret', 'key', 'token', 'cookie', 'password', 'data'
        }

        key_lower = key.lower()
        return any(keyword in key_lower for keyword in sensitive_keywords)

    def _json_default(self, obj: Any) -> str:
        """JSON serializer for objects not serializable by default"""
        if isinstance(obj, datetime):
            return obj.isoformat()
        return str(obj)


def setup_logging(
    log_level: str = "INFO",
    enable_json: bool = True,
    log_file: Optional[str] = None,
    include_sensitive: bool = False
) -> None:
    """
    Configure logging for processes that embed the session store.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_json: Whether to use JSON formatting
        log_file: Optional file path for logging
        include_sensitive: Whether to include sensitive data in logs
    """

    logging.root.handlers.clear()

    if enable_json:
        formatter: logging.Formatter = StructuredFormatter(include_sensitive=include_sensitive)
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    for handler in handlers:
        handler.setFormatter(formatter)
        if not include_sensitive:
            handler.addFilter(SessionIdFilter())
        root_logger.addHandler(handler)

    # Reduce noise from external libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def init_logging(settings: SessionSettings) -> None:
    """Initialize logging from session store settings"""
    setup_logging(
        log_level=settings.log_level,
        enable_json=settings.json_logging,
    )

    logger = logging.getLogger("sessionstore.startup")
    logger.info(
        "Structured logging initialized",
        extra={
            "json_logging": settings.json_logging,
            "log_level": settings.log_level,
        }
    )
