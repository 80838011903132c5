"""Structured logging configuration for the gateway.

This module provides a logging setup using Python's standard logging
module, with JSON formatting available for production environments.
"""

import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

from bytegate.app.core.config import settings

# LogRecord attributes that are not user supplied extras
_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "message",
    "asctime", "timestamp", "logger", "level", "source", "taskName",
))


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Outputs log records as JSON objects for consumption by log aggregation
    systems like ELK Stack or Grafana Loki.
    """

    # Contextual fields for request tracking
    CONTEXT_FIELDS = [
        "request_id",    # Request ID from X-Request-ID header
        "user_id",       # Authenticated caller identity
        "tier",          # Rate limit tier (free, premium, admin)
    ]

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON string representation of the log record
        """
        record.message = record.getMessage()

        log_data: Dict[str, Any] = {
            "timestamp": datetime.now().astimezone().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        for field in self.CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None and value != "-":
                log_data[field] = value

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key in self.CONTEXT_FIELDS:
                continue
            log_data.setdefault("extra", {})[key] = value

        if record.exc_info and record.exc_info != (None, None, None):
            log_data["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Logging filter that adds contextual fields to log records.

    Adds default values for the request_id, user_id and tier contextual
    fields if not already present, so format strings never fail.
    """

    CONTEXT_DEFAULTS = {
        "request_id": None,
        "user_id": None,
        "tier": None,
    }

    def filter(self, record: logging.LogRecord) -> bool:
        for field, default in self.CONTEXT_DEFAULTS.items():
            if not hasattr(record, field):
                setattr(record, field, default)
        return True


def get_logging_config() -> Dict[str, Any]:
    """Get logging configuration dictionary.

    Returns:
        Logging configuration dict compatible with logging.config.dictConfig
    """
    log_format = getattr(settings, "log_format", "text").lower()
    log_level = getattr(settings, "log_level", "INFO").upper()

    formatters: Dict[str, Any] = {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
        "structured": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s - request_id=%(request_id)s - user_id=%(user_id)s - tier=%(tier)s"
        },
    }

    if log_format == "json":
        formatters["json"] = {
            "()": "bytegate.app.core.logging.JSONFormatter",
        }
        default_formatter = "json"
    else:
        default_formatter = "structured" if log_format == "structured" else "standard"

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": default_formatter,
            "stream": sys.stdout,
            "filters": ["context"],
        },
        "error_console": {
            "class": "logging.StreamHandler",
            "level": "ERROR",
            "formatter": default_formatter,
            "stream": sys.stderr,
            "filters": ["context"],
        },
    }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": {
            "context": {
                "()": "bytegate.app.core.logging.ContextFilter",
            },
        },
        "handlers": handlers,
        "loggers": {
            "bytegate": {
                "level": log_level,
                "handlers": ["console", "error_console"],
                "propagate": False,
            },
            "uvicorn": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
    }


def setup_logging() -> None:
    """Configure logging for the application."""
    logging.config.dictConfig(get_logging_config())

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str = "bytegate") -> logging.Logger:
    """Get a logger instance with the specified name."""
    return logging.getLogger(name)


def get_log_context(
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    tier: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Create a log context dictionary for use with the extra parameter.

    Example:
        >>> logger.info(
        ...     "Request admitted",
        ...     extra=get_log_context(user_id="auth0|123", tier="free")
        ... )
    """
    context: Dict[str, Any] = {
        "request_id": request_id,
        "user_id": user_id,
        "tier": tier,
    }
    context.update(extra)
    return {k: v for k, v in context.items() if v is not None}
