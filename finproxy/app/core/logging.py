"""Structured logging configuration for the proxy.

Uses Python's standard logging module, configured through dictConfig, with
an optional JSON formatter for log aggregation in production.
"""

import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

from finproxy.app.core.config import settings

# Attributes every LogRecord carries; anything else came in through extra=
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Outputs one JSON object per record, with request context promoted to
    top-level keys and any other ``extra=`` fields nested under ``extra``.
    """

    # Contextual fields for request tracking
    CONTEXT_FIELDS = [
        "request_id",     # Request ID from X-Request-ID header
        "client_ip",      # Caller key used for rate limiting
        "upstream_host",  # Allowlisted upstream hostname
        "provider",       # Provider the URL was normalized for
        "cache",          # HIT / MISS
        "path",           # Request path
        "method",         # HTTP method
        "status_code",    # HTTP response status
        "duration_ms",    # Request duration in milliseconds
    ]

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now().astimezone().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        for field in self.CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES and key not in self.CONTEXT_FIELDS
        }
        if extra:
            log_data["extra"] = extra

        if record.exc_info and record.exc_info != (None, None, None):
            log_data["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Logging filter that adds default context fields to log records.

    The structured text format references these fields directly, so every
    record needs them even when the caller passed no ``extra``.
    """

    CONTEXT_DEFAULTS = {field: None for field in JSONFormatter.CONTEXT_FIELDS}

    def filter(self, record: logging.LogRecord) -> bool:
        for field, default in self.CONTEXT_DEFAULTS.items():
            if not hasattr(record, field):
                setattr(record, field, default)
        return True


TEXT_FORMATS = {
    "text": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    "structured": (
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        " - request_id=%(request_id)s - upstream_host=%(upstream_host)s - cache=%(cache)s"
    ),
}

# Loggers that get the console handler directly instead of propagating
OWNED_LOGGERS = ("finproxy", "uvicorn")

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def get_logging_config() -> Dict[str, Any]:
    """Build the dictConfig for the configured LOG_FORMAT and LOG_LEVEL.

    ``json`` selects JSONFormatter, ``structured`` a text line that carries
    the request context, and anything else the plain text format.
    """
    log_format = settings.log_format.lower()
    log_level = settings.log_level.upper()

    if log_format == "json":
        formatter: Dict[str, Any] = {"()": "finproxy.app.core.logging.JSONFormatter"}
    else:
        formatter = {"format": TEXT_FORMATS.get(log_format, TEXT_FORMATS["text"])}
        log_format = log_format if log_format in TEXT_FORMATS else "text"

    console = {
        "class": "logging.StreamHandler",
        "level": log_level,
        "formatter": log_format,
        "stream": sys.stdout,
        "filters": ["context"],
    }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {log_format: formatter},
        "filters": {"context": {"()": "finproxy.app.core.logging.ContextFilter"}},
        "handlers": {"console": console},
        "loggers": {
            name: {"level": log_level, "handlers": ["console"], "propagate": False}
            for name in OWNED_LOGGERS
        },
        "root": {"level": log_level, "handlers": ["console"]},
    }


def setup_logging() -> None:
    """Configure logging for the application."""
    logging.config.dictConfig(get_logging_config())
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = "finproxy") -> logging.Logger:
    """Get a logger instance with the specified name."""
    return logging.getLogger(name)


def get_log_context(
    request_id: Optional[str] = None,
    upstream_host: Optional[str] = None,
    client_ip: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Create a log context dictionary for use with the extra parameter.

    None values are dropped so the ContextFilter defaults stay in place.

    Example:
        >>> logger.info(
        ...     "Upstream call finished",
        ...     extra=get_log_context(upstream_host="finnhub.io", status_code=200),
        ... )
    """
    context = {
        "request_id": request_id,
        "upstream_host": upstream_host,
        "client_ip": client_ip,
    }
    context.update(extra)
    return {k: v for k, v in context.items() if v is not None}
