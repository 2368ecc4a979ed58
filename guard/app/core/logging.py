"""Logging for the guard.

Security decisions carry their context (identity, session, event name,
rate-limit key) through ``extra=``; build it with ``get_log_context``.
``settings.log_format`` picks the line layout:

- ``text``: plain message lines
- ``structured``: message followed by the non-empty security fields as
  ``key=value`` pairs
- ``json``: one JSON object per record, for log shippers
"""

import json
import logging
import logging.config
import sys
from datetime import datetime
from typing import Any, Dict, Optional

from guard.app.core.config import settings

# Promoted to top-level keys in JSON output and listed in structured lines
SECURITY_FIELDS = (
    "request_id",
    "identity_id",
    "session_id",
    "event_name",
    "rate_limit_key",
    "client_agent",
    "status",
)

# Attributes every LogRecord has; anything else arrived through extra=
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Security fields sit at the top level, other ``extra=`` values under
    ``"extra"``. Fields left as None are omitted.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).astimezone().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        extra: Dict[str, Any] = {}
        for key, value in vars(record).items():
            if key in _RECORD_ATTRS or value is None:
                continue
            if key in SECURITY_FIELDS:
                payload[key] = value
            else:
                extra[key] = value
        if extra:
            payload["extra"] = extra

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=False)


class SecurityContextFormatter(logging.Formatter):
    """Text lines with the security fields appended as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        pairs = " ".join(
            f"{field}={getattr(record, field)}"
            for field in SECURITY_FIELDS
            if getattr(record, field, None) is not None
        )
        return f"{line} [{pairs}]" if pairs else line


class ContextFilter(logging.Filter):
    """Give every record the security fields, defaulting to None."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field in SECURITY_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, None)
        return True


def get_logging_config() -> Dict[str, Any]:
    """Build the dictConfig for the ``guard`` logger tree."""
    log_format = settings.log_format.lower()
    log_level = settings.log_level.upper()
    line_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    formatters = {
        "text": {"format": line_format},
        "structured": {
            "()": "guard.app.core.logging.SecurityContextFormatter",
            "fmt": line_format,
        },
        "json": {"()": "guard.app.core.logging.JSONFormatter"},
    }
    formatter = log_format if log_format in formatters else "text"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": {
            "context": {"()": "guard.app.core.logging.ContextFilter"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": formatter,
                "stream": sys.stdout,
                "filters": ["context"],
            },
        },
        "loggers": {
            "guard": {
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
    """Configure logging for the guard."""
    logging.config.dictConfig(get_logging_config())

    # Audit sinks talk to these; their request logs are noise here
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str = "guard") -> logging.Logger:
    return logging.getLogger(name)


def get_log_context(
    identity_id: Optional[str] = None,
    session_id: Optional[str] = None,
    event_name: Optional[str] = None,
    rate_limit_key: Optional[str] = None,
    request_id: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Build an ``extra=`` mapping, leaving out fields that are None.

    Example:
        >>> logger.warning(
        ...     "Login rejected",
        ...     extra=get_log_context(identity_id="user-1", event_name="login_failed")
        ... )
    """
    context = {
        "identity_id": identity_id,
        "session_id": session_id,
        "event_name": event_name,
        "rate_limit_key": rate_limit_key,
        "request_id": request_id,
        **extra,
    }
    return {key: value for key, value in context.items() if value is not None}
