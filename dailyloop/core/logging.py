"""
Structured logging for dailyloop.

- One application logger, "dailyloop"; JSON lines in production, one-line
  pretty output everywhere else.
- request_id is bound per request through a ContextVar and stamped onto
  every record by ContextFilter.
- log_event attaches the user and local day a message is about, so a
  deferral can be traced from the Shutdown that made it to the Startup
  that confirmed it.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Optional

APP_LOGGER = "dailyloop"

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Always present on records that pass through ContextFilter
_CONTEXT_FIELDS = ("request_id", "user_id", "log_date", "event_type", "error_code")

# Attributes every LogRecord has; anything else arrived through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_LATENCY_BUCKETS = (
    (10, "<10ms"),
    (100, "10-100ms"),
    (500, "100-500ms"),
    (1000, "500-1000ms"),
)


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    """Fetch the current request_id from context (if any)."""
    rid = request_id_ctx_var.get()
    return rid if rid is not None else default


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    if latency_ms is None:
        return "unknown"
    for upper, label in _LATENCY_BUCKETS:
        if latency_ms < upper:
            return label
    return ">=1000ms"


def _utc_stamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z")


class ContextFilter(logging.Filter):
    """Fill request_id from context and default the other day-level fields to None."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        for name in _CONTEXT_FIELDS[1:]:
            if not hasattr(record, name):
                setattr(record, name, None)
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": _utc_stamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        for name, value in vars(record).items():
            if name in _RECORD_ATTRS or name in payload or value is None:
                continue
            payload[name] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        tags = "".join(
            f" [{label}={value}]"
            for label, value in (
                ("rid", getattr(record, "request_id", None)),
                ("user", getattr(record, "user_id", None)),
                ("day", getattr(record, "log_date", None)),
            )
            if value
        )
        line = f"{_utc_stamp(record)} {record.levelname} [{APP_LOGGER}]{tags} {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(env: str = "development", level: int = logging.INFO) -> None:
    """Install the dailyloop handler; safe to call more than once."""
    logger = logging.getLogger(APP_LOGGER)
    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(ContextFilter())

    logger.handlers = [handler]
    logger.propagate = True

    # uvicorn logs through its own handlers
    for name in ("uvicorn", "uvicorn.error"):
        logging.getLogger(name).propagate = False


def _safe_truncate(value, limit: int = 500):
    if isinstance(value, (bool, int, float)) or value is None:
        return value
    try:
        text = str(value)
    except Exception:
        return "<unserializable>"
    return text if len(text) <= limit else text[:limit] + "...<truncated>"


def log_event(
    level: str,
    msg: str,
    *,
    request_id: Optional[str],
    user_id: Optional[str] = None,
    log_date: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, object]] = None,
):
    """Emit ``msg`` on the app logger with day-level context attached.

    ``extra`` values are stringified and truncated, numbers and booleans
    pass through unchanged. Keys that clash with LogRecord attributes are
    prefixed with ``x_``.
    """
    logger = logging.getLogger(APP_LOGGER)
    if not logger.handlers:
        # Logging used before main configured it (scripts, tests)
        configure_logging(os.getenv("ENV", "development"))

    fields = {
        "request_id": request_id or get_request_id(),
        "user_id": user_id,
        "log_date": log_date,
        "event_type": event_type,
        "error_code": error_code,
    }
    for key, value in (extra or {}).items():
        fields[f"x_{key}" if key in _RECORD_ATTRS else key] = _safe_truncate(value)

    logger.log(logging.getLevelName(level.upper()), msg, extra=fields)
