"""
Structured logging configuration for the library service.

- Development: human-readable colored format
- Production: JSON format (log aggregator compatible)
- LOG_LEVEL / LOG_FORMAT: app config first, then environment

Every record emitted inside a request is stamped with the request id and the
caller's user id by RequestContextFilter, so service-level lines such as
"Test case updated id=4" can be joined with the timing line of the request
that produced them.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Record attributes copied into JSON output when present
LOG_CONTEXT_FIELDS = (
    "request_id",
    "user_id",
    "test_case_id",
    "event_type",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
)

LOG_FORMATS = ("json", "readable")

NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "redis")


class RequestContextFilter(logging.Filter):
    """Stamp request_id / user_id from flask.g onto records that lack them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = getattr(g, "request_id", None)
            if getattr(record, "user_id", None) is None:
                record.user_id = getattr(g, "user_id", None)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for key in LOG_CONTEXT_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line format for local development.

    12:04:31 INFO     app.services.library_service [3fa2c1 user-7 tc=4]: Test case updated ...
    """

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def _context(self, record: logging.LogRecord) -> str:
        parts = [
            getattr(record, "request_id", None),
            getattr(record, "user_id", None),
        ]
        test_case_id = getattr(record, "test_case_id", None)
        if test_case_id is not None:
            parts.append(f"tc={test_case_id}")
        parts = [str(p) for p in parts if p]
        return f" [{' '.join(parts)}]" if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:<8}"
        if self.color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"
        duration = getattr(record, "duration_ms", None)
        dur_str = f" [{duration:.0f}ms]" if duration is not None else ""
        line = f"{ts} {level} {record.name}{self._context(record)}: {record.getMessage()}{dur_str}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve(app, key: str, default: str) -> str:
    return app.config.get(key) or os.getenv(key) or default


def configure_logging(app):
    """
    Install one stderr handler on the root logger.

    LOG_LEVEL defaults to DEBUG in development and INFO in production.
    LOG_FORMAT defaults to "json" in production and "readable" otherwise;
    color is used only when stderr is a terminal.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = _resolve(app, "LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    fmt = _resolve(app, "LOG_FORMAT", "json" if is_prod else "readable").lower()
    if fmt not in LOG_FORMATS:
        fmt = "json" if is_prod else "readable"
    if fmt == "json":
        formatter = JSONFormatter()
    else:
        formatter = ReadableFormatter(color=sys.stderr.isatty())

    root = logging.getLogger()
    # Replace rather than add; create_app runs once per test session
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
