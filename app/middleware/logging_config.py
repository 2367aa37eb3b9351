"""
Structured logging for the back-office API.

Every record emitted while a request is active is stamped with the
request id and the authenticated user, so workflow events
(``event_type`` / ``report_id`` extras) can be correlated with the HTTP
call that caused them.

- LOG_FORMAT=json      one JSON object per line (log shippers)
- LOG_FORMAT=readable  coloured single-line output (local dev)
- LOG_LEVEL            overrides the per-environment default
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Extras promoted to top-level JSON keys when present on a record
CONTEXT_FIELDS = (
    "request_id",
    "user_id",
    "report_id",
    "event_type",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
)


class RequestContextFilter(logging.Filter):
    """Copy request id / user id from ``flask.g`` onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = g.get("request_id")
            if getattr(record, "user_id", None) is None:
                record.user_id = g.get("jwt_user_id")
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update({
            key: getattr(record, key)
            for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        })
        if record.exc_info and record.exc_info[0] is not None:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message [req=… user=…]``"""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tags = []
        for key in ("request_id", "user_id", "report_id"):
            value = getattr(record, key, None)
            if value:
                tags.append(f"{key.split('_')[0]}={value}")
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            tags.append(f"{duration:.0f}ms")
        suffix = f" [{' '.join(tags)}]" if tags else ""
        line = f"{color}{stamp} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}{suffix}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger.

    Production defaults to JSON at INFO, everything else to readable at
    DEBUG. ``LOG_LEVEL`` / ``LOG_FORMAT`` (config or env) override both.
    """
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing

    level_name = (app.config.get("LOG_LEVEL") or os.getenv("LOG_LEVEL")
                  or ("INFO" if production else "DEBUG")).upper()
    level = getattr(logging, level_name, logging.INFO)
    fmt = (app.config.get("LOG_FORMAT") or os.getenv("LOG_FORMAT")
           or ("json" if production else "readable")).lower()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app runs once per test module; keep exactly one handler
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
