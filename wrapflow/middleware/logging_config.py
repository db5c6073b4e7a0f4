"""
Structured logging configuration.

Format selection (``LOG_FORMAT`` overrides):
    production   → one JSON object per line
    development  → coloured single-line records
    testing      → plain single-line records, no colour

Every record emitted while a request is active is stamped with the request
id and acting user by ``RequestContextFilter``, so service-level messages
("Workflow duplicated ...") can be joined with the access log line.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Attributes copied from ``extra={...}`` (or the context filter) into output
CONTEXT_FIELDS = (
    "request_id",
    "user_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "workflow_id",
)

NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "alembic")


class RequestContextFilter(logging.Filter):
    """Attach request_id / user_id from ``flask.g`` when a request is active."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = getattr(g, "request_id", None)
            if getattr(record, "user_id", None) is None:
                record.user_id = getattr(g, "jwt_user_id", None)
        return True


def _context(record):
    return {key: getattr(record, key) for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON document per record for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Single-line formatter for terminals; colour is optional."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        if self.color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{stamp} {level} {record.name}: {record.getMessage()}"

        ctx = _context(record)
        if "duration_ms" in ctx:
            line += f" [{ctx['duration_ms']:.0f}ms]"
        if "request_id" in ctx:
            line += f" rid={ctx['request_id']}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _pick_formatter(app):
    choice = os.getenv("LOG_FORMAT", "").lower()
    if app.config.get("TESTING"):
        return ReadableFormatter(color=False) if choice != "json" else JSONFormatter()
    if choice == "json" or (not choice and not app.config.get("DEBUG")):
        return JSONFormatter()
    return ReadableFormatter(color=sys.stderr.isatty())


def configure_logging(app):
    """
    Install a single stderr handler on the root logger.

    LOG_LEVEL defaults to INFO in production and DEBUG elsewhere.
    Calling it again (one app per test session) replaces the handler.
    """
    default_level = "DEBUG" if app.config.get("DEBUG") or app.config.get("TESTING") else "INFO"
    level_name = os.getenv("LOG_LEVEL", default_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_pick_formatter(app))
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.config.get("TESTING"):
        app.logger.info("Logging configured level=%s formatter=%s",
                        level_name, type(handler.formatter).__name__)
