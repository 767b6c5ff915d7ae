"""
Structured logging configuration.

Every record emitted while a request is in flight carries its request id,
so governance events logged deep in the services (activation blocked,
auto-deactivation, phase overrides) can be joined to the access log line.

- LOG_FORMAT=json     one JSON object per line (log aggregators)
- LOG_FORMAT=readable coloured single line for a terminal
- default: json in production, readable in development / testing
- LOG_LEVEL overrides the level (DEBUG in dev, INFO in prod)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Record attributes copied into structured output when present
CONTEXT_FIELDS = ("request_id", "method", "path", "status", "duration_ms", "remote_addr")
GOVERNANCE_FIELDS = ("use_case_id", "event_type", "gate")

_QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "alembic")


class RequestContextFilter(logging.Filter):
    """Stamp the current request id onto records that lack one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and has_request_context():
            record.request_id = getattr(g, "request_id", None)
        return True


def _context(record: logging.LogRecord, names) -> dict:
    values = {}
    for name in names:
        value = getattr(record, name, None)
        if value is not None and value != "":
            values[name] = value
    return values


class JSONFormatter(logging.Formatter):
    """One JSON document per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(_context(record, CONTEXT_FIELDS))
        governance = _context(record, GOVERNANCE_FIELDS)
        if governance:
            entry["governance"] = governance
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Terminal format: time, level, logger, message, then governance tags."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:<8}"
        if self.color:
            level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"

        line = f"{stamp} {level} {record.name}: {record.getMessage()}"
        tags = " ".join(f"{k}={v}" for k, v in _context(record, GOVERNANCE_FIELDS).items())
        if tags:
            line += f" [{tags}]"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _pick_formatter(app) -> logging.Formatter:
    is_prod = not app.config.get("DEBUG", False) and not app.config.get("TESTING", False)
    fmt = os.getenv("LOG_FORMAT", "json" if is_prod else "readable").lower()
    if fmt == "json":
        return JSONFormatter()
    return ReadableFormatter(color=sys.stderr.isatty())


def configure_logging(app):
    """Install a single stderr handler on the root logger.

    Called first in ``create_app``; repeated calls (one app per test
    session, CLI invocations) replace the handler rather than stacking.
    """
    is_prod = not app.config.get("DEBUG", False) and not app.config.get("TESTING", False)
    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    formatter = _pick_formatter(app)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.config.get("TESTING", False):
        app.logger.info("Logging configured: level=%s format=%s",
                        logging.getLevelName(level), type(formatter).__name__)
