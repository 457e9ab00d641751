"""
Logging for ProjectHub.

Every record emitted while a request is being served is stamped with the
request id and the authenticated user id (``LogContextFilter``), so a
permission denial, a triage or a failed notification can be traced back to
the request and caller. Background jobs pass ``job_name`` themselves.

Output:
    json      one JSON object per line (default outside debug/testing)
    readable  ``HH:MM:SS LEVEL logger: message [user=7 project=3]``

LOG_LEVEL and LOG_FORMAT come from the app config (env by default).
"""

import json
import logging
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Context attributes lifted from ``extra={...}`` (or the request) into output
CONTEXT_FIELDS = (
    "request_id",
    "user_id",
    "project_id",
    "job_name",
    "channel",
)
HTTP_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr")

LOG_FORMATS = ("json", "readable")
_QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "urllib3")


class LogContextFilter(logging.Filter):
    """Fill ``request_id`` / ``user_id`` from ``flask.g`` when the caller did not."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = getattr(g, "request_id", None)
            if getattr(record, "user_id", None) is None:
                record.user_id = getattr(g, "jwt_user_id", None)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        for key in CONTEXT_FIELDS + HTTP_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line output for the dev server."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    _TAGS = (("user_id", "user"), ("project_id", "project"), ("job_name", "job"))

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        tags = [f"{label}={getattr(record, attr)}" for attr, label in self._TAGS
                if getattr(record, attr, None) is not None]
        if tags:
            line += f" [{' '.join(tags)}]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_format(app) -> str:
    fmt = (app.config.get("LOG_FORMAT") or "").lower()
    if fmt in LOG_FORMATS:
        return fmt
    if app.config.get("DEBUG") or app.config.get("TESTING"):
        return "readable"
    return "json"


def configure_logging(app):
    """Install one stderr handler on the root logger for this app."""
    fmt = _resolve_format(app)
    default_level = "INFO" if fmt == "json" else "DEBUG"
    level_name = (app.config.get("LOG_LEVEL") or default_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ReadableFormatter())
    handler.addFilter(LogContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app may run more than once per process (tests, CLI)
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.config.get("TESTING"):
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
