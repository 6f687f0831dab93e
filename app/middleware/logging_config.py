"""
Structured logging configuration.

- Development: one readable line per record, tagged with tenant/actor
- Production: JSON lines (log aggregator compatible)
- Level: LOG_LEVEL env variable

``WorkflowContextFilter`` copies the acting user and tenant from
``flask.g`` onto every record emitted inside a request, so service-level
log lines ("Order X moved to Y") can be traced back to who did it.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

_CONTEXT_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "request_id",
    "tenant_id",
    "actor_id",
    "actor_role",
    "order_id",
    "job_id",
    "remote_addr",
)


class WorkflowContextFilter(logging.Filter):
    """Attach tenant_id / actor_id / actor_role from the current request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            actor = getattr(g, "actor", None)
            if actor is not None:
                record.tenant_id = getattr(record, "tenant_id", None) or actor.tenant_id
                record.actor_id = getattr(record, "actor_id", None) or actor.id
                record.actor_role = getattr(record, "actor_role", None) or actor.role
            request_id = getattr(g, "request_id", None)
            if request_id and not getattr(record, "request_id", None):
                record.request_id = request_id
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line formatter for local development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        tenant = getattr(record, "tenant_id", None)
        who = f" [t{tenant}:{getattr(record, 'actor_role', '?')}]" if tenant is not None else ""
        duration = getattr(record, "duration_ms", None)
        dur = f" [{duration:.0f}ms]" if duration is not None else ""
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}{who}: {record.getMessage()}{dur}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Install a single stderr handler on the root logger.

    Defaults to DEBUG outside production and INFO in production; the JSON
    formatter is used whenever the app is neither in debug nor testing mode.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.addFilter(WorkflowContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("urllib3", "werkzeug", "sqlalchemy.engine", "openpyxl"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, "JSON" if is_prod else "readable")
