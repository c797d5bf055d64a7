"""
Structured logging configuration.

- Development: one coloured line per record with a [tenant/doc/version] tag
- Production: one JSON object per record (log aggregator compatible)
- LOG_LEVEL and LOG_FORMAT (json | readable) env variables override both

Services pass document context as ``extra={...}``. Inside a request,
RequestContextFilter fills tenant_id / actor_id from g.tenant_context
when the caller did not.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context, request

# Record attributes promoted to top-level JSON fields
CONTEXT_FIELDS = (
    "tenant_id",
    "actor_id",
    "document_id",
    "document_type",
    "version",
    "draft_version",
    "current_version",
    "event_type",
    "security_code",
    "method",
    "path",
)

_NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "alembic")


def _context(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class RequestContextFilter(logging.Filter):
    """Attach the request's tenant, actor and route to records that lack them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not has_request_context():
            return True
        ctx = getattr(g, "tenant_context", None)
        if ctx is not None:
            if getattr(record, "tenant_id", None) is None:
                record.tenant_id = ctx.tenant_id
            if getattr(record, "actor_id", None) is None:
                record.actor_id = ctx.actor_id
        if getattr(record, "path", None) is None:
            record.path = request.path
            record.method = request.method
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record for log aggregation."""

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
        entry.update(_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured single-line formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"

    @staticmethod
    def _tag(record: logging.LogRecord) -> str:
        parts = []
        tenant = getattr(record, "tenant_id", None)
        doc = getattr(record, "document_id", None)
        version = getattr(record, "version", None)
        if tenant is not None:
            parts.append(f"t={tenant}")
        if doc is not None:
            parts.append(f"doc={doc}")
        if version is not None:
            parts.append(f"v{version}")
        return f" [{' '.join(parts)}]" if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = (
            f"{color}{ts} {record.levelname:<8}{self.RESET} "
            f"{record.name}: {record.getMessage()}{self._tag(record)}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Install a single stderr handler on the root logger.

    Default level is DEBUG in development and testing, INFO in production;
    default format is readable unless the app runs in production.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)
    fmt = os.getenv("LOG_FORMAT", "json" if is_prod else "readable").lower()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ReadableFormatter())
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())

    # Replaced, not appended, so repeated create_app() calls do not stack
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
