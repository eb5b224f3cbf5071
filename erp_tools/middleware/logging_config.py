"""
Logging setup for the workflow tools.

Two output styles share one stderr handler on the root logger:

* ``readable``: coloured one-liners for development and tests; a workflow
  record shows its consecutive (``<SC-00012>``) next to the logger name.
* ``json``: one JSON object per line for production log shipping; the
  workflow extras (module_key, entity_id, from_status, ...) become keys.

``LOG_LEVEL`` and ``LOG_FORMAT`` (env or app config) override the defaults.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

_EXTRA_KEYS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "request_id",
    "module_key",
    "entity_id",
    "consecutive",
    "actor",
    "from_status",
    "to_status",
    "pending_action",
)

_QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "alembic")


def _record_extras(record: logging.LogRecord) -> dict:
    return {key: getattr(record, key) for key in _EXTRA_KEYS if getattr(record, key, None) is not None}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(_record_extras(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{record.levelname:<8}{self.RESET}"
        parts = [stamp, level, f"{record.name}:"]
        if getattr(record, "consecutive", None):
            parts.append(f"<{record.consecutive}>")
        parts.append(record.getMessage())
        if getattr(record, "duration_ms", None) is not None:
            parts.append(f"[{record.duration_ms:.0f}ms]")
        line = " ".join(parts)
        if record.exc_info and record.exc_info[0] is not None:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(app):
    """Install the stderr handler on the root logger and set levels.

    Production (not DEBUG, not TESTING) defaults to INFO and JSON output;
    everything else defaults to DEBUG and the readable format.
    """
    testing = bool(app.config.get("TESTING"))
    production = not app.config.get("DEBUG") and not testing

    level_name = (os.getenv("LOG_LEVEL") or app.config.get("LOG_LEVEL") or ("INFO" if production else "DEBUG")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    style = (os.getenv("LOG_FORMAT") or app.config.get("LOG_FORMAT") or ("json" if production else "readable")).lower()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if style == "json" else ReadableFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing.formatter, (JSONFormatter, ReadableFormatter)):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, style)
