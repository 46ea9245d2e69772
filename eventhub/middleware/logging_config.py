"""
Structured logging configuration.

Development and tests log one coloured line per record; production logs one
JSON object per line. ``LOG_LEVEL`` overrides the default level.

Context travels through ``extra=``:

    logger.info("SLA warning sent", extra={"job": "sla-reminders", "event_id": event.id})

Whatever is passed that way ends up as a top-level key in the JSON output and
as a ``[key=value]`` tag in the readable output.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Attributes every LogRecord has; anything else on a record came from ``extra=``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message", "asctime", "taskName",
}

# Shown first (and without a key) in readable output
_READABLE_TAGS = ("job", "request_id")


def _context(record: logging.LogRecord) -> dict:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_") and value is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
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
    """``HH:MM:SS LEVEL logger [job] [k=v]: message``, coloured by level."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    # Request-log keys already visible in the message text
    _HIDDEN = frozenset({"method", "path", "status", "remote_addr", "duration_ms"})

    def format(self, record: logging.LogRecord) -> str:
        context = _context(record)
        tags = [f"[{context.pop(key)}]" for key in _READABLE_TAGS if key in context]
        tags += [f"[{k}={v}]" for k, v in context.items() if k not in self._HIDDEN]

        color = self.COLORS.get(record.levelname, "")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = (f"{color}{stamp} {record.levelname:<8}{self.RESET} {record.name}"
                f"{' ' + ' '.join(tags) if tags else ''}: {record.getMessage()}")
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger.

    Production (not DEBUG, not TESTING) uses ``JSONFormatter`` at INFO;
    everything else uses ``ReadableFormatter`` at DEBUG.
    """
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing

    level_name = (os.getenv("LOG_LEVEL") or ("INFO" if production else "DEBUG")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if production else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app may run more than once per process (tests, CLI)
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(level)

    for chatty in ("urllib3", "werkzeug", "sqlalchemy.engine"):
        logging.getLogger(chatty).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if production else "readable")
