"""
Logging setup.

Development and tests get one readable line per record; production emits
one JSON object per line for the log collector. LOG_LEVEL overrides the
level.

Request and workspace context rides on ``extra=``::

    logger.info("Report deleted", extra={"workspace_id": wid, "report_id": rid})
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

CONTEXT_KEYS = (
    "request_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "user_email",
    "workspace_id",
    "report_id",
    "action",
)

_QUIET_LOGGERS = ("werkzeug", "urllib3", "sqlalchemy.engine", "pypdf", "weasyprint", "fontTools", "httpx")


def _context(record: logging.LogRecord) -> dict:
    return {k: getattr(record, k) for k in CONTEXT_KEYS if getattr(record, k, None) is not None}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
            **_context(record),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 INFO     vesta.services.x: message  ws=... 12ms``"""

    _COLORS = {"DEBUG": 36, "INFO": 32, "WARNING": 33, "ERROR": 31, "CRITICAL": 35}

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        if self.color:
            level = f"\033[{self._COLORS.get(record.levelname, 0)}m{level}\033[0m"
        line = (f"{datetime.fromtimestamp(record.created):%H:%M:%S} {level} "
                f"{record.name}: {record.getMessage()}")
        workspace_id = getattr(record, "workspace_id", None)
        if workspace_id:
            line += f"  ws={workspace_id}"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" {duration:.0f}ms"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger."""
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if production else "DEBUG").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if production else ReadableFormatter(color=sys.stderr.isatty()))

    root = logging.getLogger()
    # the factory runs once per test session and per worker; never stack handlers
    root.handlers[:] = [handler]
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging configured (%s, %s)", level_name, "json" if production else "text")
