"""JSON-lines logging for the service and its audit trail.

Every record is rendered as one JSON object per line. Records whose message is a
``dict`` are merged into the line as-is, which is how ingestion and chat events
are written to the audit logger. The audit logger writes to
``<LOG_DIR>/audit.log`` only and never reaches the console handler.
"""

from __future__ import annotations

import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

AUDIT_LOGGER_NAME = "docqa.audit"
AUDIT_LOG_FILE = "audit.log"

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


class JsonLineFormatter(logging.Formatter):
    """Render a record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": _utc_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
        }
        entry.update(self._body(record))
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_"):
                entry.setdefault(key, value)
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)

    @staticmethod
    def _body(record: logging.LogRecord) -> Dict[str, Any]:
        if isinstance(record.msg, dict):
            return dict(record.msg)
        message = record.getMessage()
        return {"message": message} if message else {}


def _utc_timestamp(created: float) -> str:
    return datetime.fromtimestamp(created, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _build_config(audit_path: Path, level: str) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"jsonl": {"()": JsonLineFormatter}},
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "jsonl"},
            "audit_file": {
                "class": "logging.FileHandler",
                "filename": str(audit_path),
                "encoding": "utf-8",
                "formatter": "jsonl",
            },
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            AUDIT_LOGGER_NAME: {"level": "INFO", "handlers": ["audit_file"], "propagate": False},
        },
    }


def configure_logging(log_dir: str | Path | None = None, level: str | None = None) -> Path:
    """Install the console and audit handlers and return the audit log path.

    ``log_dir`` and ``level`` fall back to the ``LOG_DIR`` and ``LOG_LEVEL``
    environment variables.
    """

    directory = Path(log_dir or os.getenv("LOG_DIR", "logs"))
    directory.mkdir(parents=True, exist_ok=True)
    audit_path = directory / AUDIT_LOG_FILE
    logging.config.dictConfig(_build_config(audit_path, (level or os.getenv("LOG_LEVEL", "INFO")).upper()))
    return audit_path


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER_NAME)
