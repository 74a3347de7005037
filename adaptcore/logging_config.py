from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

TRACE_LOGGER = "adaptcore.trace"
_CTX = "ctx_"


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    ``ctx_*`` extras are gathered under ``context`` with the prefix stripped.
    Trace records also carry ``event`` and ``explainability_id`` at top level
    so they can be filtered without digging into the context.
    """

    def format(self, record: logging.LogRecord) -> str:
        context = {k[len(_CTX):]: v for k, v in record.__dict__.items() if k.startswith(_CTX)}
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.name == TRACE_LOGGER:
            entry["event"] = context.pop("event", record.getMessage())
            entry["explainability_id"] = context.pop("explainability_id", None)
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }
        if context:
            entry["context"] = context
        return json.dumps(entry, default=str)


def setup_logging(level: str | None = None) -> None:
    """Send JSON logs to stdout; the level defaults to the active settings profile."""
    root = logging.getLogger()
    if root.handlers:
        return
    if level is None:
        from adaptcore.config import get_settings

        level = get_settings().log_level

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("alembic").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


_trace_logger = get_logger(TRACE_LOGGER)


def make_explainability_id() -> str:
    return f"exp_{uuid4().hex}"


def trace_info(explainability_id: str, event: str, **fields: Any) -> None:
    """Emit a named trace event correlated by explainability id."""
    extra = {f"{_CTX}{k}": v for k, v in fields.items()}
    extra[f"{_CTX}explainability_id"] = explainability_id
    extra[f"{_CTX}event"] = event
    _trace_logger.info(event, extra=extra)
