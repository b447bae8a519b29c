"""
Structured logging configuration.

Two kinds of work produce log lines here: HTTP requests and refresh
cycles. Both bind a small context dict (request_id / endpoint for a
request, refresh number and trigger for a cycle) that every line emitted
inside that unit of work carries with it.

    production   one JSON object per line, context under "context",
                 alert-domain extras (source_id, alert_id, ...) at top level
    development  coloured single line, tagged [req:abcd1234] or [refresh#3],
                 with source / alert / city appended when present

Usage:
    from backend.app.core.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__)
    logger.info("Refresh complete", extra={"alert_count": 12})
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from backend.app.core.config import Settings, settings as default_settings

_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

# Record attributes copied onto JSON lines when a call site passes them in extra=
EXTRA_FIELDS = (
    "alert_id", "source_id", "alert_count", "recipient_count", "sent",
    "failed", "city", "duration_ms", "status_code", "endpoint",
)

# Shown inline by the console formatter, in this order
INLINE_FIELDS = (("source_id", "source"), ("alert_id", "alert"), ("city", "city"))

NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "aiosqlite", "urllib3")


def bind_context(**fields: Any) -> None:
    """Replace the log context for the current task (request or refresh)."""
    _log_context.set(fields)


def clear_context() -> None:
    _log_context.set({})


def current_context() -> Dict[str, Any]:
    return _log_context.get()


def _context_tag(ctx: Dict[str, Any]) -> str:
    if ctx.get("request_id"):
        return f" [req:{ctx['request_id'][:8]}]"
    if ctx.get("refresh"):
        return f" [refresh#{ctx['refresh']}]"
    return ""


# ── JSON Formatter (Production) ──

class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        ctx = current_context()
        if ctx:
            entry["context"] = ctx

        entry.update(
            (key, getattr(record, key)) for key in EXTRA_FIELDS if hasattr(record, key)
        )

        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            entry["exception"] = {"type": type(exc).__name__, "message": str(exc)}

        return json.dumps(entry, default=str, ensure_ascii=False)


# ── Console Formatter (Development) ──

class ConsoleFormatter(logging.Formatter):
    """Coloured one-line output with the unit-of-work tag up front."""

    LEVEL_COLORS = {
        "DEBUG": "\033[2m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        line = (
            f"{color}{self.formatTime(record, '%H:%M:%S')} {record.levelname:<8}{self.RESET}"
            f"{_context_tag(current_context())} {record.name}: {record.getMessage()}"
        )

        inline = [
            f"{label}={getattr(record, attr)}"
            for attr, label in INLINE_FIELDS
            if getattr(record, attr, None)
        ]
        if inline:
            line += f"  ({', '.join(inline)})"

        if record.exc_info and record.exc_info[1]:
            line += f"\n  {type(record.exc_info[1]).__name__}: {record.exc_info[1]}"

        return line


# ── Setup ──

def setup_logging(config: Optional[Settings] = None) -> None:
    """Install a single stdout handler on the root logger."""
    config = config or default_settings

    root = logging.getLogger()
    root.setLevel(getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if config.is_production else ConsoleFormatter())
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
