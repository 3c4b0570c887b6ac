"""Stdout logging configuration with optional JSON output.

Run-scoped fields (run id, stage, tenant) are carried in a ``contextvars``
mapping so they are attached to every log line emitted inside a
``log_context`` block, from sync and async code alike.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping

_LOG_CONTEXT: ContextVar[dict[str, str]] = ContextVar("logforge_log_context", default={})


def get_context() -> dict[str, str]:
    """Return a shallow copy of the current logging context."""
    return dict(_LOG_CONTEXT.get())


@contextmanager
def log_context(values: Mapping[str, object]) -> Iterator[None]:
    """Temporarily bind non-empty logging context for the duration of a block."""
    current = _LOG_CONTEXT.get().copy()
    for key, value in values.items():
        if value is not None:
            current[str(key)] = str(value)
    token = _LOG_CONTEXT.set(current)
    try:
        yield
    finally:
        _LOG_CONTEXT.reset(token)


class ContextFilter(logging.Filter):
    """Inject the bound logging context into each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.context = get_context()
        return True


class JsonFormatter(logging.Formatter):
    """Emit newline-delimited JSON logs with stable core fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if isinstance(context, dict):
            payload.update(context)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, separators=(",", ":"))


class PlainFormatter(logging.Formatter):
    """Human-readable formatter that appends bound context as key=value."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = getattr(record, "context", None)
        if not isinstance(context, dict) or not context:
            return message
        suffix = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
        return f"{message} {suffix}"


def configure_logging(*, level: str = "INFO", json_output: bool = False) -> None:
    """Configure root logging with a single stdout handler.

    Existing root handlers are replaced, so repeated calls do not duplicate
    output.
    """
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level.upper())

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level.upper())
    handler.addFilter(ContextFilter())
    handler.setFormatter(JsonFormatter() if json_output else PlainFormatter())
    root.addHandler(handler)
