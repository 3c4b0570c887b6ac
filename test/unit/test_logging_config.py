"""Tests for context-aware logging formatters."""

from __future__ import annotations

import asyncio
import json
import logging

import pytest

from logging_config import (
    ContextFilter,
    JsonFormatter,
    PlainFormatter,
    configure_logging,
    get_context,
    log_context,
)


def _record(message: str = "hello %s", *args) -> logging.LogRecord:
    record = logging.LogRecord(
        "logforge.test", logging.INFO, __file__, 1, message, args or ("world",), None
    )
    ContextFilter().filter(record)
    return record


def test_log_context_nests_and_resets():
    """Inner blocks extend the context and restore it on exit."""
    with log_context({"run_id": "r1"}):
        with log_context({"stage": "fetch", "tenant_id": None}):
            assert get_context() == {"run_id": "r1", "stage": "fetch"}
        assert get_context() == {"run_id": "r1"}
    assert get_context() == {}


@pytest.mark.asyncio
async def test_log_context_is_isolated_between_tasks():
    """Concurrent tasks each see only their own bound values."""
    seen: dict[str, dict[str, str]] = {}

    async def worker(tenant: str) -> None:
        with log_context({"tenant_id": tenant}):
            await asyncio.sleep(0.01)
            seen[tenant] = get_context()

    await asyncio.gather(worker("1"), worker("2"))

    assert seen == {"1": {"tenant_id": "1"}, "2": {"tenant_id": "2"}}


def test_json_formatter_includes_context():
    """JSON lines carry the message, level, and bound fields."""
    with log_context({"run_id": "r1", "stage": "normalize"}):
        record = _record()

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "hello world"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "logforge.test"
    assert payload["run_id"] == "r1"
    assert payload["stage"] == "normalize"


def test_plain_formatter_appends_sorted_context():
    """Plain lines end with sorted key=value pairs."""
    with log_context({"stage": "fetch", "run_id": "r1"}):
        record = _record()

    line = PlainFormatter().format(record)

    assert line.endswith("hello world run_id=r1 stage=fetch")


def test_plain_formatter_without_context():
    """Without bound context the message is left untouched."""
    line = PlainFormatter().format(_record())
    assert line.endswith("INFO logforge.test hello world")


def test_configure_logging_replaces_handlers():
    """Repeated configuration leaves exactly one root handler."""
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    try:
        configure_logging(level="debug")
        configure_logging(level="warning", json_output=True)

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert root.level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
