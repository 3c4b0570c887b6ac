"""Time helpers for UTC storage and ISO-8601 parsing."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Convert a datetime to UTC, treating naive values as already UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def ensure_aware(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps read back from storage."""
    if value is None:
        return None
    if value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def parse_iso_datetime(raw: str) -> datetime:
    """Parse an ISO-8601 instant into an aware UTC datetime.

    Accepts a trailing ``Z`` designator. Values without an offset are taken
    as UTC.

    Raises:
        ValueError: If the text is blank or not ISO-8601.
    """
    text = raw.strip() if isinstance(raw, str) else ""
    if not text:
        raise ValueError("timestamp must be a non-empty ISO-8601 string")
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"invalid ISO-8601 timestamp: {raw!r}") from exc
    return to_utc(parsed)


def isoformat_utc(value: datetime) -> str:
    """Render a timestamp as ISO-8601 in UTC with a ``Z`` suffix."""
    return to_utc(value).isoformat().replace("+00:00", "Z")
