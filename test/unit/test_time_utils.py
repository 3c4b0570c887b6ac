"""Unit tests for time helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from time_utils import ensure_aware, isoformat_utc, parse_iso_datetime, to_utc


def test_parse_iso_datetime_accepts_zulu_suffix() -> None:
    """A trailing Z parses as UTC."""
    assert parse_iso_datetime("2025-03-01T12:30:00Z") == datetime(
        2025, 3, 1, 12, 30, tzinfo=timezone.utc
    )


def test_parse_iso_datetime_converts_offsets_to_utc() -> None:
    """Offsets are normalized to UTC."""
    parsed = parse_iso_datetime("2025-03-01T09:00:00+09:00")
    assert parsed == datetime(2025, 3, 1, 0, 0, tzinfo=timezone.utc)
    assert parsed.utcoffset() == timedelta(0)


def test_parse_iso_datetime_treats_naive_as_utc() -> None:
    """Values without an offset are taken as UTC."""
    assert parse_iso_datetime("2025-03-01T00:00:00").tzinfo == timezone.utc


@pytest.mark.parametrize("raw", ["", "   ", "yesterday", "2025-13-01T00:00:00Z"])
def test_parse_iso_datetime_rejects_invalid(raw: str) -> None:
    """Blank and malformed values raise ValueError."""
    with pytest.raises(ValueError):
        parse_iso_datetime(raw)


def test_to_utc_and_ensure_aware() -> None:
    """Naive values gain UTC; aware values are converted."""
    naive = datetime(2025, 1, 1, 5, 0)
    assert to_utc(naive) == datetime(2025, 1, 1, 5, 0, tzinfo=timezone.utc)
    assert ensure_aware(naive).tzinfo == timezone.utc
    assert ensure_aware(None) is None


def test_isoformat_utc_uses_z_suffix() -> None:
    """Rendered timestamps use the Z designator."""
    assert isoformat_utc(datetime(2025, 1, 1, tzinfo=timezone.utc)) == "2025-01-01T00:00:00Z"
