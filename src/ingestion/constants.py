"""Shared constants for the ingest pipeline."""

from __future__ import annotations

from typing import Sequence

STAGE_ORDER: Sequence[str] = ("fetch", "normalize", "aggregate")
"""Ordered pipeline stages."""

STAGE_SET = frozenset(STAGE_ORDER)
"""Fast membership set for known pipeline stages."""

FAILED_LOG_REASON_MAX_LENGTH = 500
"""Maximum stored length of a dead-letter reason."""

PARTITION_KEY_PREFIX = "tenant-"
"""Prefix for fetch partition identifiers."""
