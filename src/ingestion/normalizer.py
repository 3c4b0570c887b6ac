"""Transform raw log payloads into canonical events."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ingestion.errors import NormalizeError
from models import MONEY, RawLog
from time_utils import to_utc

PARSE_FAILURE_MESSAGE = "payload JSON could not be parsed"
MISSING_EVENT_TYPE_MESSAGE = "eventType is missing from payload"

# Mirrors the normalized_events column widths.
_FIELD_LIMITS = {"eventType": 50, "userId": 100, "sessionId": 150}

# Mirrors the normalized_events.amount precision and scale.
_AMOUNT_BOUND = Decimal(10) ** (MONEY.precision - MONEY.scale)
_AMOUNT_QUANTUM = Decimal(1).scaleb(-MONEY.scale)


class EventPayload(BaseModel):
    """Accepted payload shape; snake_case and camelCase keys are both read."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    event_type: str | None = Field(
        default=None, validation_alias=AliasChoices("eventType", "event_type")
    )
    event_time: datetime | None = Field(
        default=None, validation_alias=AliasChoices("eventTime", "event_time")
    )
    user_id: str | None = Field(default=None, validation_alias=AliasChoices("userId", "user_id"))
    session_id: str | None = Field(
        default=None, validation_alias=AliasChoices("sessionId", "session_id")
    )
    amount: Decimal | None = None
    metadata: Any = None


@dataclass(frozen=True)
class NormalizedEventDraft:
    """Canonical event ready to be persisted."""

    raw_log_id: int
    tenant_id: int
    event_type: str
    event_time: datetime
    user_id: str | None
    session_id: str | None
    amount: Decimal | None
    metadata_json: str | None


def _blank_to_none(value: str | None) -> str | None:
    """Return None for missing or whitespace-only strings."""
    if value is None or not value.strip():
        return None
    return value


def _check_amount(raw: RawLog, amount: Decimal | None) -> None:
    """Reject amounts the money column cannot store exactly."""
    if amount is None:
        return
    if not amount.is_finite() or abs(amount) >= _AMOUNT_BOUND:
        raise NormalizeError(
            raw.id, raw.tenant_id, f"amount exceeds {MONEY.precision - MONEY.scale} integer digits"
        )
    if amount != amount.quantize(_AMOUNT_QUANTUM):
        raise NormalizeError(
            raw.id, raw.tenant_id, f"amount has more than {MONEY.scale} decimal places"
        )


def normalize_raw_log(raw: RawLog) -> NormalizedEventDraft:
    """Normalize one raw log.

    Raises:
        NormalizeError: If the payload is not a parsable JSON object, lacks an
            event type, or carries a field or amount its column cannot hold.
    """
    try:
        payload = EventPayload.model_validate_json(raw.payload_json or "")
    except ValidationError as exc:
        raise NormalizeError(raw.id, raw.tenant_id, PARSE_FAILURE_MESSAGE) from exc

    event_type = (payload.event_type or "").strip()
    if not event_type:
        raise NormalizeError(raw.id, raw.tenant_id, MISSING_EVENT_TYPE_MESSAGE)

    user_id = _blank_to_none(payload.user_id)
    session_id = _blank_to_none(payload.session_id)
    for name, value in (("eventType", event_type), ("userId", user_id), ("sessionId", session_id)):
        if value is not None and len(value) > _FIELD_LIMITS[name]:
            raise NormalizeError(
                raw.id,
                raw.tenant_id,
                f"{name} exceeds {_FIELD_LIMITS[name]} characters",
            )

    _check_amount(raw, payload.amount)

    event_time = payload.event_time or raw.occurred_at
    metadata_json = None
    if payload.metadata is not None:
        metadata_json = json.dumps(payload.metadata, sort_keys=True, separators=(",", ":"))

    return NormalizedEventDraft(
        raw_log_id=raw.id,
        tenant_id=raw.tenant_id,
        event_type=event_type,
        event_time=to_utc(event_time),
        user_id=user_id,
        session_id=session_id,
        amount=payload.amount,
        metadata_json=metadata_json,
    )
