"""Concurrency-limited, retrying client for tenant log endpoints.

Each call resolves the tenant, takes one permit from a semaphore shared by
every caller of the client instance, then runs its whole retry sequence under
a single deadline:

    client = ExternalLogClient()
    records = await client.fetch("1", window_from, window_to)

Retry rules:

- Transport errors and 5xx/429 responses are retried after a fixed or linear
  delay, up to ``retry_attempts`` total attempts.
- Other 4xx responses and undecodable bodies fail immediately.
- Deadline expiry raises ``FetchTimeoutError`` with no further attempts.
- Cancellation is never retried.

A client instance must be used from one event loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from config import ExternalClientConfig, settings
from external.errors import FetchError, FetchTimeoutError
from external.retry_policy import FetchRetryPolicy, is_retryable_status, should_retry
from tenants.directory import TenantDirectory, TenantInfo
from time_utils import isoformat_utc, to_utc

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-KEY"


@dataclass(frozen=True)
class ExternalLogRecord:
    """One source-asserted log entry returned by a tenant endpoint."""

    occurred_at: datetime
    payload: str


class _WireRecord(BaseModel):
    """Wire shape of a single log entry."""

    model_config = ConfigDict(extra="ignore")

    occurred_at: datetime = Field(validation_alias=AliasChoices("occurredAt", "occurred_at"))
    payload: Any


_WIRE_LIST = TypeAdapter(list[_WireRecord])


def build_logs_url(base_url: str) -> str:
    """Return the logs endpoint for a tenant base URL."""
    return f"{base_url.rstrip('/')}/logs"


def decode_records(body: bytes) -> list[ExternalLogRecord]:
    """Decode a response body into log records.

    Raises:
        ValueError: If the body is not a JSON array of log entries.
    """
    try:
        wire = _WIRE_LIST.validate_json(body)
    except ValidationError as exc:
        raise ValueError(f"response body is not a list of log entries: {exc}") from exc
    records: list[ExternalLogRecord] = []
    for item in wire:
        payload = item.payload
        if not isinstance(payload, str):
            payload = json.dumps(payload, separators=(",", ":"))
        records.append(ExternalLogRecord(occurred_at=to_utc(item.occurred_at), payload=payload))
    return records


class ExternalLogClient:
    """Fetch raw log payloads for one tenant over a time range."""

    def __init__(
        self,
        directory: TenantDirectory | None = None,
        *,
        config: ExternalClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize the client with its tenant directory and limits."""
        client_config = config or settings.external_client
        self._directory = directory or TenantDirectory()
        self._policy = FetchRetryPolicy.from_config(client_config)
        self._permits = asyncio.Semaphore(client_config.max_concurrent_requests)
        self._transport = transport
        self._sleep = sleep or asyncio.sleep

    async def fetch(
        self, tenant_id: str, window_from: datetime, window_to: datetime
    ) -> list[ExternalLogRecord]:
        """Fetch all log records for a tenant within ``[window_from, window_to]``.

        Raises:
            InvalidTenantIdentifier, TenantNotFound, TenantInactive: From tenant lookup.
            FetchTimeoutError: If the overall deadline expires.
            FetchError: If attempts are exhausted or the response is unusable.
        """
        tenant = await asyncio.to_thread(self._directory.resolve, tenant_id)
        params = {"from": isoformat_utc(window_from), "to": isoformat_utc(window_to)}
        attempts = [0]
        async with self._permits:
            try:
                return await asyncio.wait_for(
                    self._fetch_with_retry(tenant, params, attempts),
                    timeout=self._policy.request_timeout_seconds,
                )
            except asyncio.TimeoutError as exc:
                logger.warning(
                    "fetch deadline exceeded for tenant %s after %s attempt(s)",
                    tenant.tenant_id,
                    attempts[0],
                )
                raise FetchTimeoutError(
                    tenant.tenant_id,
                    self._policy.request_timeout_seconds,
                    attempts=attempts[0],
                ) from exc

    async def _fetch_with_retry(
        self,
        tenant: TenantInfo,
        params: dict[str, str],
        attempts: list[int],
    ) -> list[ExternalLogRecord]:
        """Run attempts until success, a terminal error, or the budget runs out."""
        url = build_logs_url(tenant.base_url)
        headers = {API_KEY_HEADER: tenant.api_key}
        async with self._build_client() as client:
            return await self._attempt_loop(client, tenant, url, params, headers, attempts)

    async def _attempt_loop(
        self,
        client: httpx.AsyncClient,
        tenant: TenantInfo,
        url: str,
        params: dict[str, str],
        headers: dict[str, str],
        attempts: list[int],
    ) -> list[ExternalLogRecord]:
        """Retry GETs on one pooled client until success or a terminal error."""
        max_attempts = self._policy.max_attempts
        last_exception: Exception | None = None

        while True:
            attempts[0] += 1
            attempt = attempts[0]
            try:
                response = await client.get(url, params=params, headers=headers)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if not is_retryable_status(status):
                    raise FetchError(
                        tenant.tenant_id, f"status {status}", attempts=attempt
                    ) from e
                last_exception = e
                failure = f"status {status}"
            except httpx.TransportError as e:
                last_exception = e
                failure = type(e).__name__
            else:
                try:
                    return decode_records(response.content)
                except ValueError as e:
                    raise FetchError(tenant.tenant_id, str(e), attempts=attempt) from e

            if not should_retry(attempt, max_attempts):
                break
            delay = self._policy.delay_for(attempt)
            logger.warning(
                f"GET {url} for tenant {tenant.tenant_id} failed with {failure}, "
                f"retrying in {delay:.2f}s (attempt {attempt}/{max_attempts})"
            )
            await self._sleep(delay)

        raise FetchError(
            tenant.tenant_id,
            f"retries exhausted after {max_attempts} attempt(s)",
            attempts=max_attempts,
        ) from last_exception

    def _build_client(self) -> httpx.AsyncClient:
        """Return an HTTP client reused by every attempt of one fetch."""
        return httpx.AsyncClient(
            timeout=httpx.Timeout(
                self._policy.request_timeout_seconds,
                connect=self._policy.connect_timeout_seconds,
            ),
            transport=self._transport,
        )
