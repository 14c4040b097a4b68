"""Stamp Notifier — Airtable HTTP Client.

Async client for the Airtable REST API built on httpx.AsyncClient:
  - Bearer-token auth from config
  - Offset-based pagination with a field projection
  - Batched record updates (10 records per request, the API maximum)
  - Per-base rate limiting via AsyncRateLimiter
  - 429 / 5xx / timeout retries up to max_retries
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence
from urllib.parse import quote

import httpx

from stamp_notifier.config import AirtableConfig
from stamp_notifier.utils.logger import get_logger
from stamp_notifier.utils.rate_limiter import AsyncRateLimiter

logger = get_logger(__name__)

UPDATE_BATCH_SIZE = 10


class StoreError(Exception):
    """Base class for record store failures."""


class TransientFetchError(StoreError):
    """A page of records could not be fetched."""


class CommitError(StoreError):
    """A batched update could not be written.

    Attributes:
        committed: Ids written by earlier chunks before the failure.
        failed: Ids whose update was not written.
    """

    def __init__(
        self,
        message: str,
        committed: Sequence[str] = (),
        failed: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.committed = list(committed)
        self.failed = list(failed)


@dataclass
class RecordPage:
    """One page of raw records plus the cursor for the next one."""

    records: list[dict[str, Any]] = field(default_factory=list)
    offset: Optional[str] = None


class AirtableClient:
    """Async Airtable client for a single base.

    Attributes:
        config: Airtable configuration.
        total_requests: Count of successful requests this session.
    """

    def __init__(
        self,
        config: AirtableConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: AirtableConfig loaded from settings.yaml.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self.config = config
        self.total_requests: int = 0
        self._transport = transport
        self._rate_limiter = AsyncRateLimiter(
            max_calls=config.requests_per_second,
            period_seconds=1.0,
        )
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazily create the httpx.AsyncClient."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self.config.api_url}/{self.config.base_id}/",
                headers={
                    "Authorization": f"Bearer {self.config.api_key}",
                    "Accept": "application/json",
                },
                timeout=httpx.Timeout(self.config.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    @staticmethod
    def _table_path(table: str) -> str:
        return quote(table, safe="")

    async def list_page(
        self,
        table: str,
        fields: Iterable[str],
        offset: Optional[str] = None,
    ) -> RecordPage:
        """Fetch one page of records.

        Args:
            table: Table name or id.
            fields: Field names to project.
            offset: Cursor returned by the previous page, None for the first.

        Returns:
            RecordPage with the raw records and the next cursor (None on
            the last page).

        Raises:
            TransientFetchError: If the page could not be fetched.
        """
        params: list[tuple[str, str]] = [("fields[]", name) for name in fields]
        params.append(("pageSize", str(self.config.page_size)))
        if offset:
            params.append(("offset", offset))

        try:
            resp = await self._request("GET", self._table_path(table), params=params)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TransientFetchError(
                f"Failed to fetch page of '{table}' (offset={offset}): {e}"
            ) from e

        records = data.get("records") if isinstance(data, dict) else None
        if not isinstance(records, list):
            raise TransientFetchError(
                f"Malformed page of '{table}' (offset={offset}): expected a records list"
            )
        logger.debug("Fetched %d records from '%s' (offset=%s)", len(records), table, offset)
        return RecordPage(records=records, offset=data.get("offset"))

    async def update_records(
        self,
        table: str,
        updates: Sequence[tuple[str, dict[str, Any]]],
    ) -> list[str]:
        """Apply field updates to many records.

        Requests are chunked to the API's per-request limit and sent in
        order; the first failing chunk stops the batch.

        Args:
            table: Table name or id.
            updates: (record_id, fields) pairs.

        Returns:
            Ids of the records the store confirmed as updated.

        Raises:
            CommitError: If any chunk fails. Carries the ids written so
                far and the ids left unwritten.
        """
        committed: list[str] = []
        for start in range(0, len(updates), UPDATE_BATCH_SIZE):
            chunk = updates[start:start + UPDATE_BATCH_SIZE]
            body = {"records": [{"id": rid, "fields": f} for rid, f in chunk]}
            try:
                resp = await self._request("PATCH", self._table_path(table), json=body)
                data = resp.json()
            except (httpx.HTTPError, ValueError) as e:
                raise CommitError(
                    f"Failed to update {len(chunk)} records in '{table}': {e}",
                    committed=committed,
                    failed=[rid for rid, _ in updates[start:]],
                ) from e

            written = data.get("records") if isinstance(data, dict) else None
            if not isinstance(written, list):
                raise CommitError(
                    f"Malformed update response from '{table}': expected a records list",
                    committed=committed,
                    failed=[rid for rid, _ in updates[start:]],
                )
            committed.extend(
                r["id"] for r in written if isinstance(r, dict) and "id" in r
            )

        logger.info("Updated %d records in '%s'", len(committed), table)
        return committed

    async def _request(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute a request with rate limiting and retry logic.

        Retry strategy:
          - 429 Too Many Requests: wait Retry-After (default 30s) then retry
          - 5xx Server Error: wait 2s × attempt then retry
          - Timeout / connection error: wait 2s × attempt then retry

        Raises:
            httpx.HTTPStatusError: On a 4xx response other than 429, or
                when retries are exhausted on 429/5xx.
            httpx.TransportError: When retries are exhausted on network errors.
        """
        client = self._get_client()
        max_retries = max(1, self.config.max_retries)

        for attempt in range(1, max_retries + 1):
            await self._rate_limiter.acquire()
            last_attempt = attempt == max_retries

            try:
                resp = await client.request(method, url, **kwargs)
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                if last_attempt:
                    raise
                wait = 2 * attempt
                logger.warning(
                    "%s on attempt %d/%d. Waiting %ds...",
                    type(e).__name__, attempt, max_retries, wait,
                )
                await asyncio.sleep(wait)
                continue

            if resp.status_code == 429 and not last_attempt:
                retry_after = int(resp.headers.get("Retry-After", 30))
                logger.warning(
                    "Rate limited (429) on attempt %d/%d. Waiting %ds...",
                    attempt, max_retries, retry_after,
                )
                await asyncio.sleep(retry_after)
                continue

            if resp.status_code >= 500 and not last_attempt:
                wait = 2 * attempt
                logger.warning(
                    "Server error %d on attempt %d/%d. Waiting %ds...",
                    resp.status_code, attempt, max_retries, wait,
                )
                await asyncio.sleep(wait)
                continue

            resp.raise_for_status()
            self.total_requests += 1
            return resp

        raise AssertionError("unreachable")  # pragma: no cover

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("Airtable client closed (total requests: %d)", self.total_requests)

    async def __aenter__(self) -> "AirtableClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
