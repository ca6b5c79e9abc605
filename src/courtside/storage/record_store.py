"""
Async client for the hosted record store.

Strategies, triggers, team stats and signals live in spreadsheet-style tables
reached over HTTP (Airtable REST API). Records are {"id", "fields",
"createdTime"} objects; writes are limited to 10 records per request.

Gotchas:
    - 429 means the per-base rate limit (5 req/s) was hit. The client spaces
      requests itself and retries 429/5xx with exponential backoff.
    - list responses are paginated with an opaque "offset" token.
    - Empty fields are omitted from responses, never returned as null.
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Any, Iterable, Optional

import aiohttp
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

BATCH_SIZE = 10


class RecordStoreConfig(BaseModel):
    """Record store connection configuration."""

    model_config = ConfigDict(frozen=True)

    api_key: str = os.environ.get("RECORD_STORE_API_KEY", "")
    base_id: str = os.environ.get("RECORD_STORE_BASE_ID", "")
    base_url: str = os.environ.get("RECORD_STORE_URL", "https://api.airtable.com/v0")
    timeout: float = 30.0
    rate_limit: float = 5.0
    max_retries: int = 3
    retry_delay: float = 1.0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.base_id)


class RecordStoreError(Exception):
    """Base exception for record store errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(RecordStoreError):
    """Rate limit exceeded."""
    pass


class RecordStoreClient:
    """
    Async record store client.

    Usage:
        async with RecordStoreClient(RecordStoreConfig()) as store:
            records = await store.list_records("Strategies", filter_formula="{Is Active}")
            created = await store.create_records("Signals", [{"Status": "watching"}])
    """

    def __init__(
        self,
        config: Optional[RecordStoreConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.config = config or RecordStoreConfig()
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=self.config.timeout)

        self._request_times: list[float] = []
        self._rate_lock = asyncio.Lock()

    async def __aenter__(self) -> "RecordStoreClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the client session."""
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    def _table_url(self, table: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{self.config.base_id}/{table}"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    async def _rate_limit_wait(self) -> None:
        """Wait if necessary to respect rate limits."""
        async with self._rate_lock:
            now = time.time()
            self._request_times = [t for t in self._request_times if now - t < 1.0]

            if len(self._request_times) >= self.config.rate_limit:
                wait_time = 1.0 - (now - self._request_times[0])
                if wait_time > 0:
                    await asyncio.sleep(wait_time)

            self._request_times.append(time.time())

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        """
        Make an HTTP request with rate limiting and retries.

        Raises:
            RecordStoreError: On API errors or when retries are exhausted
            asyncio.CancelledError: When task is cancelled (re-raised)
        """
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        retry_delay = self.config.retry_delay
        last_error: Optional[Exception] = None

        for attempt in range(self.config.max_retries):
            try:
                await self._rate_limit_wait()

                async with self._session.request(
                    method, url, headers=self._headers(), **kwargs
                ) as response:
                    if response.status == 429:
                        raise RateLimitError("Rate limit exceeded", status_code=429)

                    if response.status >= 400:
                        text = await response.text()
                        raise RecordStoreError(
                            f"Record store error: {response.status} - {text}",
                            status_code=response.status,
                        )

                    return await response.json()

            except RateLimitError as e:
                delay = retry_delay * (2 ** attempt) * 2
                logger.warning(f"Rate limited, waiting {delay}s before retry")
                await asyncio.sleep(delay)
                last_error = e

            except RecordStoreError as e:
                if e.status_code and e.status_code >= 500:
                    delay = retry_delay * (2 ** attempt)
                    logger.warning(
                        f"Server error {e.status_code}, retry {attempt + 1}/{self.config.max_retries}"
                    )
                    await asyncio.sleep(delay)
                    last_error = e
                else:
                    raise

            except asyncio.TimeoutError:
                delay = retry_delay * (2 ** attempt)
                logger.warning(f"Request timeout, retry {attempt + 1}/{self.config.max_retries}")
                await asyncio.sleep(delay)
                last_error = RecordStoreError("Request timed out")

            except asyncio.CancelledError:
                logger.debug("Request cancelled")
                raise

            except aiohttp.ClientError as e:
                delay = retry_delay * (2 ** attempt)
                logger.warning(f"Request failed: {e}, retry {attempt + 1}/{self.config.max_retries}")
                await asyncio.sleep(delay)
                last_error = RecordStoreError(str(e))

        raise last_error or RecordStoreError("Request failed after retries")

    # =========================================================================
    # Records
    # =========================================================================

    async def list_records(
        self,
        table: str,
        filter_formula: Optional[str] = None,
        max_records: Optional[int] = None,
        sort_field: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """
        List records, following pagination.

        Args:
            table: Table name
            filter_formula: Optional filterByFormula expression
            max_records: Optional cap on returned records
            sort_field: Optional field to sort ascending by

        Returns:
            Raw records ({"id", "fields", "createdTime"})
        """
        params: dict[str, Any] = {"pageSize": 100}
        if filter_formula:
            params["filterByFormula"] = filter_formula
        if max_records:
            params["maxRecords"] = max_records
        if sort_field:
            params["sort[0][field]"] = sort_field

        records: list[dict[str, Any]] = []
        while True:
            data = await self._request("GET", self._table_url(table), params=params)
            records.extend(data.get("records", []))
            offset = data.get("offset")
            if not offset or (max_records and len(records) >= max_records):
                break
            params["offset"] = offset

        return records[:max_records] if max_records else records

    async def get_record(self, table: str, record_id: str) -> Optional[dict[str, Any]]:
        try:
            return await self._request("GET", f"{self._table_url(table)}/{record_id}")
        except RecordStoreError as e:
            if e.status_code == 404:
                return None
            raise

    async def create_records(self, table: str, rows: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
        """Create records in batches of 10. Returns the created records."""
        created: list[dict[str, Any]] = []
        for batch in _batches([{"fields": r} for r in rows]):
            data = await self._request(
                "POST", self._table_url(table), json={"records": batch, "typecast": True}
            )
            created.extend(data.get("records", []))
        return created

    async def update_records(
        self,
        table: str,
        updates: Iterable[tuple[str, dict[str, Any]]],
    ) -> list[dict[str, Any]]:
        """Partially update records (PATCH) in batches of 10."""
        updated: list[dict[str, Any]] = []
        for batch in _batches([{"id": rid, "fields": f} for rid, f in updates]):
            data = await self._request(
                "PATCH", self._table_url(table), json={"records": batch, "typecast": True}
            )
            updated.extend(data.get("records", []))
        return updated

    async def delete_records(self, table: str, record_ids: Iterable[str]) -> int:
        deleted = 0
        for batch in _batches(list(record_ids)):
            data = await self._request(
                "DELETE", self._table_url(table), params=[("records[]", rid) for rid in batch]
            )
            deleted += len(data.get("records", []))
        return deleted

    async def create_record(self, table: str, fields: dict[str, Any]) -> dict[str, Any]:
        records = await self.create_records(table, [fields])
        if not records:
            raise RecordStoreError(f"Create in {table} returned no record")
        return records[0]

    async def update_record(self, table: str, record_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        records = await self.update_records(table, [(record_id, fields)])
        if not records:
            raise RecordStoreError(f"Update of {record_id} in {table} returned no record")
        return records[0]


def _batches(items: list) -> list[list]:
    return [items[i:i + BATCH_SIZE] for i in range(0, len(items), BATCH_SIZE)]
