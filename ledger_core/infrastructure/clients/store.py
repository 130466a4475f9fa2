"""Ledger store HTTP client (PostgREST-style) with retry on idempotent calls"""

import asyncio
import logging
from typing import Any, Dict, List

import httpx

from ledger_core.config import Settings, settings as default_settings
from ledger_core.domain.exceptions import StoreAPIError
from ledger_core.infrastructure.interface import TABLES, LedgerStore, Row
from ledger_core.infrastructure.observability.metrics import store_failure_counter, store_latency_histogram


class HttpLedgerStore(LedgerStore):
    """Client for the REST ledger store"""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = settings or default_settings
        self.base_url = (base_url or settings.store_url).rstrip("/")
        self.api_key = api_key or settings.store_api_key
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = settings.store_max_retries
        self.backoff_base = settings.store_backoff_base
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _send(self, method: str, table: str, retry: bool, **kwargs: Any) -> httpx.Response:
        """
        Send one request to the store.

        Retry strategy (idempotent calls only):
        - Exponential backoff: base, 2*base, 4*base, ...
        - Retries on 5xx errors and network failures; 4xx fail immediately
        - Inserts are sent once, a retried insert could post twice
        """
        if table not in TABLES:
            raise StoreAPIError(f"Unknown table: {table}")

        attempts = self.max_retries if retry else 1
        attempt = 0
        async with self._client() as client:
            while True:
                try:
                    with store_latency_histogram.labels(method=method).time():
                        response = await client.request(method, f"/{table}", **kwargs)
                        response.raise_for_status()
                        return response

                except httpx.HTTPStatusError as e:
                    attempt += 1
                    store_failure_counter.labels(method=method).inc()
                    if e.response.status_code < 500 or attempt >= attempts:
                        raise StoreAPIError(f"Ledger store error: {e.response.status_code}") from e

                except httpx.TimeoutException as e:
                    attempt += 1
                    store_failure_counter.labels(method=method).inc()
                    if attempt >= attempts:
                        raise StoreAPIError(f"Ledger store timeout after {self.timeout}s") from e

                except httpx.RequestError as e:
                    attempt += 1
                    store_failure_counter.labels(method=method).inc()
                    if attempt >= attempts:
                        raise StoreAPIError(f"Ledger store unreachable: {e}") from e

                backoff = self.backoff_base * (2 ** (attempt - 1))
                logging.warning(
                    f"Retrying {method} /{table} in {backoff}s",
                    extra={"table": table, "attempt": attempt},
                )
                await asyncio.sleep(backoff)

    async def insert(self, table: str, row: Row) -> Row:
        payload = {k: v for k, v in row.items() if not (k == "id" and v is None)}
        response = await self._send(
            "POST",
            table,
            retry=False,
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        try:
            data = response.json()
        except ValueError as e:
            raise StoreAPIError(f"Invalid insert response from store: {e}") from e

        # PostgREST returns a one-element list for single inserts
        if isinstance(data, list):
            data = data[0] if data else {}
        return data

    async def update(self, table: str, row_id: str, changes: Row) -> None:
        await self._send("PATCH", table, retry=True, params={"id": f"eq.{row_id}"}, json=changes)

    async def delete(self, table: str, row_id: str) -> None:
        await self._send("DELETE", table, retry=True, params={"id": f"eq.{row_id}"})

    async def query(self, table: str, **filters: Any) -> List[Row]:
        params = {"select": "*"}
        params.update({column: f"eq.{value}" for column, value in filters.items()})
        response = await self._send("GET", table, retry=True, params=params)
        try:
            return list(response.json())
        except (ValueError, TypeError) as e:
            raise StoreAPIError(f"Invalid query response from store: {e}") from e
