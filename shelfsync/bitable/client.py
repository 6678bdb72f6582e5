"""Bitable API client - typed wrapper over the Feishu/Lark open API.

Authenticates per call with a tenant access token derived from the
caller's app credentials. Tokens are cached per app id until shortly before
they expire.

Usage:
    async with BitableClient() as bitable:
        columns = await bitable.list_fields(credentials, table)
        page = await bitable.list_records(credentials, table, page_size=500)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TYPE_CHECKING

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..cache import TTLCache
from ..config import settings
from ..errors import BitableAPIError
from ..schemas.destination import Column, Credentials, DestinationRecord, DestinationTable, RecordPage

if TYPE_CHECKING:
    from .fields import FieldsAPI
    from .records import RecordsAPI

log = logging.getLogger(__name__)

TOKEN_ENDPOINT = "/open-apis/auth/v3/tenant_access_token/internal"

# Refresh tokens this many seconds before the server-side expiry.
TOKEN_EXPIRY_MARGIN = 300
DEFAULT_TOKEN_TTL = 7200

# Invalid or expired tenant access token.
TOKEN_INVALID_CODES = frozenset({99991663, 99991664, 99991661})


def table_path(table: DestinationTable) -> str:
    return f"/open-apis/bitable/v1/apps/{table.app_token}/tables/{table.table_id}"


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, BitableAPIError):
        return exc.retryable
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


class BitableClient:
    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        token_cache: TTLCache | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_url = base_url or settings.bitable_base_url
        self.timeout = settings.request_timeout_seconds if timeout is None else timeout
        self.max_retries = settings.max_retries if max_retries is None else max_retries
        self.retry_delay = settings.retry_delay_seconds if retry_delay is None else retry_delay
        self._tokens = token_cache if token_cache is not None else TTLCache(DEFAULT_TOKEN_TTL)
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None
        self._fields: FieldsAPI | None = None
        self._records: RecordsAPI | None = None

    async def __aenter__(self) -> "BitableClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Content-Type": "application/json; charset=utf-8"},
        )

        from .fields import FieldsAPI
        from .records import RecordsAPI

        self._fields = FieldsAPI(self)
        self._records = RecordsAPI(self)
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()

    @property
    def fields(self) -> "FieldsAPI":
        """Table field (column) API."""
        if not self._fields:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        return self._fields

    @property
    def records(self) -> "RecordsAPI":
        """Table record API."""
        if not self._records:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        return self._records

    # --- auth -------------------------------------------------------------

    async def tenant_token(self, credentials: Credentials) -> str:
        """Return a cached tenant access token, fetching a new one if needed."""
        token = self._tokens.get(credentials.app_id)
        if token:
            return token

        resp = await self._client.post(
            TOKEN_ENDPOINT,
            json={"app_id": credentials.app_id, "app_secret": credentials.app_secret},
        )
        resp.raise_for_status()
        body = resp.json()
        if body.get("code", 0) != 0:
            raise BitableAPIError(body.get("code", -1), body.get("msg", ""), resp.status_code)

        token = body["tenant_access_token"]
        expire = body.get("expire") or DEFAULT_TOKEN_TTL
        self._tokens.set(credentials.app_id, token, ttl_seconds=max(expire - TOKEN_EXPIRY_MARGIN, 60))
        log.debug("Fetched tenant access token for app %s", credentials.app_id)
        return token

    def forget_token(self, credentials: Credentials) -> None:
        self._tokens.delete(credentials.app_id)

    # --- transport --------------------------------------------------------

    @staticmethod
    def _unwrap(resp: httpx.Response) -> dict[str, Any]:
        """Return ``data`` from a Bitable envelope or raise."""
        body: Any = None
        try:
            body = resp.json()
        except ValueError:
            pass

        if isinstance(body, dict) and body.get("code", 0) != 0:
            raise BitableAPIError(body["code"], body.get("msg", ""), resp.status_code)
        resp.raise_for_status()
        if not isinstance(body, dict):
            return {}
        return body.get("data") or {}

    async def _call(
        self, token: str, method: str, endpoint: str, json: dict | None, params: dict | None
    ) -> httpx.Response:
        return await self._client.request(
            method,
            endpoint,
            json=json,
            params=params,
            headers={"Authorization": f"Bearer {token}"},
        )

    async def _send(
        self,
        credentials: Credentials,
        method: str,
        endpoint: str,
        json: dict | None,
        params: dict | None,
    ) -> dict[str, Any]:
        """One authenticated call; a rejected tenant token is refreshed once."""
        token = await self.tenant_token(credentials)
        try:
            return self._unwrap(await self._call(token, method, endpoint, json, params))
        except BitableAPIError as e:
            if e.code not in TOKEN_INVALID_CODES:
                raise
            log.info("Tenant token rejected (%s); refreshing", e.code)

        self.forget_token(credentials)
        token = await self.tenant_token(credentials)
        return self._unwrap(await self._call(token, method, endpoint, json, params))

    async def _request(
        self,
        credentials: Credentials,
        method: str,
        endpoint: str,
        *,
        json: dict | None = None,
        params: dict | None = None,
    ) -> dict[str, Any]:
        """Authenticated request with retry on rate limits and server errors."""
        if self._client is None:
            raise RuntimeError("Client not initialized. Use 'async with' context.")

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_delay),
            retry=retry_if_exception(_is_retryable),
            sleep=self._sleep,
            before_sleep=before_sleep_log(log, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._send(credentials, method, endpoint, json, params)

    async def _get(self, credentials: Credentials, endpoint: str, **params) -> dict[str, Any]:
        return await self._request(credentials, "GET", endpoint, params=params or None)

    async def _post(self, credentials: Credentials, endpoint: str, data: dict | None = None) -> dict[str, Any]:
        return await self._request(credentials, "POST", endpoint, json=data)

    async def _put(self, credentials: Credentials, endpoint: str, data: dict | None = None) -> dict[str, Any]:
        return await self._request(credentials, "PUT", endpoint, json=data)

    async def _delete(self, credentials: Credentials, endpoint: str) -> dict[str, Any]:
        return await self._request(credentials, "DELETE", endpoint)

    # --- destination operations ------------------------------------------

    async def list_fields(self, credentials: Credentials, table: DestinationTable) -> list[Column]:
        return await self.fields.list(credentials, table)

    async def create_field(
        self, credentials: Credentials, table: DestinationTable, payload: dict[str, Any]
    ) -> Column:
        return await self.fields.create(credentials, table, payload)

    async def update_field(
        self, credentials: Credentials, table: DestinationTable, field_id: str, payload: dict[str, Any]
    ) -> Column:
        return await self.fields.update(credentials, table, field_id, payload)

    async def list_records(
        self,
        credentials: Credentials,
        table: DestinationTable,
        page_size: int,
        page_token: str | None = None,
    ) -> RecordPage:
        return await self.records.list(credentials, table, page_size=page_size, page_token=page_token)

    async def batch_create_records(
        self, credentials: Credentials, table: DestinationTable, records: list[dict[str, Any]]
    ) -> list[DestinationRecord]:
        return await self.records.batch_create(credentials, table, records)

    async def batch_update_records(
        self, credentials: Credentials, table: DestinationTable, updates: list[DestinationRecord]
    ) -> list[DestinationRecord]:
        return await self.records.batch_update(credentials, table, updates)

    async def delete_record(self, credentials: Credentials, table: DestinationTable, record_id: str) -> None:
        await self.records.delete(credentials, table, record_id)
