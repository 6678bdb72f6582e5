"""Fields API - column management for a Bitable table."""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from ..schemas.destination import Column, Credentials, DestinationTable
from .client import table_path

if TYPE_CHECKING:
    from .client import BitableClient

LIST_PAGE_SIZE = 100


class FieldsAPI:
    """Fields API for Bitable.

    Usage:
        async with BitableClient() as bitable:
            columns = await bitable.fields.list(credentials, table)
            column = await bitable.fields.create(credentials, table, {"field_name": "书名", "type": 1})
            await bitable.fields.update(credentials, table, column.field_id, {...})
    """

    def __init__(self, client: "BitableClient"):
        self._client = client

    async def list(self, credentials: Credentials, table: DestinationTable) -> list[Column]:
        """All columns of the table, following pagination."""
        columns: list[Column] = []
        page_token: str | None = None
        while True:
            params: dict[str, Any] = {"page_size": LIST_PAGE_SIZE}
            if page_token:
                params["page_token"] = page_token
            data = await self._client._get(credentials, f"{table_path(table)}/fields", **params)
            columns.extend(Column.from_api(item) for item in data.get("items") or [])

            next_token = data.get("page_token")
            if not data.get("has_more") or not next_token or next_token == page_token:
                return columns
            page_token = next_token

    async def create(
        self, credentials: Credentials, table: DestinationTable, payload: dict[str, Any]
    ) -> Column:
        """Create a column.

        Args:
            payload: ``field_name``, ``type`` and optional ``ui_type``,
                ``property`` and ``description``.
        """
        data = await self._client._post(credentials, f"{table_path(table)}/fields", payload)
        return Column.from_api(data["field"])

    async def update(
        self,
        credentials: Credentials,
        table: DestinationTable,
        field_id: str,
        payload: dict[str, Any],
    ) -> Column:
        data = await self._client._put(credentials, f"{table_path(table)}/fields/{field_id}", payload)
        return Column.from_api(data["field"])
