"""Records API - row reads and batched writes for a Bitable table."""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from ..schemas.destination import Credentials, DestinationRecord, DestinationTable, RecordPage
from .client import table_path

if TYPE_CHECKING:
    from .client import BitableClient


def _records_from(data: dict[str, Any]) -> list[DestinationRecord]:
    return [
        DestinationRecord(record_id=item["record_id"], fields=item.get("fields") or {})
        for item in data.get("records") or data.get("items") or []
    ]


class RecordsAPI:
    """Records API for Bitable.

    Usage:
        async with BitableClient() as bitable:
            page = await bitable.records.list(credentials, table, page_size=500)
            created = await bitable.records.batch_create(credentials, table, [{"fld...": "X"}])
            await bitable.records.delete(credentials, table, created[0].record_id)
    """

    def __init__(self, client: "BitableClient"):
        self._client = client

    async def list(
        self,
        credentials: Credentials,
        table: DestinationTable,
        page_size: int = 500,
        page_token: str | None = None,
    ) -> RecordPage:
        """One page of records.

        Returns:
            RecordPage with ``has_more`` and the ``page_token`` of the next page.
        """
        params: dict[str, Any] = {"page_size": page_size}
        if page_token:
            params["page_token"] = page_token
        data = await self._client._get(credentials, f"{table_path(table)}/records", **params)
        return RecordPage(
            records=_records_from(data),
            has_more=bool(data.get("has_more")),
            page_token=data.get("page_token") or None,
            total=data.get("total"),
        )

    async def batch_create(
        self, credentials: Credentials, table: DestinationTable, records: list[dict[str, Any]]
    ) -> list[DestinationRecord]:
        """Create records; ``records`` are column id -> value maps."""
        body = {"records": [{"fields": fields} for fields in records]}
        data = await self._client._post(credentials, f"{table_path(table)}/records/batch_create", body)
        return _records_from(data)

    async def batch_update(
        self, credentials: Credentials, table: DestinationTable, updates: list[DestinationRecord]
    ) -> list[DestinationRecord]:
        body = {"records": [{"record_id": u.record_id, "fields": u.fields} for u in updates]}
        data = await self._client._post(credentials, f"{table_path(table)}/records/batch_update", body)
        return _records_from(data)

    async def delete(self, credentials: Credentials, table: DestinationTable, record_id: str) -> None:
        await self._client._delete(credentials, f"{table_path(table)}/records/{record_id}")
