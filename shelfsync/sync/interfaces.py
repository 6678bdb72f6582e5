"""Collaborator interfaces the sync subsystem depends on."""

from __future__ import annotations

from typing import Any, Protocol

from ..schemas.destination import Column, Credentials, DestinationRecord, DestinationTable, RecordPage
from ..schemas.sync import CompletionEvent, ProgressEvent


class DestinationClient(Protocol):
    """Destination table operations. Every call authenticates per call."""

    async def list_fields(self, credentials: Credentials, table: DestinationTable) -> list[Column]:
        ...

    async def create_field(
        self, credentials: Credentials, table: DestinationTable, payload: dict[str, Any]
    ) -> Column:
        ...

    async def update_field(
        self,
        credentials: Credentials,
        table: DestinationTable,
        field_id: str,
        payload: dict[str, Any],
    ) -> Column:
        ...

    async def list_records(
        self,
        credentials: Credentials,
        table: DestinationTable,
        page_size: int,
        page_token: str | None = None,
    ) -> RecordPage:
        ...

    async def batch_create_records(
        self, credentials: Credentials, table: DestinationTable, records: list[dict[str, Any]]
    ) -> list[DestinationRecord]:
        ...

    async def batch_update_records(
        self,
        credentials: Credentials,
        table: DestinationTable,
        updates: list[DestinationRecord],
    ) -> list[DestinationRecord]:
        ...

    async def delete_record(self, credentials: Credentials, table: DestinationTable, record_id: str) -> None:
        ...


class ContentSource(Protocol):
    """Produces the content records of one user and category."""

    async def fetch(self, user_id: str, category: str, limit: int | None = None) -> list[Any]:
        ...


class ProgressReporter(Protocol):
    """Best-effort progress channel; failures never fail a run."""

    async def progress(self, event: ProgressEvent) -> None:
        ...

    async def complete(self, event: CompletionEvent) -> None:
        ...
