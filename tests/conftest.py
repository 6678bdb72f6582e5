"""Shared test fixtures for the shelfsync test suite."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from shelfsync.config import settings
from shelfsync.database import build_engine, build_session_factory, init_db
from shelfsync.schemas.destination import (
    Column,
    Credentials,
    DestinationRecord,
    DestinationTable,
    RecordPage,
)
from shelfsync.schemas.fields import FieldType

SAMPLE_USER_ID = "user_test789"
SAMPLE_APP_ID = "cli_test123"
SAMPLE_APP_TOKEN = "bascnTestApp123"
SAMPLE_TABLE_ID = "tblTestTable456"

CREDENTIALS = Credentials(app_id=SAMPLE_APP_ID, app_secret="secret_abc")
TABLE = DestinationTable(app_token=SAMPLE_APP_TOKEN, table_id=SAMPLE_TABLE_ID)


# ============================================================================
# In-memory destination
# ============================================================================


class FakeDestination:
    """In-memory Bitable table that records every call.

    Text cells are returned as segment lists, the way Bitable does.
    """

    def __init__(self):
        self.columns: dict[str, Column] = {}
        self.rows: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple] = []
        self._next_field = 0
        self._next_record = 0

        # Failure injection
        self.fail_field_names: set[str] = set()
        self.fail_list_records_page: int | None = None
        self.fail_batch_create = False
        self.fail_batch_update = False
        self.fail_delete_ids: set[str] = set()

    # --- setup helpers ---

    def add_column(self, name: str, type: int = FieldType.TEXT, ui_type: str | None = "Text",
                   property: dict | None = None) -> Column:
        self._next_field += 1
        column = Column(
            field_id=f"fld{self._next_field:014d}",
            field_name=name,
            type=int(type),
            ui_type=ui_type,
            property=property,
        )
        self.columns[column.field_id] = column
        return column

    def add_row(self, fields: dict[str, Any]) -> str:
        self._next_record += 1
        record_id = f"rec{self._next_record:010d}"
        self.rows[record_id] = self._stored(fields)
        return record_id

    def column_named(self, name: str) -> Column | None:
        return next((c for c in self.columns.values() if c.field_name == name), None)

    def mutating_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] not in ("list_fields", "list_records")]

    def calls_named(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    def _stored(self, fields: dict[str, Any]) -> dict[str, Any]:
        stored: dict[str, Any] = {}
        for column_id, value in fields.items():
            column = self.columns.get(column_id)
            if value is None:
                continue
            if column is not None and column.type == FieldType.TEXT and isinstance(value, str):
                value = [{"type": "text", "text": value}]
            stored[column_id] = value
        return stored

    # --- DestinationClient ---

    async def list_fields(self, credentials, table) -> list[Column]:
        self.calls.append(("list_fields",))
        return list(self.columns.values())

    async def create_field(self, credentials, table, payload) -> Column:
        self.calls.append(("create_field", payload["field_name"]))
        if payload["field_name"] in self.fail_field_names:
            raise RuntimeError(f"create failed for {payload['field_name']}")
        description = payload.get("description")
        self._next_field += 1
        column = Column(
            field_id=f"fld{self._next_field:014d}",
            field_name=payload["field_name"],
            type=payload["type"],
            ui_type=payload.get("ui_type"),
            property=payload.get("property"),
            description=description.get("text") if isinstance(description, dict) else None,
        )
        self.columns[column.field_id] = column
        return column

    async def update_field(self, credentials, table, field_id, payload) -> Column:
        self.calls.append(("update_field", field_id, payload))
        current = self.columns[field_id]
        if current.field_name in self.fail_field_names:
            raise RuntimeError(f"update failed for {current.field_name}")
        merged = dict(current.property or {})
        merged.update(payload.get("property") or {})
        column = current.model_copy(update={
            "field_name": payload.get("field_name", current.field_name),
            "type": payload.get("type", current.type),
            "ui_type": payload.get("ui_type", current.ui_type),
            "property": merged or None,
        })
        self.columns[field_id] = column
        return column

    async def list_records(self, credentials, table, page_size, page_token=None) -> RecordPage:
        start = int(page_token or 0)
        page_number = start // page_size + 1
        self.calls.append(("list_records", page_number))
        if self.fail_list_records_page == page_number:
            raise RuntimeError("page fetch failed")
        items = list(self.rows.items())[start:start + page_size]
        end = start + len(items)
        has_more = end < len(self.rows)
        return RecordPage(
            records=[DestinationRecord(record_id=rid, fields=dict(f)) for rid, f in items],
            has_more=has_more,
            page_token=str(end) if has_more else None,
            total=len(self.rows),
        )

    async def batch_create_records(self, credentials, table, records) -> list[DestinationRecord]:
        self.calls.append(("batch_create_records", records))
        if self.fail_batch_create:
            raise RuntimeError("batch create failed")
        created = []
        for fields in records:
            record_id = self.add_row(fields)
            created.append(DestinationRecord(record_id=record_id, fields=self.rows[record_id]))
        return created

    async def batch_update_records(self, credentials, table, updates) -> list[DestinationRecord]:
        self.calls.append(("batch_update_records", updates))
        if self.fail_batch_update:
            raise RuntimeError("batch update failed")
        for update in updates:
            row = self.rows[update.record_id]
            for column_id, value in update.fields.items():
                if value is None:
                    row.pop(column_id, None)
            row.update(self._stored(update.fields))
        return [DestinationRecord(record_id=u.record_id, fields=self.rows[u.record_id]) for u in updates]

    async def delete_record(self, credentials, table, record_id) -> None:
        self.calls.append(("delete_record", record_id))
        if record_id in self.fail_delete_ids:
            raise RuntimeError(f"delete failed for {record_id}")
        del self.rows[record_id]


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RecordingProgress:
    def __init__(self):
        self.events = []
        self.completions = []

    async def progress(self, event) -> None:
        self.events.append(event)

    async def complete(self, event) -> None:
        self.completions.append(event)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    """Zero every courtesy delay so tests never wait."""
    for name in (
        "field_operation_delay_seconds",
        "page_delay_seconds",
        "batch_delay_seconds",
        "batch_delay_jitter_seconds",
        "delete_delay_seconds",
        "retry_delay_seconds",
    ):
        monkeypatch.setattr(settings, name, 0.0)
    monkeypatch.setattr(settings, "field_matcher", "exact")
    return settings


@pytest.fixture
def destination() -> FakeDestination:
    return FakeDestination()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def progress() -> RecordingProgress:
    return RecordingProgress()


@pytest_asyncio.fixture
async def session_factory():
    engine = build_engine("sqlite+aiosqlite:///:memory:", echo=False)
    await init_db(engine)

    yield build_session_factory(engine)

    await engine.dispose()


@pytest.fixture
def mock_response():
    """Factory fixture to create mock HTTP responses."""
    def _create_response(data: dict[str, Any], status_code: int = 200):
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = data
        response.raise_for_status = MagicMock()
        if status_code >= 400:
            from httpx import HTTPStatusError
            response.raise_for_status.side_effect = HTTPStatusError(
                f"HTTP {status_code}", request=MagicMock(), response=response
            )
        return response
    return _create_response
