"""Destination-side schemas (Bitable tables, columns and records)."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class Credentials(BaseModel):
    app_id: str
    app_secret: str


class DestinationTable(BaseModel):
    app_token: str
    table_id: str

    model_config = {"frozen": True}

    @property
    def key(self) -> str:
        return f"{self.app_token}:{self.table_id}"


class Column(BaseModel):
    field_id: str
    field_name: str
    type: int
    ui_type: str | None = None
    property: dict[str, Any] | None = None
    is_primary: bool = False
    description: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Column":
        description = data.get("description")
        if isinstance(description, dict):
            description = description.get("text")
        return cls(
            field_id=data["field_id"],
            field_name=data.get("field_name", ""),
            type=int(data.get("type", 1)),
            ui_type=data.get("ui_type"),
            property=data.get("property") or None,
            is_primary=bool(data.get("is_primary", False)),
            description=description if isinstance(description, str) else None,
        )


class DestinationRecord(BaseModel):
    record_id: str
    fields: dict[str, Any] = {}


class RecordPage(BaseModel):
    records: list[DestinationRecord] = []
    has_more: bool = False
    page_token: str | None = None
    total: int | None = None
