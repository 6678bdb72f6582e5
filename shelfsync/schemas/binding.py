"""Field binding schema: abstract field key -> destination column id."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

SCHEMA_VERSION = "2.0"
BINDING_STRATEGY = "exact_match_auto_create"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FieldBinding(BaseModel):
    fields: dict[str, str]
    category: str
    schema_version: str = SCHEMA_VERSION
    strategy: str = BINDING_STRATEGY
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def column_for(self, field_key: str) -> str | None:
        return self.fields.get(field_key)

    def bound_keys(self) -> list[str]:
        """Field keys that take part in hashing and payloads (metadata excluded)."""
        return sorted(k for k in self.fields if not k.startswith("_"))

    def to_storage(self) -> dict:
        return self.model_dump(mode="json")

    @classmethod
    def from_storage(cls, data: dict) -> "FieldBinding":
        return cls.model_validate(data)
