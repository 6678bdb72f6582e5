"""Field template and field-operation schemas."""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Literal

from pydantic import BaseModel, Field

from .destination import Column


class FieldType(IntEnum):
    """Bitable field type codes used by templates."""

    TEXT = 1
    NUMBER = 2
    SINGLE_SELECT = 3
    MULTI_SELECT = 4
    DATETIME = 5
    CHECKBOX = 7
    URL = 15


class SelectOption(BaseModel):
    name: str
    color: int

    model_config = {"frozen": True}


class FieldTemplate(BaseModel):
    """Desired configuration of one destination column."""

    key: str
    name: str
    type: FieldType
    ui_type: str
    property: dict[str, Any] | None = None
    required: bool = False
    description: str = ""

    model_config = {"frozen": True}

    def to_api_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "field_name": self.name,
            "type": int(self.type),
            "ui_type": self.ui_type,
        }
        if self.property:
            payload["property"] = self.property
        if self.description:
            payload["description"] = {"text": self.description}
        return payload


class ConfigurationChange(BaseModel):
    property: str
    from_value: Any = None
    to_value: Any = None
    severity: Literal["critical", "minor"] = "minor"


class FieldOperationOptions(BaseModel):
    # ensure_correct: create missing columns and correct drifted ones.
    # skip_existing: create missing columns, never touch existing ones.
    strategy: Literal["ensure_correct", "skip_existing"] = "ensure_correct"
    operation_delay: float | None = None


class FieldOperationResult(BaseModel):
    field_key: str
    column: Column
    operation: Literal["created", "updated", "unchanged"]
    changes: list[ConfigurationChange] = []
    warnings: list[str] = []
    processing_time: float = 0.0


class FieldFailure(BaseModel):
    field_key: str
    field_name: str
    error: str


class BatchOperationSummary(BaseModel):
    total: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    total_processing_time: float = 0.0
    average_processing_time: float = 0.0


class BatchFieldOperationResult(BaseModel):
    results: list[FieldOperationResult] = []
    failures: list[FieldFailure] = []
    summary: BatchOperationSummary = Field(default_factory=BatchOperationSummary)

    def column_ids(self) -> dict[str, str]:
        """Resolved field key -> column id for every successful template."""
        return {r.field_key: r.column.field_id for r in self.results}


class FieldMatchAnalysis(BaseModel):
    is_full_match: bool
    differences: list[ConfigurationChange] = []
    match_score: float = 1.0
    recommended_action: Literal["no_action", "update_field", "recreate_field"] = "no_action"
