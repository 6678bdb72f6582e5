"""Change classification: content records vs. the indexed destination."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Any

from ..schemas.binding import FieldBinding
from ..schemas.destination import DestinationRecord
from ..schemas.fields import FieldTemplate, FieldType
from . import registry
from .field_mapper import ContentRecord
from .hashing import content_hash, normalize_value
from .registry import STATUS_KEY, SUBJECT_ID_KEY
from .values import (
    FieldValue,
    NumberValue,
    TextValue,
    as_text,
    decode,
    encode,
    format_number,
    to_column_value,
)

log = logging.getLogger(__name__)


@dataclass
class RecordUpdate:
    record: ContentRecord
    existing: DestinationRecord
    fields: dict[str, Any]


@dataclass
class ChangeSet:
    to_create: list[ContentRecord] = field(default_factory=list)
    to_update: list[RecordUpdate] = field(default_factory=list)
    unchanged: list[ContentRecord] = field(default_factory=list)
    delete_candidates: list[DestinationRecord] = field(default_factory=list)
    skipped: list[ContentRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.to_create) + len(self.to_update) + len(self.unchanged) + len(self.skipped)


def column_types(binding: FieldBinding, category: str) -> dict[str, int]:
    """Field type per bound key; keys without a template are treated as text."""
    types: dict[str, int] = {}
    for key in binding.bound_keys():
        template = registry.template_for(category, key)
        types[key] = int(template.type) if template else int(FieldType.TEXT)
    return types


def source_values(record: ContentRecord, types: dict[str, int]) -> dict[str, FieldValue | None]:
    return {key: to_column_value(record.get(key), field_type) for key, field_type in types.items()}


def destination_values(
    existing: DestinationRecord, binding: FieldBinding, types: dict[str, int]
) -> dict[str, FieldValue | None]:
    return {
        key: decode(existing.fields.get(binding.fields[key]), field_type)
        for key, field_type in types.items()
    }


def source_hash(record: ContentRecord, binding: FieldBinding, types: dict[str, int]) -> str:
    return content_hash(source_values(record, types), types)


def destination_hash(existing: DestinationRecord, binding: FieldBinding, types: dict[str, int]) -> str:
    return content_hash(destination_values(existing, binding, types), types)


def create_payload(record: ContentRecord, binding: FieldBinding, types: dict[str, int]) -> dict[str, Any]:
    """Column id -> encoded value for every bound key the record carries."""
    payload: dict[str, Any] = {}
    for key, field_type in types.items():
        if not record.has(key):
            continue
        encoded = encode(record.get(key), field_type)
        if encoded is not None:
            payload[binding.fields[key]] = encoded
    return payload


def update_payload(
    record: ContentRecord,
    existing: DestinationRecord,
    binding: FieldBinding,
    types: dict[str, int],
    full_sync: bool = False,
) -> dict[str, Any]:
    """Columns whose value differs from the destination, never the subject column.

    A value the source no longer carries is sent as None to clear the cell.
    With ``full_sync`` every bound value the record carries is resent.
    """
    desired = source_values(record, types)
    current = destination_values(existing, binding, types)
    payload: dict[str, Any] = {}
    for key, field_type in types.items():
        if key == SUBJECT_ID_KEY:
            continue
        differs = normalize_value(desired[key]) != normalize_value(current[key])
        if differs or (full_sync and desired[key] is not None):
            payload[binding.fields[key]] = encode(desired[key], field_type)
    return payload


def _numeric_bounds(template: FieldTemplate) -> tuple[float | None, float | None]:
    prop = template.property or {}
    bounds = prop.get("range") if isinstance(prop.get("range"), dict) else prop
    return bounds.get("min"), bounds.get("max")


def validate_record(
    record: ContentRecord, types: dict[str, int], category: str
) -> tuple[ContentRecord, list[str]]:
    """Drop values the bound columns would reject.

    Numbers outside a template's min/max (an unrated ``0`` for a 1-5 star
    rating) and status names the category does not offer are removed, with
    one warning each. The record is returned unchanged when nothing is dropped.
    """
    dropped: dict[str, str] = {}
    for key, field_type in types.items():
        template = registry.template_for(category, key)
        if template is None:
            continue
        value = to_column_value(record.get(key), field_type)
        if value is None:
            continue

        if isinstance(value, NumberValue):
            low, high = _numeric_bounds(template)
            if (low is not None and value.value < low) or (high is not None and value.value > high):
                dropped[key] = f"{format_number(value.value)} is outside {low}-{high}"
        elif isinstance(value, TextValue) and key == STATUS_KEY:
            allowed = [option.name for option in registry.status_options_for(category)]
            if value.value not in allowed:
                dropped[key] = f"{value.value!r} is not one of {', '.join(allowed)}"

    if not dropped:
        return record, []
    values = {k: v for k, v in record.values.items() if k not in dropped}
    warnings = [
        f"dropped {key} for subject {record.subject_id}: {reason}" for key, reason in dropped.items()
    ]
    return replace(record, values=values), warnings


def subject_id_of(existing: DestinationRecord, binding: FieldBinding) -> str:
    column_id = binding.column_for(SUBJECT_ID_KEY)
    if not column_id:
        return ""
    value = decode(existing.fields.get(column_id), FieldType.TEXT)
    return as_text(value).strip() if value is not None else ""


def build_index(
    records: Iterable[DestinationRecord], binding: FieldBinding
) -> tuple[dict[str, DestinationRecord], list[str]]:
    """Index destination records by subject id. Empty subject cells are skipped."""
    index: dict[str, DestinationRecord] = {}
    warnings: list[str] = []
    for existing in records:
        subject_id = subject_id_of(existing, binding)
        if not subject_id:
            continue
        if subject_id in index:
            warnings.append(
                f"duplicate destination record {existing.record_id} for subject {subject_id}; "
                f"keeping {index[subject_id].record_id}"
            )
            continue
        index[subject_id] = existing
    return index, warnings


def classify_changes(
    records: Iterable[ContentRecord],
    index: dict[str, DestinationRecord],
    binding: FieldBinding,
    category: str,
    full_sync: bool = False,
) -> ChangeSet:
    """Partition records into create / update / unchanged / skipped.

    Indexed records never seen among the content records become delete
    candidates.
    """
    types = column_types(binding, category)
    changes = ChangeSet()
    seen: set[str] = set()

    for record in records:
        subject_id = record.subject_id.strip()
        if not subject_id:
            changes.skipped.append(record)
            changes.warnings.append("skipped a record without a subject id")
            continue
        # Repeats count as skipped, so create + update + unchanged covers
        # distinct subject ids only.
        if subject_id in seen:
            changes.skipped.append(record)
            changes.warnings.append(f"skipped duplicate content record for subject {subject_id}")
            continue
        seen.add(subject_id)

        record, dropped = validate_record(record, types, category)
        changes.warnings.extend(dropped)

        existing = index.get(subject_id)
        if existing is None:
            changes.to_create.append(record)
            continue

        if not full_sync and source_hash(record, binding, types) == destination_hash(existing, binding, types):
            changes.unchanged.append(record)
            continue

        fields = update_payload(record, existing, binding, types, full_sync=full_sync)
        # Under full sync, a record whose bound values are empty on both sides
        # has nothing to resend and stays unchanged.
        if not fields:
            changes.unchanged.append(record)
            continue
        changes.to_update.append(RecordUpdate(record=record, existing=existing, fields=fields))

    changes.delete_candidates = [
        existing for subject_id, existing in index.items() if subject_id not in seen
    ]
    for warning in changes.warnings:
        log.warning(warning)
    log.info(
        "Classified %d records: %d create, %d update, %d unchanged, %d skipped, %d delete candidates",
        changes.total, len(changes.to_create), len(changes.to_update),
        len(changes.unchanged), len(changes.skipped), len(changes.delete_candidates),
    )
    return changes
