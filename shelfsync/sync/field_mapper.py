"""Mapping between raw content-source payloads and abstract field keys."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .registry import SUBJECT_ID_KEY
from .values import FieldValue, TextValue, coerce, format_number

# Content source field name -> abstract field key
SOURCE_FIELD_MAP: dict[str, str] = {
    "subjectId": "subject_id",
    "title": "title",
    "subtitle": "subtitle",
    "originalTitle": "original_title",
    "author": "author",
    "translator": "translator",
    "publisher": "publisher",
    "publishDate": "publish_date",
    "doubanRating": "douban_rating",
    "myRating": "my_rating",
    "myTags": "my_tags",
    "myStatus": "my_status",
    "myComment": "my_comment",
    "summary": "summary",
    "coverImage": "cover_image",
    "coverUrl": "cover_image",
    "markDate": "mark_date",
    "genre": "genre",
    "genres": "genre",
    "duration": "duration",
    "releaseDate": "release_date",
    "cast": "cast",
    "director": "director",
    "writer": "writer",
    "country": "country",
    "language": "language",
    "episodeDuration": "episode_duration",
    "episodeCount": "episode_count",
    "firstAirDate": "first_air_date",
}

# Abstract field key -> dotted path used when the flat source key is absent
NESTED_SOURCE_PATHS: dict[str, str] = {
    "douban_rating": "rating.average",
}

FIELD_KEYS: frozenset[str] = frozenset(SOURCE_FIELD_MAP.values())


def _extract_nested(data: Mapping[str, Any], path: str) -> Any:
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def _subject_id_text(raw: Any) -> str:
    if raw is None or isinstance(raw, bool):
        return ""
    if isinstance(raw, (int, float)):
        return format_number(raw)
    return str(raw).strip()


def source_to_fields(raw: Mapping[str, Any]) -> dict[str, FieldValue]:
    """Convert a raw source dict into field-key -> typed value.

    Keys may be source names (``subjectId``) or field keys (``subject_id``);
    unknown keys and None values are dropped.
    """
    result: dict[str, FieldValue] = {}
    for key, raw_value in raw.items():
        field_key = SOURCE_FIELD_MAP.get(key)
        if field_key is None and key in FIELD_KEYS:
            field_key = key
        if field_key is None or field_key in result:
            continue
        value = coerce(raw_value)
        if value is not None:
            result[field_key] = value

    for field_key, path in NESTED_SOURCE_PATHS.items():
        if field_key in result:
            continue
        value = coerce(_extract_nested(raw, path))
        if value is not None:
            result[field_key] = value

    return result


@dataclass(frozen=True)
class ContentRecord:
    """One item from the content source. Never mutated by the engine."""

    subject_id: str
    category: str
    values: Mapping[str, FieldValue] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], category: str) -> "ContentRecord":
        raw_subject = raw.get("subjectId", raw.get(SUBJECT_ID_KEY))
        subject_id = _subject_id_text(raw_subject)
        values = source_to_fields(raw)
        if subject_id:
            values[SUBJECT_ID_KEY] = TextValue(subject_id)
        else:
            values.pop(SUBJECT_ID_KEY, None)
        return cls(subject_id=subject_id, category=category, values=values)

    def get(self, field_key: str) -> FieldValue | None:
        return self.values.get(field_key)

    def has(self, field_key: str) -> bool:
        return field_key in self.values


def as_content_records(items: list[Any], category: str) -> list[ContentRecord]:
    """Accept raw dicts or ready ContentRecords from a content source."""
    records: list[ContentRecord] = []
    for item in items:
        if isinstance(item, ContentRecord):
            records.append(item)
        elif isinstance(item, Mapping):
            records.append(ContentRecord.from_raw(item, category))
    return records
