"""Field values as a closed tagged union.

Source records carry loosely typed attributes. They are coerced into one of
five value types at the boundary; hashing and payload building only ever see
these types. Conversion into (and back out of) the destination's value model
depends on the bound column's field type.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Union

from ..schemas.fields import FieldType

LIST_SEPARATOR = " / "

_TRUTHY = {"true", "1", "yes", "y", "on"}
_FALSY = {"false", "0", "no", "n", "off"}


@dataclass(frozen=True)
class TextValue:
    value: str


@dataclass(frozen=True)
class NumberValue:
    value: float


@dataclass(frozen=True)
class BoolValue:
    value: bool


@dataclass(frozen=True)
class DateValue:
    value: datetime  # always timezone-aware UTC

    @property
    def epoch_ms(self) -> int:
        return int(round(self.value.timestamp() * 1000))


@dataclass(frozen=True)
class StringListValue:
    items: tuple[str, ...]


FieldValue = Union[TextValue, NumberValue, BoolValue, DateValue, StringListValue]

_VALUE_TYPES = (TextValue, NumberValue, BoolValue, DateValue, StringListValue)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(text: str) -> datetime | None:
    """Parse ``YYYY-MM-DD`` or an ISO-8601 timestamp; naive values are UTC."""
    text = text.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return _as_utc(datetime.fromisoformat(text))
    except ValueError:
        pass
    try:
        d = date.fromisoformat(text[:10])
    except ValueError:
        return None
    return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)


def _from_epoch(number: float) -> datetime:
    # Bitable stores milliseconds; small values are taken as seconds.
    seconds = number / 1000 if abs(number) >= 1e11 else number
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def format_number(number: float) -> str:
    if float(number).is_integer():
        return str(int(number))
    return repr(float(number))


def coerce(raw: Any) -> FieldValue | None:
    """Coerce a loosely typed source value into the tagged union."""
    if raw is None:
        return None
    if isinstance(raw, _VALUE_TYPES):
        return raw
    if isinstance(raw, bool):
        return BoolValue(raw)
    if isinstance(raw, (int, float)):
        if isinstance(raw, float) and (math.isnan(raw) or math.isinf(raw)):
            return None
        return NumberValue(raw)
    if isinstance(raw, str):
        return TextValue(raw)
    if isinstance(raw, datetime):
        return DateValue(_as_utc(raw))
    if isinstance(raw, date):
        return DateValue(datetime(raw.year, raw.month, raw.day, tzinfo=timezone.utc))
    if isinstance(raw, (list, tuple, set, frozenset)):
        items: list[str] = []
        for item in raw:
            value = coerce(item)
            if value is None:
                continue
            text = as_text(value)
            if text.strip():
                items.append(text.strip())
        return StringListValue(tuple(items))
    if isinstance(raw, dict):
        return TextValue(json.dumps(raw, ensure_ascii=False, sort_keys=True, default=str))
    return TextValue(str(raw))


def as_text(value: FieldValue) -> str:
    if isinstance(value, TextValue):
        return value.value
    if isinstance(value, NumberValue):
        return format_number(value.value)
    if isinstance(value, BoolValue):
        return "true" if value.value else "false"
    if isinstance(value, DateValue):
        if value.value.hour == value.value.minute == value.value.second == 0:
            return value.value.date().isoformat()
        return value.value.isoformat()
    return LIST_SEPARATOR.join(value.items)


def _text_or_none(text: str) -> TextValue | None:
    text = text.strip()
    return TextValue(text) if text else None


def _first_item(value: StringListValue) -> TextValue | None:
    return _text_or_none(value.items[0]) if value.items else None


def to_column_value(value: FieldValue | None, field_type: int) -> FieldValue | None:
    """Convert a value into the shape a column of ``field_type`` holds.

    Values that cannot be represented in the column become None.
    """
    if value is None:
        return None

    if field_type == FieldType.NUMBER:
        if isinstance(value, NumberValue):
            return value
        if isinstance(value, BoolValue):
            return NumberValue(1 if value.value else 0)
        if isinstance(value, TextValue):
            try:
                number = float(value.value.strip())
            except ValueError:
                return None
            if math.isnan(number) or math.isinf(number):
                return None
            return NumberValue(number)
        return None

    if field_type == FieldType.DATETIME:
        if isinstance(value, DateValue):
            return value
        if isinstance(value, NumberValue):
            return DateValue(_from_epoch(value.value))
        if isinstance(value, TextValue):
            parsed = parse_datetime(value.value)
            return DateValue(parsed) if parsed else None
        return None

    if field_type == FieldType.CHECKBOX:
        if isinstance(value, BoolValue):
            return value
        if isinstance(value, NumberValue):
            return BoolValue(bool(value.value))
        if isinstance(value, TextValue):
            normalized = value.value.strip().lower()
            if normalized in _TRUTHY:
                return BoolValue(True)
            if normalized in _FALSY:
                return BoolValue(False)
        return None

    if field_type == FieldType.MULTI_SELECT:
        if isinstance(value, StringListValue):
            return value if value.items else None
        text = as_text(value).strip()
        return StringListValue((text,)) if text else None

    if field_type in (FieldType.SINGLE_SELECT, FieldType.URL):
        if isinstance(value, StringListValue):
            return _first_item(value)
        return _text_or_none(as_text(value))

    # Text and anything unknown.
    return _text_or_none(as_text(value))


def encode(value: FieldValue | None, field_type: int) -> Any:
    """Render a column value as the destination API expects it."""
    value = to_column_value(value, field_type)
    if value is None:
        return None
    if field_type == FieldType.NUMBER:
        number = value.value
        return int(number) if float(number).is_integer() else float(number)
    if field_type == FieldType.DATETIME:
        return value.epoch_ms
    if field_type == FieldType.CHECKBOX:
        return value.value
    if field_type == FieldType.MULTI_SELECT:
        return list(value.items)
    if field_type == FieldType.URL:
        return {"link": value.value, "text": value.value}
    return value.value


def _segments_text(raw: list) -> str:
    parts: list[str] = []
    for segment in raw:
        if isinstance(segment, dict):
            text = segment.get("text") or segment.get("link") or segment.get("name")
            if isinstance(text, str):
                parts.append(text)
        elif isinstance(segment, str):
            parts.append(segment)
        elif isinstance(segment, (int, float)) and not isinstance(segment, bool):
            parts.append(format_number(segment))
    return "".join(parts)


def decode(raw: Any, field_type: int) -> FieldValue | None:
    """Read a destination cell back into the tagged union."""
    if raw is None:
        return None

    if field_type == FieldType.URL:
        if isinstance(raw, dict):
            link = raw.get("link") or raw.get("text")
            return _text_or_none(link) if isinstance(link, str) else None
        if isinstance(raw, list) and raw:
            return decode(raw[0], field_type)
        if isinstance(raw, str):
            return _text_or_none(raw)
        return None

    if field_type == FieldType.MULTI_SELECT:
        if isinstance(raw, list):
            return to_column_value(coerce([r for r in raw if isinstance(r, str)]), field_type)
        if isinstance(raw, str):
            return to_column_value(TextValue(raw), field_type)
        return None

    if isinstance(raw, list):
        return to_column_value(_text_or_none(_segments_text(raw)), field_type)
    if isinstance(raw, dict):
        text = raw.get("text") or raw.get("link")
        return to_column_value(_text_or_none(text), field_type) if isinstance(text, str) else None
    return to_column_value(coerce(raw), field_type)
