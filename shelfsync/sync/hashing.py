"""Content hashing for change detection.

A record's hash covers its bound field values only. Both sides of a
comparison go through the same normalization, so values that differ only by
whitespace, case or null-vs-missing hash identically.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Mapping
from typing import Any

from .values import (
    BoolValue,
    DateValue,
    NumberValue,
    StringListValue,
    TextValue,
    format_number,
)

PAIR_SEPARATOR = "|"
LIST_JOINER = ","


def sha256_hex_text(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8", "surrogatepass")).hexdigest()


def normalize_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, TextValue):
        return value.value.strip().lower()
    if isinstance(value, NumberValue):
        return format_number(value.value)
    if isinstance(value, BoolValue):
        return "true" if value.value else "false"
    if isinstance(value, DateValue):
        return str(value.epoch_ms)
    if isinstance(value, StringListValue):
        return LIST_JOINER.join(sorted(normalize_value(TextValue(i)) for i in value.items))

    # Plain Python values, for callers hashing unconverted data.
    if isinstance(value, str):
        return value.strip().lower()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return format_number(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return LIST_JOINER.join(sorted(normalize_value(v) for v in value))
    return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)


def content_hash(values: Mapping[str, Any], keys: Iterable[str]) -> str:
    """Digest ``key:normalized`` pairs over ``keys`` in sorted order.

    Metadata keys (leading underscore) never take part.
    """
    hashed_keys = sorted({k for k in keys if not k.startswith("_")})
    payload = PAIR_SEPARATOR.join(f"{k}:{normalize_value(values.get(k))}" for k in hashed_keys)
    return sha256_hex_text(payload)
