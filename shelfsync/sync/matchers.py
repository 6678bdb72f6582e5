"""Column matchers: find the live column that satisfies a field template.

``ExactNameMatcher`` is the canonical strategy. ``ScoredMatcher`` is the
legacy confidence-scored matcher, kept for tables set up before exact naming
was enforced. Exactly one is active, chosen by ``settings.field_matcher``.
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

from rapidfuzz.distance import Levenshtein

from ..errors import ConfigurationError
from ..schemas.destination import Column
from ..schemas.fields import FieldTemplate, FieldType

log = logging.getLogger(__name__)


class FieldMatcher(Protocol):
    name: str

    def match(self, template: FieldTemplate, columns: list[Column]) -> Column | None:
        ...


class ExactNameMatcher:
    """Case-sensitive exact match on the column name."""

    name = "exact"

    def match(self, template: FieldTemplate, columns: list[Column]) -> Column | None:
        for column in columns:
            if column.field_name == template.name:
                return column
        return None


_SEPARATORS = re.compile(r"[_\-\s]+")
_STOPWORDS = {"the", "and", "or", "of", "in", "at", "to", "for"}

_COMPATIBLE_TYPES: dict[int, set[int]] = {
    FieldType.TEXT: {FieldType.TEXT, FieldType.URL, FieldType.SINGLE_SELECT},
    FieldType.URL: {FieldType.URL, FieldType.TEXT},
    FieldType.SINGLE_SELECT: {FieldType.SINGLE_SELECT, FieldType.MULTI_SELECT, FieldType.TEXT},
    FieldType.NUMBER: {FieldType.NUMBER},
    FieldType.DATETIME: {FieldType.DATETIME},
}


def normalize_name(name: str) -> str:
    return _SEPARATORS.sub("", name.lower()).strip()


def extract_keywords(text: str) -> set[str]:
    return {
        word
        for word in _SEPARATORS.split(text.lower())
        if len(word) > 2 and word not in _STOPWORDS
    }


def keyword_overlap(a: set[str], b: set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / min(len(a), len(b))


def string_similarity(a: str, b: str) -> float:
    if not a and not b:
        return 1.0
    return Levenshtein.normalized_similarity(a, b)


def types_compatible(template_type: int, column_type: int) -> bool:
    return column_type in _COMPATIBLE_TYPES.get(template_type, {template_type})


class ScoredMatcher:
    """Legacy heuristic matcher.

    Weights: name 0.4 (exact normalized match or edit-distance similarity),
    keyword overlap 0.25, type compatibility 0.2, description similarity 0.15.
    """

    name = "scored"

    def __init__(self, accept_threshold: float = 0.8, candidate_threshold: float = 0.3):
        self.accept_threshold = accept_threshold
        self.candidate_threshold = candidate_threshold

    def score(self, template: FieldTemplate, column: Column) -> float:
        column_name = normalize_name(column.field_name)
        name_score = max(
            1.0 if normalize_name(candidate) == column_name
            else string_similarity(normalize_name(candidate), column_name)
            for candidate in (template.key, template.name)
        )
        confidence = name_score * 0.4

        template_keywords = extract_keywords(template.key) | extract_keywords(template.name)
        confidence += keyword_overlap(template_keywords, extract_keywords(column.field_name)) * 0.25

        if types_compatible(template.type, column.type):
            confidence += 0.2

        if column.description and template.description:
            confidence += string_similarity(template.description.lower(), column.description.lower()) * 0.15

        return min(confidence, 1.0)

    def candidates(self, template: FieldTemplate, columns: list[Column]) -> list[tuple[Column, float]]:
        scored = [(column, self.score(template, column)) for column in columns]
        kept = [(c, s) for c, s in scored if s >= self.candidate_threshold]
        kept.sort(key=lambda item: item[1], reverse=True)
        return kept

    def match(self, template: FieldTemplate, columns: list[Column]) -> Column | None:
        candidates = self.candidates(template, columns)
        if not candidates:
            return None
        best, confidence = candidates[0]
        if confidence < self.accept_threshold:
            log.debug(
                "No confident match for %s; best was %r at %.2f",
                template.key, best.field_name, confidence,
            )
            return None
        return best


def build_matcher(name: str) -> FieldMatcher:
    if name == ExactNameMatcher.name:
        return ExactNameMatcher()
    if name == ScoredMatcher.name:
        return ScoredMatcher()
    raise ConfigurationError(f"Unknown field matcher: {name!r} (expected 'exact' or 'scored')")
