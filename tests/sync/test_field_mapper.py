"""Tests for raw source payload mapping."""

from shelfsync.sync.field_mapper import ContentRecord, as_content_records, source_to_fields
from shelfsync.sync.values import NumberValue, StringListValue, TextValue


def test_from_raw_maps_source_keys():
    record = ContentRecord.from_raw({"subjectId": "B1", "title": "X", "myRating": 5}, "books")

    assert record.subject_id == "B1"
    assert record.category == "books"
    assert record.get("title") == TextValue("X")
    assert record.get("my_rating") == NumberValue(5)
    assert record.get("subject_id") == TextValue("B1")


def test_numeric_subject_id_is_stringified():
    record = ContentRecord.from_raw({"subjectId": 1234567, "title": "X"}, "movies")
    assert record.subject_id == "1234567"


def test_missing_subject_id():
    record = ContentRecord.from_raw({"title": "X"}, "books")
    assert record.subject_id == ""
    assert not record.has("subject_id")


def test_unknown_and_null_values_dropped():
    values = source_to_fields({"title": "X", "subtitle": None, "internalScore": 3})
    assert values == {"title": TextValue("X")}


def test_snake_case_keys_and_aliases():
    values = source_to_fields({"my_status": "读过", "genres": ["剧情", "爱情"], "coverUrl": "https://img"})
    assert values["my_status"] == TextValue("读过")
    assert values["genre"] == StringListValue(("剧情", "爱情"))
    assert values["cover_image"] == TextValue("https://img")


def test_nested_douban_rating():
    values = source_to_fields({"rating": {"average": 8.7}})
    assert values["douban_rating"] == NumberValue(8.7)


def test_as_content_records_accepts_both_shapes():
    ready = ContentRecord(subject_id="B2", category="books")
    records = as_content_records([{"subjectId": "B1"}, ready, "junk"], "books")
    assert [r.subject_id for r in records] == ["B1", "B2"]
