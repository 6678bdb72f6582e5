"""Tests for content hashing."""

import hashlib

from shelfsync.sync.hashing import content_hash, normalize_value
from shelfsync.sync.values import BoolValue, NumberValue, StringListValue, TextValue, coerce


def test_known_digest():
    expected = hashlib.sha256("rating:5|title:x".encode()).hexdigest()
    values = {"title": TextValue("X"), "rating": NumberValue(5.0)}
    assert content_hash(values, ["title", "rating"]) == expected


def test_key_order_does_not_matter():
    a = {"title": TextValue("X"), "author": TextValue("Y")}
    b = {"author": TextValue("Y"), "title": TextValue("X")}
    assert content_hash(a, ["title", "author"]) == content_hash(b, ["author", "title"])


def test_whitespace_and_case_are_ignored():
    assert content_hash({"t": TextValue("  Hello ")}, ["t"]) == content_hash({"t": TextValue("hello")}, ["t"])


def test_null_equals_missing():
    assert content_hash({"t": None}, ["t"]) == content_hash({}, ["t"])


def test_metadata_keys_excluded():
    values = {"t": TextValue("x"), "_synced_at": TextValue("now")}
    assert content_hash(values, ["t", "_synced_at"]) == content_hash(values, ["t"])


def test_list_order_is_ignored():
    a = {"cast": StringListValue(("b", "a"))}
    b = {"cast": StringListValue(("a", "b"))}
    assert content_hash(a, ["cast"]) == content_hash(b, ["cast"])


def test_changed_value_changes_hash():
    assert content_hash({"t": TextValue("X")}, ["t"]) != content_hash({"t": TextValue("Y")}, ["t"])


def test_normalize_value():
    assert normalize_value(None) == "null"
    assert normalize_value(NumberValue(5.0)) == "5"
    assert normalize_value(NumberValue(8.5)) == "8.5"
    assert normalize_value(BoolValue(True)) == "true"
    assert normalize_value(coerce("2024-01-02")) == "2024-01-02"
    assert normalize_value({"b": 1, "a": 2}) == '{"a": 2, "b": 1}'
    assert normalize_value(["B", "a"]) == "a,b"
