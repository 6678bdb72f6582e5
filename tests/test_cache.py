"""Tests for the TTL cache."""

import pytest

from shelfsync.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_get_returns_value_until_expiry():
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    cache.set("k", "v")

    clock.now += 59
    assert cache.get("k") == "v"

    clock.now += 1
    assert cache.get("k") is None
    assert "k" not in cache


def test_per_entry_ttl_override():
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    cache.set("short", 1, ttl_seconds=5)
    cache.set("long", 2)

    clock.now += 10
    assert cache.get("short", "gone") == "gone"
    assert cache.get("long") == 2
    assert len(cache) == 1


def test_delete_and_clear():
    cache = TTLCache(60)
    cache.set(("user", "app:tbl"), {"a": 1})
    cache.set("other", 1)

    assert cache.delete(("user", "app:tbl")) is True
    assert cache.delete(("user", "app:tbl")) is False

    cache.clear()
    assert len(cache) == 0


def test_rejects_non_positive_ttl():
    with pytest.raises(ValueError):
        TTLCache(0)


def test_writes_purge_entries_nobody_reads_again():
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    for i in range(1000):
        cache.set(f"run-{i}", i)

    clock.now += 61
    cache.set("fresh", 1)

    assert len(cache._entries) == 1
    assert cache.get("fresh") == 1


def test_purge_keeps_live_entries():
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    cache.set("old", 1, ttl_seconds=10)
    cache.set("long", 2, ttl_seconds=600)

    clock.now += 61
    cache.set("new", 3)

    assert set(cache._entries) == {"long", "new"}
