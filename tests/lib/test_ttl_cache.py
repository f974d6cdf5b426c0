"""Tests for the bounded TTL cache."""

import pytest

from lib.ttl_cache import TTLCache


class Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_get_returns_value_until_ttl_elapses() -> None:
    clock = Clock()
    cache = TTLCache(ttl_seconds=300, max_entries=10, clock=clock)
    cache.set("call:42", "block")

    clock.now = 299.0
    assert cache.get("call:42") == "block"

    clock.now = 301.0
    assert cache.get("call:42") is None
    assert "call:42" not in cache


def test_reads_do_not_extend_expiry() -> None:
    clock = Clock()
    cache = TTLCache(ttl_seconds=10, max_entries=10, clock=clock)
    cache.set("company:7", "block")
    clock.now = 9.0
    assert cache.get("company:7") == "block"
    clock.now = 11.0
    assert cache.get("company:7") is None


def test_inserting_past_capacity_evicts_oldest_inserted() -> None:
    cache = TTLCache(ttl_seconds=300, max_entries=100, clock=Clock())
    for i in range(100):
        cache.set(f"call:{i}", f"value {i}")
    # reading the oldest entry must not protect it from eviction
    assert cache.get("call:0") == "value 0"

    cache.set("call:100", "value 100")

    assert len(cache) == 100
    assert cache.get("call:0") is None
    assert cache.get("call:1") == "value 1"
    assert cache.get("call:100") == "value 100"


def test_overwriting_a_key_does_not_evict() -> None:
    cache = TTLCache(ttl_seconds=300, max_entries=2, clock=Clock())
    cache.set("a", "1")
    cache.set("b", "2")
    cache.set("a", "3")

    assert len(cache) == 2
    assert cache.get("a") == "3"
    assert cache.get("b") == "2"


def test_overwrite_refreshes_expiry() -> None:
    clock = Clock()
    cache = TTLCache(ttl_seconds=10, max_entries=5, clock=clock)
    cache.set("a", "old")
    clock.now = 8.0
    cache.set("a", "new")
    clock.now = 15.0
    assert cache.get("a") == "new"


def test_clear_empties_the_cache() -> None:
    cache = TTLCache(ttl_seconds=10, max_entries=5, clock=Clock())
    cache.set("a", "1")
    cache.clear()
    assert len(cache) == 0


def test_rejects_non_positive_capacity() -> None:
    with pytest.raises(ValueError):
        TTLCache(max_entries=0)
