"""Tests for OfflineCache (TTL, corruption, store failures)."""

from __future__ import annotations

import json

import pytest

from spotcheck.resilience.cache import (
    CHALLENGES_KEY,
    LEADERBOARD_KEY,
    USER_PROFILE_KEY,
    OfflineCache,
)


@pytest.fixture
def cache(memory_store, fake_clock):
    return OfflineCache(memory_store, default_ttl=100, clock=fake_clock)


class TestReadWrite:
    def test_miss(self, cache):
        assert cache.get(CHALLENGES_KEY) is None

    def test_put_then_get(self, cache):
        cache.put(CHALLENGES_KEY, [{"id": "c1"}])
        assert cache.get(CHALLENGES_KEY) == [{"id": "c1"}]

    def test_entry_layout(self, cache, memory_store, fake_clock):
        cache.put(USER_PROFILE_KEY, {"name": "p1"}, ttl=5)
        entry = json.loads(memory_store.get("cache:user_profile"))
        assert entry == {"data": {"name": "p1"}, "written_at": fake_clock(), "ttl": 5}

    def test_invalid_default_ttl(self, memory_store):
        with pytest.raises(ValueError):
            OfflineCache(memory_store, default_ttl=0)


class TestExpiry:
    def test_served_until_ttl(self, cache, fake_clock):
        cache.put(LEADERBOARD_KEY, [1, 2])
        fake_clock.advance(100)
        assert cache.get(LEADERBOARD_KEY) == [1, 2]

    def test_expired_entry_dropped(self, cache, memory_store, fake_clock):
        cache.put(LEADERBOARD_KEY, [1, 2])
        fake_clock.advance(100.5)
        assert cache.get(LEADERBOARD_KEY) is None
        assert memory_store.get("cache:leaderboard") is None

    def test_per_entry_ttl(self, cache, fake_clock):
        cache.put(CHALLENGES_KEY, [], ttl=1)
        fake_clock.advance(2)
        assert cache.get(CHALLENGES_KEY) is None


class TestFailures:
    @pytest.mark.parametrize("raw", ["{not json", '{"data": 1}', "[]"])
    def test_corrupt_entry_is_a_miss_and_deleted(self, cache, memory_store, raw):
        memory_store.put("cache:challenges", raw)
        assert cache.get(CHALLENGES_KEY) is None
        assert memory_store.get("cache:challenges") is None

    def test_broken_store_never_raises(self, broken_store):
        cache = OfflineCache(broken_store)
        cache.put(CHALLENGES_KEY, [1])
        assert cache.get(CHALLENGES_KEY) is None
        cache.clear()


def test_clear_removes_well_known_keys(cache, memory_store):
    for key in (CHALLENGES_KEY, USER_PROFILE_KEY, LEADERBOARD_KEY):
        cache.put(key, {"k": key})
    memory_store.put("other", "kept")
    cache.clear()
    assert memory_store.keys("cache:") == []
    assert memory_store.get("other") == "kept"
