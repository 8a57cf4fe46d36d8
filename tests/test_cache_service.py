import time

from app.services.cache_service import CacheKeys, CacheService


def test_set_and_get_round_trips_json_values():
    cache = CacheService()
    assert cache.set("subjects:list:1", {"items": [1, 2]}) is True
    assert cache.get("subjects:list:1") == {"items": [1, 2]}
    assert cache.get("missing") is None


def test_generate_key_skips_empty_parts():
    key = CacheService.generate_key(CacheKeys.SUBJECTS, 1, 10, None, "desc", "")
    assert key == "subjects:list:1:10:desc"


def test_expired_entries_are_misses(monkeypatch):
    cache = CacheService()
    cache.set("k", "v", ttl_seconds=10)
    now = time.monotonic()
    monkeypatch.setattr(time, "monotonic", lambda: now + 11)
    assert cache.get("k") is None
    assert cache.stats()["keys"] == 0


def test_delete_pattern_uses_glob_matching():
    cache = CacheService()
    cache.set("classes:list:1:10", [])
    cache.set("classes:list:2:10", [])
    cache.set("subjects:list:1:10", [])

    assert cache.delete_pattern("classes:list*") == 2
    assert cache.get("subjects:list:1:10") == []
    assert cache.delete_pattern("classes:list*") == 0


def test_get_or_set_computes_once():
    cache = CacheService()
    calls = []

    def load():
        calls.append(1)
        return {"total": 3}

    assert cache.get_or_set("stats", load) == {"total": 3}
    assert cache.get_or_set("stats", load) == {"total": 3}
    assert len(calls) == 1


def test_disabled_cache_always_misses():
    cache = CacheService(enabled=False)
    assert cache.set("k", "v") is False
    assert cache.get("k") is None
    assert cache.delete_pattern("*") == 0
    assert cache.get_or_set("k", lambda: "fresh") == "fresh"


def test_stats_count_hits_and_misses():
    cache = CacheService(default_ttl=120)
    assert cache.get("hits") is None
    cache.set("hits", 1)
    assert cache.get("hits") == 1

    stats = cache.stats()
    assert stats["enabled"] is True
    assert stats["keys"] == 1
    assert stats["defaultTtl"] == 120
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hitRate"] == 50.0


def test_flush_clears_everything():
    cache = CacheService()
    cache.set("a", 1)
    cache.set("b", 2)
    cache.flush()
    assert cache.stats()["keys"] == 0


def test_store_is_capped_and_expired_entries_go_first(monkeypatch):
    cache = CacheService(max_entries=3)
    cache.set("short", 1, ttl_seconds=5)
    cache.set("a", 1, ttl_seconds=100)
    cache.set("b", 2, ttl_seconds=200)
    now = time.monotonic()
    monkeypatch.setattr(time, "monotonic", lambda: now + 10)

    cache.set("c", 3, ttl_seconds=300)
    assert cache.stats()["evictions"] == 0
    assert [cache.get(k) for k in ("a", "b", "c")] == [1, 2, 3]

    cache.set("d", 4, ttl_seconds=400)
    assert cache.get("a") is None
    assert cache.get("d") == 4
    assert cache.stats()["keys"] == 3
    assert cache.stats()["evictions"] == 1


def test_overwriting_a_key_does_not_evict():
    cache = CacheService(max_entries=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)
    assert cache.get("a") == 10
    assert cache.get("b") == 2
