from __future__ import annotations

import redis

from extractors.cache import InMemoryResponseCache, RedisResponseCache, build_response_cache


def test_in_memory_cache_expires_entries(clock) -> None:
    cache = InMemoryResponseCache(clock=clock)
    cache.set("trending", [{"videoId": "a"}], 3600)

    clock.advance(3599)
    assert cache.get("trending") == [{"videoId": "a"}]

    clock.advance(1)
    assert cache.get("trending") is None
    assert len(cache) == 0


def test_in_memory_cache_returns_copies_and_skips_unserializable() -> None:
    cache = InMemoryResponseCache()
    value = {"videoId": "a", "audioStreams": []}
    cache.set("stream:a", value, 60)
    value["audioStreams"].append("mutated")

    assert cache.get("stream:a") == {"videoId": "a", "audioStreams": []}

    cache.set("bad", {"x": object()}, 60)
    assert cache.get("bad") is None

    cache.delete("stream:a")
    assert cache.get("stream:a") is None


class _FakeRedis:
    def __init__(self, *, down=False) -> None:
        self.down = down
        self.store = {}
        self.ttls = {}

    def _check(self):
        if self.down:
            raise redis.ConnectionError("connection refused")

    def get(self, key):
        self._check()
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl

    def delete(self, key):
        self._check()
        self.store.pop(key, None)

    def ping(self):
        self._check()
        return True


def test_redis_cache_round_trips_json_with_ttl() -> None:
    client = _FakeRedis()
    cache = RedisResponseCache("redis://localhost:6379/0", client=client)

    cache.set("search:imagine dragons:1", [{"videoId": "a"}], 21600)

    assert client.ttls["search:imagine dragons:1"] == 21600
    assert cache.get("search:imagine dragons:1") == [{"videoId": "a"}]
    assert cache.is_healthy() is True


def test_redis_cache_failures_are_absorbed() -> None:
    cache = RedisResponseCache("redis://localhost:6379/0", client=_FakeRedis(down=True))

    assert cache.get("trending") is None
    cache.set("trending", [], 3600)
    cache.delete("trending")
    assert cache.is_healthy() is False


def test_build_response_cache_defaults_to_in_memory() -> None:
    assert isinstance(build_response_cache(""), InMemoryResponseCache)


def test_in_memory_cache_evicts_expired_keys_that_are_never_read(clock) -> None:
    cache = InMemoryResponseCache(clock=clock)
    for page in range(1000):
        cache.set(f"search:query:{page}", [], 1)
    assert len(cache) == 1000

    clock.advance(10_000)
    cache.set("search:fresh:1", [{"videoId": "a"}], 60)

    assert len(cache) == 1
    assert cache.get("search:fresh:1") == [{"videoId": "a"}]
