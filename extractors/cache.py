import json
import logging
import threading
import time
from typing import Any, Protocol

import redis

logger = logging.getLogger(__name__)


class ResponseCache(Protocol):
    def get(self, key: str) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def is_healthy(self) -> bool:
        raise NotImplementedError


class InMemoryResponseCache:
    """Process-local TTL cache used when no Redis URL is configured."""

    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._data: dict[str, dict[str, Any]] = {}

    def get(self, key: str) -> Any:
        now = self._clock()
        with self._lock:
            row = self._data.get(key)
            if row is None:
                return None
            if row["expires_at"] <= now:
                self._data.pop(key, None)
                return None
            raw = row["value"]
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            raw = json.dumps(value, ensure_ascii=True, separators=(",", ":"))
        except (TypeError, ValueError):
            logger.warning(f"[CACHE] value for key={key} is not JSON serializable; skipped")
            return
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            self._data[key] = {
                "expires_at": now + max(1, int(ttl_seconds)),
                "value": raw,
            }

    def _evict_expired(self, now: float) -> None:
        # Caller holds the lock. Keys that are never read again only leave here.
        expired = [key for key, row in self._data.items() if row["expires_at"] <= now]
        for key in expired:
            del self._data[key]

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def is_healthy(self) -> bool:
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class RedisResponseCache:
    """Redis-backed cache. Every operation is best-effort."""

    def __init__(self, url: str, *, client: redis.Redis | None = None, key_prefix: str = "") -> None:
        self.key_prefix = key_prefix
        self._client = client or redis.Redis.from_url(
            url,
            socket_timeout=3.0,
            socket_connect_timeout=5.0,
            decode_responses=True,
        )

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def get(self, key: str) -> Any:
        try:
            raw = self._client.get(self._key(key))
        except redis.RedisError as exc:
            logger.warning(f"[CACHE] get failed key={key}: {exc}")
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            self._client.setex(self._key(key), max(1, int(ttl_seconds)), json.dumps(value))
        except (redis.RedisError, TypeError, ValueError) as exc:
            logger.warning(f"[CACHE] set failed key={key}: {exc}")

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._key(key))
        except redis.RedisError as exc:
            logger.warning(f"[CACHE] delete failed key={key}: {exc}")

    def is_healthy(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False


def build_response_cache(redis_url: str | None) -> ResponseCache:
    if redis_url:
        logger.info("[CACHE] using redis response cache")
        return RedisResponseCache(redis_url)
    logger.info("[CACHE] REDIS_URL not set; using in-memory response cache")
    return InMemoryResponseCache()
