"""Multi-source extraction with circuit-breaker failover.

Every public operation runs the same pipeline:

1. return the cached result when one exists;
2. try each upstream adapter in declared order, skipping sources whose
   circuit is open, and stop at the first success;
3. when every adapter is skipped or failed, run the local yt-dlp fallback;
4. cache and return the result.

Only ``ExtractionFailedError`` leaves this module, and only for the
critical operations (search and stream resolution). Trending and
suggestions degrade to an empty list.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable, Sequence, TypeVar

from config.settings import (
    CIRCUIT_FAILURE_THRESHOLD,
    CIRCUIT_RESET_SECONDS,
    SEARCH_TTL_SECONDS,
    STREAM_TTL_SECONDS,
    TRENDING_LIMIT,
    TRENDING_TTL_SECONDS,
    YTDLP_SEARCH_LIMIT,
)
from extractors.adapters import UpstreamAdapter, default_adapters
from extractors.cache import ResponseCache
from extractors.circuit_breaker import UpstreamSource
from extractors.errors import ExtractionFailedError, UnsupportedOperation
from extractors.models import SearchResultItem, TrackStreamBundle
from extractors.ytdlp import YtDlpFallback

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISS = object()
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_query(query: str) -> str:
    return _WHITESPACE_RE.sub(" ", str(query or "")).strip()


def search_cache_key(query: str, page: int) -> str:
    return f"search:{normalize_query(query)}:{page}"


def stream_cache_key(video_id: str) -> str:
    return f"stream:{video_id}"


TRENDING_CACHE_KEY = "trending"


class ExtractorOrchestrator:
    def __init__(
        self,
        adapters: Sequence[UpstreamAdapter],
        fallback: YtDlpFallback,
        cache: ResponseCache,
        *,
        failure_threshold: int = CIRCUIT_FAILURE_THRESHOLD,
        reset_seconds: float = CIRCUIT_RESET_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.fallback = fallback
        self.cache = cache
        self._chain = [
            (
                adapter,
                UpstreamSource(
                    adapter.name,
                    failure_threshold=failure_threshold,
                    reset_seconds=reset_seconds,
                    clock=clock,
                ),
            )
            for adapter in adapters
        ]

    @property
    def sources(self) -> list[UpstreamSource]:
        return [source for _, source in self._chain]

    def source(self, name: str) -> UpstreamSource:
        for _, source in self._chain:
            if source.name == name:
                return source
        raise KeyError(name)

    # Pipeline steps

    def _cached(self, key: str, decode: Callable[[Any], T]) -> Any:
        try:
            payload = self.cache.get(key)
        except Exception:
            logger.warning(f"[CACHE] read failed key={key}", exc_info=True)
            return _MISS
        if payload is None:
            return _MISS
        try:
            return decode(payload)
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.warning(f"[CACHE] discarding unreadable entry key={key}")
            return _MISS

    def _store(self, key: str, payload: Any, ttl_seconds: int) -> None:
        try:
            self.cache.set(key, payload, ttl_seconds)
        except Exception:
            logger.warning(f"[CACHE] write failed key={key}", exc_info=True)

    def _try_sources(self, operation: str, call: Callable[[UpstreamAdapter], T]) -> Any:
        """Try each closed source once, in order; first success wins."""
        for adapter, source in self._chain:
            if source.is_open():
                logger.debug(f"[EXTRACTOR] op={operation} source={source.name} skipped (circuit open)")
                continue
            try:
                result = call(adapter)
            except UnsupportedOperation:
                continue
            except Exception as exc:
                source.record_failure()
                logger.warning(f"[EXTRACTOR] op={operation} source={source.name} failed: {exc}")
                continue
            source.record_success()
            logger.info(f"[EXTRACTOR] op={operation} source={source.name} status=ok")
            return result
        return _MISS

    def _run_fallback(self, operation: str, call: Callable[[YtDlpFallback], T]) -> Any:
        logger.info(f"[EXTRACTOR] op={operation} all upstreams exhausted; using {self.fallback.name}")
        try:
            return call(self.fallback)
        except Exception as exc:
            logger.error(f"[EXTRACTOR] op={operation} source={self.fallback.name} failed: {exc}")
            return _MISS

    # Public operations

    def search(self, query: str, page: int = 1) -> list[SearchResultItem]:
        page = max(1, int(page or 1))
        query = normalize_query(query)
        key = search_cache_key(query, page)
        cached = self._cached(key, lambda rows: [SearchResultItem.from_dict(row) for row in rows])
        if cached is not _MISS:
            return cached

        results = self._try_sources("search", lambda adapter: adapter.search(query, page))
        if results is _MISS:
            results = self._run_fallback("search", lambda fb: fb.search(query, YTDLP_SEARCH_LIMIT))
        if results is _MISS:
            raise ExtractionFailedError("search")

        self._store(key, [item.to_dict() for item in results], SEARCH_TTL_SECONDS)
        return results

    def get_streams(self, video_id: str) -> TrackStreamBundle:
        video_id = str(video_id or "").strip()
        key = stream_cache_key(video_id)
        cached = self._cached(key, TrackStreamBundle.from_dict)
        if cached is not _MISS:
            return cached

        bundle = self._try_sources("streams", lambda adapter: adapter.get_streams(video_id))
        if bundle is _MISS:
            bundle = self._run_fallback("streams", lambda fb: fb.resolve_streams(video_id))
        if bundle is _MISS:
            raise ExtractionFailedError("streams")

        self._store(key, bundle.to_dict(), STREAM_TTL_SECONDS)
        return bundle

    def get_trending(self) -> list[SearchResultItem]:
        cached = self._cached(
            TRENDING_CACHE_KEY, lambda rows: [SearchResultItem.from_dict(row) for row in rows]
        )
        if cached is not _MISS:
            return cached

        results = self._try_sources("trending", lambda adapter: adapter.get_trending())
        if results is _MISS:
            results = self._run_fallback("trending", lambda fb: fb.trending(TRENDING_LIMIT))
        if results is _MISS:
            return []

        self._store(TRENDING_CACHE_KEY, [item.to_dict() for item in results], TRENDING_TTL_SECONDS)
        return results

    def get_suggestions(self, query: str) -> list[str]:
        query = normalize_query(query)
        if not query:
            return []
        suggestions = self._try_sources("suggestions", lambda adapter: adapter.get_suggestions(query))
        if suggestions is _MISS:
            return []
        return list(suggestions)

    def get_status(self) -> list[dict]:
        return [source.snapshot() for source in self.sources] + [
            {"name": self.fallback.name, "isOpen": False, "failureCount": 0}
        ]

    def list_formats(self, video_id: str) -> str:
        return self.fallback.list_formats(str(video_id or "").strip())


def build_default_orchestrator(cache: ResponseCache, *, cookies=None) -> ExtractorOrchestrator:
    return ExtractorOrchestrator(default_adapters(), YtDlpFallback(cookies=cookies), cache)
