import json
import logging
import time
from typing import Any, Callable
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config.settings import (
    INVIDIOUS_URL,
    PIPED_TRENDING_REGION,
    PIPED_URL,
    TRENDING_LIMIT,
    UPSTREAM_HTTP_RETRIES,
    UPSTREAM_TIMEOUT_SECONDS,
)
from extractors.errors import AdapterError, UnsupportedOperation
from extractors.models import AudioStreamDescriptor, SearchResultItem, TrackStreamBundle

logger = logging.getLogger(__name__)

_WATCH_PREFIX = "/watch?v="
_READ_CHUNK_BYTES = 64 * 1024


def _build_session(retries: int) -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=max(0, int(retries)),
        backoff_factor=0.4,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def _first_thumbnail_url(thumbnails: Any) -> str:
    if isinstance(thumbnails, list) and thumbnails:
        first = thumbnails[0]
        if isinstance(first, dict) and isinstance(first.get("url"), str):
            return first["url"]
    return ""


def video_id_from_watch_url(value: Any) -> str:
    """Strip the ``/watch?v=`` prefix Piped uses for video references."""
    if not isinstance(value, str):
        return ""
    text = value.strip()
    if text.startswith(_WATCH_PREFIX):
        text = text[len(_WATCH_PREFIX):]
    return text.split("&", 1)[0]


def _codec_from_mime(mime_type: Any) -> str | None:
    if not isinstance(mime_type, str) or "codecs=" not in mime_type:
        return None
    codec = mime_type.split("codecs=", 1)[1].strip().strip('"').strip("'")
    return codec or None


class UpstreamAdapter:
    """One remote extraction service.

    Subclasses translate the four operation categories into calls against
    their own API and normalize the payloads. Any failure is raised as
    ``AdapterError``; categories a source does not offer raise
    ``UnsupportedOperation``.
    """

    name = ""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = UPSTREAM_TIMEOUT_SECONDS,
        retries: int = UPSTREAM_HTTP_RETRIES,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._session = session or _build_session(retries)

    def _get_json(self, endpoint: str, *, params: dict[str, Any] | None = None) -> Any:
        url = urljoin(self.base_url, endpoint.lstrip("/"))
        # requests bounds connect and each socket read; the deadline bounds the whole call.
        deadline = self._clock() + self.timeout_seconds
        try:
            resp = self._session.get(url, params=params or {}, timeout=self.timeout_seconds, stream=True)
        except requests.RequestException as exc:
            raise AdapterError(self.name, f"request to {endpoint} failed: {exc}") from exc
        try:
            status = int(resp.status_code)
            logger.debug(f"[EXTRACTOR] source={self.name} request={endpoint} status={status}")
            if status < 200 or status >= 300:
                raise AdapterError(self.name, f"{endpoint} returned status {status}")
            body = self._read_body(resp, endpoint, deadline)
        finally:
            resp.close()
        try:
            return json.loads(body)
        except ValueError as exc:
            raise AdapterError(self.name, f"{endpoint} returned malformed JSON") from exc

    def _read_body(self, resp: requests.Response, endpoint: str, deadline: float) -> bytes:
        chunks = []
        try:
            for chunk in resp.iter_content(chunk_size=_READ_CHUNK_BYTES):
                if self._clock() > deadline:
                    raise AdapterError(
                        self.name, f"{endpoint} did not complete within {self.timeout_seconds:.0f}s"
                    )
                chunks.append(chunk)
        except requests.RequestException as exc:
            raise AdapterError(self.name, f"reading {endpoint} failed: {exc}") from exc
        return b"".join(chunks)

    def _unsupported(self, operation: str) -> UnsupportedOperation:
        return UnsupportedOperation(self.name, f"{operation} is not supported")

    def search(self, query: str, page: int) -> list[SearchResultItem]:
        raise self._unsupported("search")

    def get_streams(self, video_id: str) -> TrackStreamBundle:
        raise self._unsupported("streams")

    def get_trending(self) -> list[SearchResultItem]:
        raise self._unsupported("trending")

    def get_suggestions(self, query: str) -> list[str]:
        raise self._unsupported("suggestions")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base_url={self.base_url!r})"


class InvidiousAdapter(UpstreamAdapter):
    name = "invidious"

    def search(self, query, page):
        data = self._get_json(
            "/api/v1/search",
            params={"q": query, "page": page, "type": "video", "sort_by": "relevance"},
        )
        if not isinstance(data, list):
            raise AdapterError(self.name, "search payload is not a list")
        results = []
        for item in data:
            if not isinstance(item, dict):
                continue
            if item.get("type") not in (None, "video"):
                continue
            if not item.get("videoId"):
                continue
            results.append(
                SearchResultItem.build(
                    item.get("videoId"),
                    title=item.get("title"),
                    artist=item.get("author"),
                    duration=item.get("lengthSeconds"),
                    thumbnail=_first_thumbnail_url(item.get("videoThumbnails")),
                )
            )
        return results

    def get_streams(self, video_id):
        data = self._get_json(f"/api/v1/videos/{video_id}")
        if not isinstance(data, dict):
            raise AdapterError(self.name, "video payload is not an object")
        streams = []
        for fmt in data.get("adaptiveFormats") or []:
            if not isinstance(fmt, dict):
                continue
            mime_type = fmt.get("type")
            if not isinstance(mime_type, str) or not mime_type.startswith("audio/"):
                continue
            if not fmt.get("url"):
                continue
            streams.append(
                AudioStreamDescriptor.build(
                    fmt.get("url"),
                    mime_type=mime_type,
                    bitrate=fmt.get("bitrate"),
                    codec=fmt.get("encoding") or _codec_from_mime(mime_type),
                    quality=fmt.get("qualityLabel") or fmt.get("audioQuality"),
                )
            )
        if not streams:
            raise AdapterError(self.name, f"no audio streams for {video_id}")
        return TrackStreamBundle.build(
            data.get("videoId") or video_id,
            title=data.get("title"),
            artist=data.get("author"),
            duration=data.get("lengthSeconds"),
            thumbnail=_first_thumbnail_url(data.get("videoThumbnails")),
            audio_streams=streams,
        )

    def get_suggestions(self, query):
        data = self._get_json("/api/v1/search/suggestions", params={"q": query})
        if not isinstance(data, dict):
            raise AdapterError(self.name, "suggestions payload is not an object")
        return [s for s in data.get("suggestions") or [] if isinstance(s, str)]


class PipedAdapter(UpstreamAdapter):
    name = "piped"

    def __init__(self, base_url: str, *, region: str = PIPED_TRENDING_REGION, **kwargs) -> None:
        super().__init__(base_url, **kwargs)
        self.region = region

    def _normalize_stream_item(self, item: Any) -> SearchResultItem | None:
        if not isinstance(item, dict):
            return None
        # Search results mix in playlists and channels.
        if item.get("type") not in (None, "stream"):
            return None
        video_id = video_id_from_watch_url(item.get("url"))
        if not video_id:
            return None
        return SearchResultItem.build(
            video_id,
            title=item.get("title"),
            artist=item.get("uploaderName"),
            duration=item.get("duration"),
            thumbnail=item.get("thumbnail"),
        )

    def search(self, query, page):
        data = self._get_json("/search", params={"q": query, "filter": "music_songs"})
        if not isinstance(data, dict):
            raise AdapterError(self.name, "search payload is not an object")
        results = []
        for item in data.get("items") or []:
            normalized = self._normalize_stream_item(item)
            if normalized is not None:
                results.append(normalized)
        return results

    def get_streams(self, video_id):
        data = self._get_json(f"/streams/{video_id}")
        if not isinstance(data, dict):
            raise AdapterError(self.name, "streams payload is not an object")
        streams = [
            AudioStreamDescriptor.build(
                s.get("url"),
                mime_type=s.get("mimeType"),
                bitrate=s.get("bitrate"),
                codec=s.get("codec"),
                quality=s.get("quality"),
            )
            for s in data.get("audioStreams") or []
            if isinstance(s, dict) and s.get("url")
        ]
        if not streams:
            raise AdapterError(self.name, f"no audio streams for {video_id}")
        return TrackStreamBundle.build(
            video_id,
            title=data.get("title"),
            artist=data.get("uploader"),
            duration=data.get("duration"),
            thumbnail=data.get("thumbnailUrl"),
            audio_streams=streams,
        )

    def get_trending(self):
        data = self._get_json("/trending", params={"region": self.region})
        if not isinstance(data, list):
            raise AdapterError(self.name, "trending payload is not a list")
        results = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                duration = float(item.get("duration") or 0)
            except (TypeError, ValueError):
                continue
            if duration <= 0:
                continue
            normalized = self._normalize_stream_item(item)
            if normalized is not None:
                results.append(normalized)
            if len(results) >= TRENDING_LIMIT:
                break
        return results


def default_adapters() -> list[UpstreamAdapter]:
    return [InvidiousAdapter(INVIDIOUS_URL), PipedAdapter(PIPED_URL)]
