"""Normalized track and stream records shared by every extraction source.

Records are immutable. ``to_dict`` produces the camelCase shape returned
to mobile clients and stored in the response cache; ``from_dict`` rebuilds
a record from that shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_TITLE = "Unknown"

# Codec families every mobile client can play natively (AAC in MP4).
_COMPATIBLE_CODEC_MARKERS = ("mp4a", "aac")


def coerce_duration(value: Any) -> int:
    try:
        seconds = round(float(value))
    except (TypeError, ValueError):
        return 0
    return max(0, int(seconds))


def coerce_bitrate(value: Any) -> int:
    try:
        bits = round(float(value))
    except (TypeError, ValueError):
        return 0
    return max(0, int(bits))


def quality_label(bitrate: int) -> str:
    return f"{round(bitrate / 1000)}kbps"


def _text(value: Any, default: str = "") -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


@dataclass(frozen=True)
class SearchResultItem:
    video_id: str
    title: str = UNKNOWN_TITLE
    artist: str = UNKNOWN_ARTIST
    duration: int = 0
    thumbnail: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.video_id, str) or not self.video_id:
            raise ValueError("video_id is required")

    @classmethod
    def build(cls, video_id, *, title=None, artist=None, duration=None, thumbnail=None) -> "SearchResultItem":
        return cls(
            video_id=str(video_id or "").strip(),
            title=_text(title, UNKNOWN_TITLE),
            artist=_text(artist, UNKNOWN_ARTIST),
            duration=coerce_duration(duration),
            thumbnail=_text(thumbnail),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "videoId": self.video_id,
            "title": self.title,
            "artist": self.artist,
            "duration": self.duration,
            "thumbnail": self.thumbnail,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "SearchResultItem":
        return cls.build(
            payload.get("videoId"),
            title=payload.get("title"),
            artist=payload.get("artist"),
            duration=payload.get("duration"),
            thumbnail=payload.get("thumbnail"),
        )


@dataclass(frozen=True)
class AudioStreamDescriptor:
    url: str
    mime_type: str
    bitrate: int
    codec: str
    quality: str

    @classmethod
    def build(cls, url, *, mime_type=None, bitrate=None, codec=None, quality=None) -> "AudioStreamDescriptor":
        bits = coerce_bitrate(bitrate)
        return cls(
            url=str(url or ""),
            mime_type=_text(mime_type),
            bitrate=bits,
            codec=_text(codec, "unknown"),
            quality=_text(quality) or quality_label(bits),
        )

    @property
    def is_compatible(self) -> bool:
        haystack = f"{self.codec} {self.mime_type}".lower()
        return any(marker in haystack for marker in _COMPATIBLE_CODEC_MARKERS)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "mimeType": self.mime_type,
            "bitrate": self.bitrate,
            "codec": self.codec,
            "quality": self.quality,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "AudioStreamDescriptor":
        return cls.build(
            payload.get("url"),
            mime_type=payload.get("mimeType"),
            bitrate=payload.get("bitrate"),
            codec=payload.get("codec"),
            quality=payload.get("quality"),
        )


def sort_streams(streams: Iterable[AudioStreamDescriptor]) -> tuple[AudioStreamDescriptor, ...]:
    """Order streams compatible-codec first, then by bitrate descending."""
    return tuple(sorted(streams, key=lambda s: (0 if s.is_compatible else 1, -s.bitrate)))


@dataclass(frozen=True)
class TrackStreamBundle:
    video_id: str
    title: str
    artist: str
    duration: int
    thumbnail: str
    audio_streams: tuple[AudioStreamDescriptor, ...] = field(default_factory=tuple)

    @classmethod
    def build(
        cls,
        video_id,
        *,
        title=None,
        artist=None,
        duration=None,
        thumbnail=None,
        audio_streams: Iterable[AudioStreamDescriptor] = (),
    ) -> "TrackStreamBundle":
        return cls(
            video_id=str(video_id or "").strip(),
            title=_text(title, UNKNOWN_TITLE),
            artist=_text(artist, UNKNOWN_ARTIST),
            duration=coerce_duration(duration),
            thumbnail=_text(thumbnail),
            audio_streams=sort_streams(audio_streams),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "videoId": self.video_id,
            "title": self.title,
            "artist": self.artist,
            "duration": self.duration,
            "thumbnail": self.thumbnail,
            "audioStreams": [stream.to_dict() for stream in self.audio_streams],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "TrackStreamBundle":
        streams = payload.get("audioStreams") or []
        return cls.build(
            payload.get("videoId"),
            title=payload.get("title"),
            artist=payload.get("artist"),
            duration=payload.get("duration"),
            thumbnail=payload.get("thumbnail"),
            audio_streams=[AudioStreamDescriptor.from_dict(s) for s in streams if isinstance(s, dict)],
        )
