"""Local yt-dlp fallback used when every remote upstream is unavailable.

The tool is driven through its command line. Process spawning sits behind
``ExtractorRunner`` so the parsing below can be exercised with canned
output, and authentication cookies come from a ``CookieProvider`` that is
consulted on every invocation.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import subprocess
import threading
import time
from pathlib import Path
from typing import Any, Iterable, Protocol

from config.settings import (
    TRENDING_LIMIT,
    YTDLP_BINARY,
    YTDLP_MAX_OUTPUT_BYTES,
    YTDLP_SEARCH_LIMIT,
    YTDLP_TIMEOUT_SECONDS,
    YTDLP_TRENDING_PLAYLIST_URL,
)
from extractors.errors import FallbackError
from extractors.models import AudioStreamDescriptor, SearchResultItem, TrackStreamBundle

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
THUMBNAIL_URL = "https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"

_COMMON_ARGS = ["--dump-json", "--no-warnings", "--skip-download"]
_NON_MEDIA_TYPES = {"playlist", "channel", "multi_video"}
_NON_MEDIA_IE_KEYS = {"YoutubeTab", "YoutubeMusicSearchURL"}
_READ_CHUNK_BYTES = 64 * 1024
_STDERR_TAIL_BYTES = 4096
_STDERR_JOIN_SECONDS = 5.0


class ExtractorRunner(Protocol):
    def run(self, args: list[str], *, timeout: float) -> str:
        raise NotImplementedError


class SubprocessRunner:
    """Runs the yt-dlp binary with a bounded timeout and output size.

    stdout is drained in chunks on a reader thread; the child is killed as
    soon as it writes more than ``max_output_bytes`` or outlives ``timeout``.
    """

    def __init__(self, binary: str = YTDLP_BINARY, *, max_output_bytes: int = YTDLP_MAX_OUTPUT_BYTES) -> None:
        self.binary = binary
        self.max_output_bytes = max_output_bytes

    def run(self, args: list[str], *, timeout: float) -> str:
        command = [self.binary, *args]
        try:
            proc = subprocess.Popen(command, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except FileNotFoundError as exc:
            raise FallbackError(f"{self.binary} is not installed or not available in PATH") from exc

        stdout = bytearray()
        stderr_tail = bytearray()
        overflow = threading.Event()

        def _drain_stdout() -> None:
            while True:
                chunk = proc.stdout.read1(_READ_CHUNK_BYTES)
                if not chunk:
                    return
                if len(stdout) + len(chunk) > self.max_output_bytes:
                    overflow.set()
                    return
                stdout.extend(chunk)

        def _drain_stderr() -> None:
            while True:
                chunk = proc.stderr.read1(_READ_CHUNK_BYTES)
                if not chunk:
                    return
                stderr_tail.extend(chunk)
                del stderr_tail[:-_STDERR_TAIL_BYTES]

        deadline = time.monotonic() + timeout
        readers = [
            threading.Thread(target=_drain_stdout, name="ytdlp-stdout", daemon=True),
            threading.Thread(target=_drain_stderr, name="ytdlp-stderr", daemon=True),
        ]
        try:
            for reader in readers:
                reader.start()
            readers[0].join(timeout)
            if overflow.is_set():
                _terminate_subprocess(proc)
                raise FallbackError(f"{self.binary} output exceeded {self.max_output_bytes} bytes")
            try:
                if readers[0].is_alive():
                    raise subprocess.TimeoutExpired(command, timeout)
                returncode = proc.wait(timeout=max(0.0, deadline - time.monotonic()))
            except subprocess.TimeoutExpired as exc:
                _terminate_subprocess(proc)
                raise FallbackError(f"{self.binary} timed out after {timeout:.0f}s") from exc
        finally:
            _terminate_subprocess(proc)
            for reader, stream in zip(readers, (proc.stdout, proc.stderr)):
                reader.join(_STDERR_JOIN_SECONDS)
                # A grandchild may still hold the pipe; never close under a blocked reader.
                if not reader.is_alive():
                    stream.close()

        if returncode != 0:
            stderr_text = bytes(stderr_tail).decode("utf-8", errors="replace").strip()
            raise FallbackError(f"{self.binary} exited with {returncode}: {stderr_text}")
        try:
            return bytes(stdout).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FallbackError(f"{self.binary} wrote output that is not valid UTF-8") from exc


def _terminate_subprocess(proc: subprocess.Popen, *, grace_sec: float = 3.0) -> None:
    """Terminate, then kill a child that ignores SIGTERM."""
    if proc.poll() is not None:
        return
    proc.terminate()
    try:
        proc.wait(timeout=grace_sec)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()


class CookieProvider(Protocol):
    def cookie_args(self) -> list[str]:
        raise NotImplementedError


class NoCookies:
    def cookie_args(self) -> list[str]:
        return []


class CookieFileProvider:
    """Passes ``--cookies <path>`` whenever the cookie jar exists on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def cookie_args(self) -> list[str]:
        # Checked per call; the jar may be provisioned after startup.
        if self.path.is_file():
            return ["--cookies", str(self.path)]
        return []

    def write_from_config(self, encoded: str | None) -> bool:
        """Write a base64 encoded Netscape cookie jar to ``path``."""
        if not encoded:
            return False
        try:
            content = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            logger.warning("[YTDLP] ignoring cookie configuration that is not valid base64 text")
            return False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(content, encoding="utf-8")
        logger.info(f"[YTDLP] cookie jar written to {self.path}")
        return True


def _last_thumbnail(entry: dict[str, Any], video_id: str) -> str:
    thumbnails = entry.get("thumbnails")
    if isinstance(thumbnails, list) and thumbnails:
        last = thumbnails[-1]
        if isinstance(last, dict) and isinstance(last.get("url"), str) and last["url"]:
            return last["url"]
    return THUMBNAIL_URL.format(video_id=video_id)


def _is_media_record(entry: Any) -> bool:
    if not isinstance(entry, dict) or not entry.get("id"):
        return False
    if entry.get("_type") in _NON_MEDIA_TYPES:
        return False
    return entry.get("ie_key") not in _NON_MEDIA_IE_KEYS


def _search_item(entry: dict[str, Any]) -> SearchResultItem:
    video_id = str(entry["id"])
    return SearchResultItem.build(
        video_id,
        title=entry.get("title"),
        artist=entry.get("channel") or entry.get("uploader"),
        duration=entry.get("duration"),
        thumbnail=_last_thumbnail(entry, video_id),
    )


def parse_json_lines(stdout: str) -> list[SearchResultItem]:
    """Parse ``--dump-json --flat-playlist`` output, one record per line."""
    results = []
    for line in (stdout or "").splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("[YTDLP] skipping malformed output line")
            continue
        if not _is_media_record(entry):
            continue
        results.append(_search_item(entry))
    return results


def _is_audio_only(fmt: Any) -> bool:
    if not isinstance(fmt, dict) or not fmt.get("url"):
        return False
    acodec = fmt.get("acodec")
    if not acodec or acodec == "none":
        return False
    vcodec = fmt.get("vcodec")
    return not vcodec or vcodec == "none"


def _mime_type(fmt: dict[str, Any]) -> str:
    acodec = str(fmt.get("acodec") or "")
    if "mp4a" in acodec:
        return 'audio/mp4; codecs="mp4a.40.2"'
    if "opus" in acodec:
        return 'audio/webm; codecs="opus"'
    return f"audio/{fmt.get('ext') or 'webm'}"


def _abr(fmt: dict[str, Any]) -> float:
    try:
        return float(fmt.get("abr") or 0)
    except (TypeError, ValueError):
        return 0.0


def audio_streams_from_formats(formats: Iterable[Any]) -> list[AudioStreamDescriptor]:
    streams = []
    for fmt in formats or []:
        if not _is_audio_only(fmt):
            continue
        abr = _abr(fmt)
        streams.append(
            AudioStreamDescriptor.build(
                fmt["url"],
                mime_type=_mime_type(fmt),
                bitrate=abr * 1000,
                codec=fmt.get("acodec"),
                quality=fmt.get("format_note") or f"{round(abr)}kbps",
            )
        )
    return streams


class YtDlpFallback:
    name = "yt-dlp"

    def __init__(
        self,
        runner: ExtractorRunner | None = None,
        *,
        cookies: CookieProvider | None = None,
        timeout_seconds: float = YTDLP_TIMEOUT_SECONDS,
        trending_playlist_url: str = YTDLP_TRENDING_PLAYLIST_URL,
    ) -> None:
        self.runner = runner or SubprocessRunner()
        self.cookies = cookies or NoCookies()
        self.timeout_seconds = timeout_seconds
        self.trending_playlist_url = trending_playlist_url

    def _run(self, args: list[str]) -> str:
        argv = [*args, *self.cookie_args()]
        logger.info(f"[YTDLP] run target={args[0] if args else ''}")
        return self.runner.run(argv, timeout=self.timeout_seconds)

    def cookie_args(self) -> list[str]:
        return list(self.cookies.cookie_args())

    def search(self, query: str, limit: int = YTDLP_SEARCH_LIMIT) -> list[SearchResultItem]:
        stdout = self._run([f"ytsearch{int(limit)}:{query}", *_COMMON_ARGS, "--flat-playlist"])
        return parse_json_lines(stdout)

    def resolve_streams(self, video_id: str) -> TrackStreamBundle:
        stdout = self._run([WATCH_URL.format(video_id=video_id), *_COMMON_ARGS])
        try:
            data = json.loads((stdout or "").strip())
        except json.JSONDecodeError as exc:
            raise FallbackError(f"yt-dlp returned invalid JSON for {video_id}") from exc
        if not isinstance(data, dict):
            raise FallbackError(f"yt-dlp returned an unexpected payload for {video_id}")
        streams = audio_streams_from_formats(data.get("formats") or [])
        if not streams:
            raise FallbackError(f"yt-dlp found no audio-only formats for {video_id}")
        return TrackStreamBundle.build(
            str(data.get("id") or video_id),
            title=data.get("title"),
            artist=data.get("channel") or data.get("uploader"),
            duration=data.get("duration"),
            thumbnail=_last_thumbnail(data, video_id),
            audio_streams=streams,
        )

    def trending(self, limit: int = TRENDING_LIMIT) -> list[SearchResultItem]:
        stdout = self._run(
            [self.trending_playlist_url, *_COMMON_ARGS, "--flat-playlist", "--playlist-end", str(int(limit))]
        )
        return parse_json_lines(stdout)[: max(0, int(limit))]

    def list_formats(self, video_id: str) -> str:
        return self._run([WATCH_URL.format(video_id=video_id), "-F", "--no-warnings"])
