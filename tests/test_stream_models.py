from __future__ import annotations

import pytest

from extractors.models import AudioStreamDescriptor, SearchResultItem, TrackStreamBundle, sort_streams


def _stream(url, codec, bitrate, mime_type=""):
    return AudioStreamDescriptor.build(url, codec=codec, bitrate=bitrate, mime_type=mime_type)


def test_sort_streams_prefers_compatible_codecs_then_bitrate() -> None:
    ordered = sort_streams(
        [
            _stream("opus-160", "opus", 160000),
            _stream("aac-48", "mp4a.40.5", 48000),
            _stream("opus-70", "opus", 70000),
            _stream("aac-128", "", 128000, mime_type='audio/mp4; codecs="mp4a.40.2"'),
        ]
    )

    assert [s.url for s in ordered] == ["aac-128", "aac-48", "opus-160", "opus-70"]


def test_bundle_build_enforces_stream_order() -> None:
    bundle = TrackStreamBundle.build(
        "abc",
        audio_streams=[_stream("low", "opus", 1), _stream("high", "opus", 2)],
    )

    assert [s.url for s in bundle.audio_streams] == ["high", "low"]
    assert bundle.artist == "Unknown Artist"


def test_search_item_defaults_and_clamping() -> None:
    item = SearchResultItem.build("  vid  ", title="", artist=None, duration=-4, thumbnail=None)

    assert item.video_id == "vid"
    assert item.title == "Unknown"
    assert item.artist == "Unknown Artist"
    assert item.duration == 0
    assert item.thumbnail == ""


def test_search_item_requires_video_id() -> None:
    with pytest.raises(ValueError):
        SearchResultItem.build("")


def test_quality_derived_from_bitrate_when_missing() -> None:
    assert _stream("u", "opus", 131600).quality == "132kbps"
    assert AudioStreamDescriptor.build("u", bitrate="junk").bitrate == 0
