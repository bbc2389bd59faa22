from __future__ import annotations

import pytest

fastapi = pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

from api import main
from extractors.cache import InMemoryResponseCache
from extractors.errors import ExtractionFailedError, FallbackError
from extractors.models import AudioStreamDescriptor, SearchResultItem, TrackStreamBundle


class _FakeOrchestrator:
    def __init__(self, *, fail=False):
        self.fail = fail
        self.calls = []

    def search(self, query, page):
        self.calls.append(("search", query, page))
        if self.fail:
            raise ExtractionFailedError("search")
        return [SearchResultItem.build("abc123", title="Song", artist="Artist", duration=200)]

    def get_suggestions(self, query):
        self.calls.append(("suggestions", query))
        return [] if self.fail else ["imagine dragons"]

    def get_trending(self):
        self.calls.append(("trending",))
        return [] if self.fail else [SearchResultItem.build("t1")]

    def get_streams(self, video_id):
        self.calls.append(("streams", video_id))
        if self.fail:
            raise ExtractionFailedError("streams")
        return TrackStreamBundle.build(
            video_id,
            title="Song",
            audio_streams=[AudioStreamDescriptor.build("http://aac", codec="mp4a.40.2", bitrate=128000)],
        )

    def get_status(self):
        return [
            {"name": "invidious", "isOpen": True, "failureCount": 5},
            {"name": "piped", "isOpen": False, "failureCount": 0},
            {"name": "yt-dlp", "isOpen": False, "failureCount": 0},
        ]

    def list_formats(self, video_id):
        if self.fail:
            raise FallbackError("yt-dlp exited with 1")
        return "ID  EXT\n140 m4a audio only\n"


@pytest.fixture
def orchestrator():
    return _FakeOrchestrator()


@pytest.fixture
def client(orchestrator, monkeypatch):
    monkeypatch.setattr(main.app.state, "orchestrator", orchestrator, raising=False)
    monkeypatch.setattr(main.app.state, "cache", InMemoryResponseCache(), raising=False)
    monkeypatch.setattr(main.app.state, "db_health_check", None, raising=False)
    return TestClient(main.app)


def test_search_returns_results(client, orchestrator) -> None:
    response = client.get("/search", params={"q": "imagine dragons", "page": 2})

    assert response.status_code == 200
    body = response.json()
    assert body["query"] == "imagine dragons"
    assert body["page"] == 2
    assert body["results"][0]["videoId"] == "abc123"
    assert orchestrator.calls == [("search", "imagine dragons", 2)]


def test_search_requires_query(client) -> None:
    assert client.get("/search", params={"q": "  "}).status_code == 400
    assert client.get("/search").status_code == 400


def test_search_exhaustion_maps_to_502(client, orchestrator) -> None:
    orchestrator.fail = True

    response = client.get("/search", params={"q": "x"})

    assert response.status_code == 502
    assert response.json() == {"detail": "Search service unavailable"}


def test_suggestions_and_trending_never_error(client, orchestrator) -> None:
    assert client.get("/search/suggestions", params={"q": "imag"}).json() == {"suggestions": ["imagine dragons"]}
    assert client.get("/search/suggestions").json() == {"suggestions": []}

    orchestrator.fail = True
    assert client.get("/search/suggestions", params={"q": "imag"}).json() == {"suggestions": []}
    response = client.get("/trending")
    assert response.status_code == 200
    assert response.json() == {"results": []}


def test_track_streams(client, orchestrator) -> None:
    response = client.get("/tracks/abc123")

    assert response.status_code == 200
    body = response.json()
    assert body["videoId"] == "abc123"
    assert body["audioStreams"][0]["mimeType"] == ""
    assert body["audioStreams"][0]["quality"] == "128kbps"

    orchestrator.fail = True
    assert client.get("/tracks/abc123").status_code == 502


def test_health_aggregates_extractor_and_cache_status(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["services"] == {"database": "not_configured", "redis": "connected"}
    assert [e["name"] for e in body["extractors"]] == ["invidious", "piped", "yt-dlp"]
    assert "yt_dlp_version" in body["runtime"]


def test_health_reports_failing_database_probe(client, monkeypatch) -> None:
    def _db_down():
        raise OSError("connection refused")

    monkeypatch.setattr(main.app.state, "db_health_check", _db_down, raising=False)

    assert client.get("/health").json()["services"]["database"] == "disconnected"


def test_admin_extractors(client) -> None:
    response = client.get("/admin/extractors")

    assert response.json()["extractors"][0] == {"name": "invidious", "isOpen": True, "failureCount": 5}


def test_debug_formats_returns_plain_text(client, orchestrator) -> None:
    response = client.get("/debug/formats/abc123")

    assert response.status_code == 200
    assert "140 m4a" in response.text

    orchestrator.fail = True
    assert client.get("/debug/formats/abc123").status_code == 502
