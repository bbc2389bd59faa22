"""HTTP surface for the extraction backend.

Route handlers are thin: they validate input, hand the blocking
orchestrator call to a worker thread and map the terminal extraction
failure to a 502 response.
"""

import logging
import os
from datetime import datetime, timezone

import anyio
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from config.settings import APP_VERSION, LOG_DIR, REDIS_URL, YTDLP_COOKIES_B64, YTDLP_COOKIES_PATH
from extractors import (
    CookieFileProvider,
    ExtractionFailedError,
    FallbackError,
    build_default_orchestrator,
    build_response_cache,
    get_runtime_info,
)

APP_NAME = "MusicStream API"


def _setup_logging(log_dir):
    os.makedirs(log_dir, exist_ok=True)
    root = logging.getLogger("")
    log_path = os.path.join(log_dir, "extractor.log")
    root.setLevel(logging.INFO)
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            if os.path.abspath(getattr(handler, "baseFilename", "")) == os.path.abspath(log_path):
                return
    file_handler = logging.FileHandler(log_path)
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    file_handler.setLevel(logging.INFO)
    root.addHandler(file_handler)


app = FastAPI(
    title=APP_NAME,
    description="Search, trending and audio stream resolution backed by Invidious, Piped and yt-dlp.",
)


@app.on_event("startup")
async def startup():
    _setup_logging(LOG_DIR)
    cookies = CookieFileProvider(YTDLP_COOKIES_PATH)
    try:
        cookies.write_from_config(YTDLP_COOKIES_B64)
    except OSError:
        logging.exception("Failed to write yt-dlp cookie jar to %s", YTDLP_COOKIES_PATH)
    app.state.cache = build_response_cache(REDIS_URL)
    app.state.orchestrator = build_default_orchestrator(app.state.cache, cookies=cookies)
    app.state.db_health_check = None
    logging.info("Extractor chain: %s", ", ".join(s["name"] for s in app.state.orchestrator.get_status()))


def _orchestrator(request: Request):
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Extractor not initialized")
    return orchestrator


@app.get("/search")
async def api_search(request: Request, q: str | None = None, page: int = Query(1, ge=1)):
    if not q or not q.strip():
        raise HTTPException(status_code=400, detail='Query parameter "q" is required')
    orchestrator = _orchestrator(request)
    try:
        results = await anyio.to_thread.run_sync(orchestrator.search, q, page)
    except ExtractionFailedError as exc:
        logging.error("Search failed for query=%r: %s", q, exc)
        raise HTTPException(status_code=502, detail="Search service unavailable") from exc
    return {"query": q, "page": page, "results": [item.to_dict() for item in results]}


@app.get("/search/suggestions")
async def api_suggestions(request: Request, q: str | None = None):
    if not q or not q.strip():
        return {"suggestions": []}
    orchestrator = _orchestrator(request)
    suggestions = await anyio.to_thread.run_sync(orchestrator.get_suggestions, q)
    return {"suggestions": suggestions}


@app.get("/trending")
async def api_trending(request: Request):
    orchestrator = _orchestrator(request)
    results = await anyio.to_thread.run_sync(orchestrator.get_trending)
    return {"results": [item.to_dict() for item in results]}


@app.get("/tracks/{video_id}")
async def api_track_streams(request: Request, video_id: str):
    if not video_id.strip():
        raise HTTPException(status_code=400, detail="videoId is required")
    orchestrator = _orchestrator(request)
    try:
        bundle = await anyio.to_thread.run_sync(orchestrator.get_streams, video_id)
    except ExtractionFailedError as exc:
        logging.error("Stream resolution failed for %s: %s", video_id, exc)
        raise HTTPException(status_code=502, detail="Stream resolution failed") from exc
    return bundle.to_dict()


def _probe(check):
    if check is None:
        return "not_configured"
    try:
        return "connected" if check() else "disconnected"
    except Exception:
        logging.exception("Health probe failed")
        return "disconnected"


@app.get("/health")
async def api_health(request: Request):
    orchestrator = _orchestrator(request)
    cache = getattr(request.app.state, "cache", None)
    redis_status = await anyio.to_thread.run_sync(_probe, cache.is_healthy if cache is not None else None)
    db_status = await anyio.to_thread.run_sync(_probe, getattr(request.app.state, "db_health_check", None))
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": APP_VERSION,
        "runtime": get_runtime_info(),
        "services": {
            "database": db_status,
            "redis": redis_status,
        },
        "extractors": orchestrator.get_status(),
    }


@app.get("/admin/extractors")
async def api_extractor_status(request: Request):
    return {"extractors": _orchestrator(request).get_status()}


@app.get("/debug/formats/{video_id}", response_class=PlainTextResponse)
async def api_debug_formats(request: Request, video_id: str):
    orchestrator = _orchestrator(request)
    try:
        return await anyio.to_thread.run_sync(orchestrator.list_formats, video_id)
    except FallbackError as exc:
        raise HTTPException(status_code=502, detail=f"Format listing failed: {exc}") from exc
