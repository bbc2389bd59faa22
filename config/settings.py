"""Application settings constants."""

from __future__ import annotations

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.environ.get("MUSICSTREAM_DATA_DIR", PROJECT_ROOT / "data")).resolve()
LOG_DIR = Path(os.environ.get("MUSICSTREAM_LOG_DIR", DATA_DIR / "logs")).resolve()

APP_VERSION = os.getenv("MUSICSTREAM_VERSION", "0.1.0")

# Remote upstreams, tried in this order.
INVIDIOUS_URL = os.getenv("INVIDIOUS_URL", "http://localhost:3001")
PIPED_URL = os.getenv("PIPED_URL", "http://localhost:3002")
PIPED_TRENDING_REGION = os.getenv("PIPED_TRENDING_REGION", "IN")
UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "10"))
UPSTREAM_HTTP_RETRIES = int(os.getenv("UPSTREAM_HTTP_RETRIES", "0"))

CIRCUIT_FAILURE_THRESHOLD = int(os.getenv("CIRCUIT_FAILURE_THRESHOLD", "5"))
CIRCUIT_RESET_SECONDS = float(os.getenv("CIRCUIT_RESET_SECONDS", "60"))

# Empty means the in-process cache is used.
REDIS_URL = os.getenv("REDIS_URL", "")

YTDLP_BINARY = os.getenv("YTDLP_BINARY", "yt-dlp")
# The local tool negotiates formats itself, so it gets a longer bounded window.
YTDLP_TIMEOUT_SECONDS = min(60.0, max(30.0, float(os.getenv("YTDLP_TIMEOUT_SECONDS", "30"))))
YTDLP_MAX_OUTPUT_BYTES = int(os.getenv("YTDLP_MAX_OUTPUT_BYTES", str(10 * 1024 * 1024)))
YTDLP_COOKIES_PATH = Path(os.getenv("YTDLP_COOKIES_PATH", DATA_DIR / "cookies.txt"))
YTDLP_COOKIES_B64 = os.getenv("YTDLP_COOKIES_B64", "")
YTDLP_TRENDING_PLAYLIST_URL = os.getenv(
    "YTDLP_TRENDING_PLAYLIST_URL",
    "https://music.youtube.com/playlist?list=VLPLMC9KNkIncKtPzC09knCwMPzcRI7IL8",
)
YTDLP_SEARCH_LIMIT = 20
TRENDING_LIMIT = 20

# Cache lifetimes in seconds.
SEARCH_TTL_SECONDS = 6 * 60 * 60
STREAM_TTL_SECONDS = 30 * 60
METADATA_TTL_SECONDS = 24 * 60 * 60
TRENDING_TTL_SECONDS = 60 * 60
SUGGESTIONS_TTL_SECONDS = 60 * 60
