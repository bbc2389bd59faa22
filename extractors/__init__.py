from .cache import InMemoryResponseCache, RedisResponseCache, build_response_cache
from .circuit_breaker import UpstreamSource
from .errors import AdapterError, ExtractionFailedError, FallbackError, UnsupportedOperation
from .models import AudioStreamDescriptor, SearchResultItem, TrackStreamBundle
from .orchestrator import ExtractorOrchestrator, build_default_orchestrator
from .runtime import get_runtime_info
from .ytdlp import CookieFileProvider, YtDlpFallback

__all__ = [
    "AdapterError",
    "AudioStreamDescriptor",
    "CookieFileProvider",
    "ExtractionFailedError",
    "ExtractorOrchestrator",
    "FallbackError",
    "InMemoryResponseCache",
    "RedisResponseCache",
    "SearchResultItem",
    "TrackStreamBundle",
    "UnsupportedOperation",
    "UpstreamSource",
    "YtDlpFallback",
    "build_default_orchestrator",
    "build_response_cache",
    "get_runtime_info",
]
