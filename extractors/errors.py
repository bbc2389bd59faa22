"""Error types raised by upstream adapters, the local fallback and the orchestrator."""

from __future__ import annotations


class ExtractorError(RuntimeError):
    pass


class AdapterError(ExtractorError):
    """One upstream call failed (transport, timeout, status or payload)."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class UnsupportedOperation(AdapterError):
    """The upstream has no endpoint for the requested operation."""


class FallbackError(ExtractorError):
    """The local yt-dlp invocation failed or produced unusable output."""


class ExtractionFailedError(ExtractorError):
    """Every upstream and the local fallback failed for a critical operation."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"All extractors (including yt-dlp) failed for {operation}")
        self.operation = operation
