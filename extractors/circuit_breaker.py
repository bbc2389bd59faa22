import logging
import threading
import time
from typing import Callable

from config.settings import CIRCUIT_FAILURE_THRESHOLD, CIRCUIT_RESET_SECONDS

logger = logging.getLogger(__name__)


class UpstreamSource:
    """Health record and circuit breaker for one upstream.

    The circuit opens after ``failure_threshold`` recorded failures and is
    closed again lazily: the first ``is_open`` check made ``reset_seconds``
    after the last failure clears the state and lets the source be tried.
    Requests run on worker threads, so every read-check-mutate sequence
    holds the per-source lock.
    """

    def __init__(
        self,
        name: str,
        *,
        failure_threshold: int = CIRCUIT_FAILURE_THRESHOLD,
        reset_seconds: float = CIRCUIT_RESET_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = max(1, int(failure_threshold))
        self.reset_seconds = max(0.0, float(reset_seconds))
        self._clock = clock
        self._lock = threading.Lock()
        self.failure_count = 0
        self.circuit_open = False
        self.last_failure_at: float | None = None

    def is_open(self) -> bool:
        with self._lock:
            if not self.circuit_open:
                return False
            elapsed = self._clock() - (self.last_failure_at or 0.0)
            if elapsed >= self.reset_seconds:
                self.circuit_open = False
                self.failure_count = 0
                logger.info(f"[CIRCUIT] source={self.name} cooldown expired after {elapsed:.0f}s, allowing retry")
                return False
            return True

    def record_failure(self) -> None:
        with self._lock:
            self.failure_count += 1
            self.last_failure_at = self._clock()
            if self.failure_count >= self.failure_threshold and not self.circuit_open:
                self.circuit_open = True
                logger.warning(f"[CIRCUIT] source={self.name} opened after {self.failure_count} failures")

    def record_success(self) -> None:
        with self._lock:
            if self.circuit_open or self.failure_count:
                logger.info(f"[CIRCUIT] source={self.name} recovered")
            self.failure_count = 0
            self.circuit_open = False

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "name": self.name,
                "isOpen": self.circuit_open,
                "failureCount": self.failure_count,
            }

    def __repr__(self) -> str:
        return f"UpstreamSource(name={self.name!r}, failure_count={self.failure_count}, open={self.circuit_open})"
