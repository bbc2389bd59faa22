from __future__ import annotations

from extractors.circuit_breaker import UpstreamSource


def test_circuit_opens_after_threshold_failures(clock) -> None:
    source = UpstreamSource("invidious", clock=clock)

    for _ in range(4):
        source.record_failure()
        assert source.is_open() is False

    source.record_failure()
    assert source.is_open() is True
    assert source.failure_count == 5


def test_additional_failure_keeps_circuit_open(clock) -> None:
    source = UpstreamSource("piped", clock=clock)
    for _ in range(6):
        source.record_failure()

    assert source.is_open() is True
    assert source.failure_count == 6


def test_circuit_self_heals_after_reset_window(clock) -> None:
    source = UpstreamSource("invidious", clock=clock)
    for _ in range(5):
        source.record_failure()
    assert source.is_open() is True

    clock.advance(59)
    assert source.is_open() is True

    clock.advance(2)
    assert source.is_open() is False
    assert source.failure_count == 0
    assert source.circuit_open is False


def test_success_resets_failures_and_closes_circuit(clock) -> None:
    source = UpstreamSource("piped", clock=clock)
    for _ in range(7):
        source.record_failure()

    source.record_success()

    assert source.failure_count == 0
    assert source.is_open() is False


def test_threshold_and_window_are_configurable(clock) -> None:
    source = UpstreamSource("piped", failure_threshold=2, reset_seconds=5, clock=clock)
    source.record_failure()
    source.record_failure()
    assert source.is_open() is True

    clock.advance(5)
    assert source.is_open() is False


def test_snapshot_reports_wire_shape(clock) -> None:
    source = UpstreamSource("invidious", clock=clock)
    source.record_failure()

    assert source.snapshot() == {"name": "invidious", "isOpen": False, "failureCount": 1}
