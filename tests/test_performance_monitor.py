# pyright: reportMissingImports=false

from __future__ import annotations

import logging
import threading

import pytest

from eduai.db.monitor import SLOW_QUERY_SAMPLES, QueryPerformanceMonitor


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _timed(monitor: QueryPerformanceMonitor, clock: _Clock, name: str, ms: float) -> float:
    end = monitor.start_timer(name, f"SELECT /* {name} */ 1")
    clock.now += ms / 1000.0
    return end()


def test_end_returns_duration_and_aggregates_per_name() -> None:
    clock = _Clock()
    monitor = QueryPerformanceMonitor(clock=clock)

    assert _timed(monitor, clock, "users.list", 10) == pytest.approx(10)
    _ = _timed(monitor, clock, "users.list", 30)
    _ = _timed(monitor, clock, "users.count", 5)

    metrics = monitor.get_metrics()
    assert metrics["users.list"]["count"] == 2
    assert metrics["users.list"]["total_time_ms"] == pytest.approx(40)
    assert metrics["users.list"]["average_time_ms"] == pytest.approx(20)
    assert metrics["users.list"]["slow_queries_count"] == 0
    assert metrics["users.count"]["count"] == 1


def test_slow_queries_are_logged_and_sampled(caplog: pytest.LogCaptureFixture) -> None:
    clock = _Clock()
    monitor = QueryPerformanceMonitor(slow_threshold_ms=100, clock=clock)

    with caplog.at_level(logging.WARNING, logger="eduai.db.monitor"):
        _ = _timed(monitor, clock, "reports", 250)
        _ = _timed(monitor, clock, "reports", 50)
        _ = _timed(monitor, clock, "search", 400)

    assert any("Slow query detected: reports" in r.getMessage() for r in caplog.records)

    slow = monitor.get_slow_queries()
    assert [s["query_name"] for s in slow] == ["search", "reports"]
    assert slow[0]["duration_ms"] == pytest.approx(400)
    assert monitor.get_metrics()["reports"]["slow_queries_count"] == 1


def test_exactly_threshold_is_not_slow() -> None:
    clock = _Clock()
    monitor = QueryPerformanceMonitor(slow_threshold_ms=100, clock=clock)
    _ = _timed(monitor, clock, "q", 100)
    assert monitor.get_slow_queries() == []


def test_slow_samples_are_bounded() -> None:
    clock = _Clock()
    monitor = QueryPerformanceMonitor(slow_threshold_ms=1, clock=clock)
    for i in range(SLOW_QUERY_SAMPLES + 5):
        _ = _timed(monitor, clock, "q", 10 + i)

    metrics = monitor.get_metrics()["q"]
    assert metrics["count"] == SLOW_QUERY_SAMPLES + 5
    assert metrics["slow_queries_count"] == SLOW_QUERY_SAMPLES


def test_reset_clears_everything() -> None:
    clock = _Clock()
    monitor = QueryPerformanceMonitor(clock=clock)
    _ = _timed(monitor, clock, "q", 1)
    monitor.reset()
    assert monitor.get_metrics() == {}
    assert monitor.get_slow_queries() == []


def test_concurrent_recording_and_reads() -> None:
    monitor = QueryPerformanceMonitor(slow_threshold_ms=0)
    stop = threading.Event()
    errors: list[BaseException] = []

    def writer(prefix: str) -> None:
        for i in range(300):
            _ = monitor.start_timer(f"{prefix}.{i}", "SELECT 1")()
            _ = monitor.start_timer("shared", "SELECT 1")()

    def reader() -> None:
        try:
            while not stop.is_set():
                _ = monitor.get_metrics()
                _ = monitor.get_slow_queries()
        except BaseException as e:
            errors.append(e)

    watcher = threading.Thread(target=reader)
    watcher.start()
    writers = [threading.Thread(target=writer, args=(f"w{n}",)) for n in range(3)]
    for t in writers:
        t.start()
    for t in writers:
        t.join()
    stop.set()
    watcher.join()

    assert errors == []
    metrics = monitor.get_metrics()
    assert metrics["shared"]["count"] == 3 * 300
    assert len(metrics) == 3 * 300 + 1
