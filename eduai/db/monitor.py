from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from eduai.metrics.prometheus import record_db_query


logger = logging.getLogger(__name__)

SLOW_QUERY_THRESHOLD_MS = 1000.0
SLOW_QUERY_SAMPLES = 10


@dataclass(frozen=True)
class SlowQuery:
    query: str
    duration_ms: float
    timestamp: datetime


@dataclass
class _QueryStats:
    total_time_ms: float = 0.0
    count: int = 0
    slow_queries: deque[SlowQuery] = field(
        default_factory=lambda: deque(maxlen=SLOW_QUERY_SAMPLES)
    )


class QueryPerformanceMonitor:
    """Per-query-name timing totals plus a short ring of slow samples.

    Metrics live for the lifetime of the instance; the application holds one
    instance per process (see :mod:`eduai.db.session`).
    """

    def __init__(
        self,
        *,
        slow_threshold_ms: float = SLOW_QUERY_THRESHOLD_MS,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._slow_threshold_ms = float(slow_threshold_ms)
        self._clock = clock
        self._metrics: dict[str, _QueryStats] = {}
        self._lock = threading.Lock()

    @property
    def slow_threshold_ms(self) -> float:
        return self._slow_threshold_ms

    def start_timer(self, query_name: str, query: str) -> Callable[[], float]:
        start = self._clock()

        def end() -> float:
            duration_ms = (self._clock() - start) * 1000.0
            self._record(query_name, query, duration_ms)
            return duration_ms

        return end

    def _record(self, query_name: str, query: str, duration_ms: float) -> None:
        slow = duration_ms > self._slow_threshold_ms
        with self._lock:
            stats = self._metrics.setdefault(query_name, _QueryStats())
            stats.total_time_ms += duration_ms
            stats.count += 1
            if slow:
                stats.slow_queries.append(
                    SlowQuery(query=query, duration_ms=duration_ms, timestamp=datetime.now(UTC))
                )

        if slow:
            logger.warning("Slow query detected: %s took %.2fms", query_name, duration_ms)
            logger.warning("Query: %s", " ".join(query.split()))

        record_db_query(query_name=query_name, duration_ms=duration_ms, slow=slow)

    def get_metrics(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {
                name: {
                    "average_time_ms": stats.total_time_ms / stats.count,
                    "total_time_ms": stats.total_time_ms,
                    "count": stats.count,
                    "slow_queries_count": len(stats.slow_queries),
                }
                for name, stats in self._metrics.items()
            }

    def get_slow_queries(self) -> list[dict[str, object]]:
        with self._lock:
            samples = [
                (name, sq) for name, stats in self._metrics.items() for sq in stats.slow_queries
            ]
        samples.sort(key=lambda pair: pair[1].duration_ms, reverse=True)
        return [
            {
                "query_name": name,
                "query": sq.query,
                "duration_ms": sq.duration_ms,
                "timestamp": sq.timestamp.isoformat(),
            }
            for name, sq in samples
        ]

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()
