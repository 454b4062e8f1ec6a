# pyright: reportMissingImports=false
# pyright: reportUnknownMemberType=false

from __future__ import annotations

from dataclasses import dataclass

from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Histogram, generate_latest


@dataclass(frozen=True)
class AIStreamMetricLabels:
    provider: str
    model: str
    request_type: str


_DB_QUERY_DURATION = Histogram(
    "eduai_db_query_duration_seconds",
    "Duration of named SQL queries in seconds.",
    labelnames=("query_name",),
)
_DB_SLOW_QUERIES = Counter(
    "eduai_db_slow_queries_total",
    "Named SQL queries slower than the slow-query threshold.",
    labelnames=("query_name",),
)

_AI_REQUESTS = Counter(
    "eduai_ai_stream_requests_total",
    "Total AI streams relayed to clients.",
    labelnames=("provider", "model", "request_type"),
)
_AI_ERRORS = Counter(
    "eduai_ai_stream_errors_total",
    "Total AI streams that ended with an error frame.",
    labelnames=("provider", "model", "request_type"),
)
_AI_LATENCY = Histogram(
    "eduai_ai_stream_latency_seconds",
    "End-to-end AI stream latency in seconds.",
    labelnames=("provider", "model", "request_type"),
)
_AI_OUT_CHUNKS = Counter(
    "eduai_ai_stream_output_chunks_total",
    "Total chunk frames emitted by AI streams.",
    labelnames=("provider", "model", "request_type"),
)


def record_db_query(*, query_name: str, duration_ms: float, slow: bool) -> None:
    _DB_QUERY_DURATION.labels(query_name).observe(max(0.0, duration_ms) / 1000.0)
    if slow:
        _DB_SLOW_QUERIES.labels(query_name).inc()


def record_ai_stream(
    *,
    labels: AIStreamMetricLabels,
    latency_ms: int,
    output_chunks: int,
    error: str | None,
) -> None:
    l = (labels.provider, labels.model, labels.request_type)

    _AI_REQUESTS.labels(*l).inc()
    if error:
        _AI_ERRORS.labels(*l).inc()
    if latency_ms >= 0:
        _AI_LATENCY.labels(*l).observe(float(latency_ms) / 1000.0)
    if output_chunks > 0:
        _AI_OUT_CHUNKS.labels(*l).inc(output_chunks)


def metrics_payload() -> tuple[bytes, str]:
    return generate_latest(REGISTRY), str(CONTENT_TYPE_LATEST)
