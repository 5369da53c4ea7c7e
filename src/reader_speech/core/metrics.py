"""
Prometheus Metrics for reader-speech.

Metrics Exposed:
    reader_cache_lookups_total          - Cache lookups by cache and result (hit/miss)
    reader_cache_evictions_total        - Entries evicted to make room, by cache
    reader_prefetch_fetches_total       - Prefetch outcomes by status (ok/failed/skipped)
    reader_prefetch_inflight            - Keys currently being prefetched
    reader_playback_sessions_total      - Finished playback sessions by outcome
    reader_word_boundaries_dropped_total - Engine word boundaries past the token list

Usage:
    from reader_speech.core.metrics import metrics

    metrics.record_cache_lookup("chunks", hit=True)
    metrics.record_prefetch("failed")
    content, content_type = metrics.get_metrics_response()

Each ReaderMetrics owns a private CollectorRegistry, so several instances
(one per test, for instance) never collide on metric names.
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)


class ReaderMetrics:
    """
    Metric collection for the cache and playback subsystems.

    Attributes:
        registry: The CollectorRegistry holding this instance's metrics.
    """

    def __init__(self) -> None:
        self.registry = CollectorRegistry()

        self._cache_lookups = Counter(
            "reader_cache_lookups_total",
            "Cache lookups",
            ["cache", "result"],
            registry=self.registry,
        )
        self._cache_evictions = Counter(
            "reader_cache_evictions_total",
            "Cache entries evicted to make room",
            ["cache"],
            registry=self.registry,
        )
        self._prefetch = Counter(
            "reader_prefetch_fetches_total",
            "Prefetch outcomes per chunk",
            ["status"],
            registry=self.registry,
        )
        self._inflight = Gauge(
            "reader_prefetch_inflight",
            "Chunks currently being prefetched",
            registry=self.registry,
        )
        self._sessions = Counter(
            "reader_playback_sessions_total",
            "Finished playback sessions",
            ["outcome"],
            registry=self.registry,
        )
        self._dropped_boundaries = Counter(
            "reader_word_boundaries_dropped_total",
            "Engine word boundaries beyond the tokenized word list",
            registry=self.registry,
        )

    def record_cache_lookup(self, cache: str, hit: bool) -> None:
        self._cache_lookups.labels(cache=cache, result="hit" if hit else "miss").inc()

    def record_eviction(self, cache: str) -> None:
        self._cache_evictions.labels(cache=cache).inc()

    def record_prefetch(self, status: str) -> None:
        """status is one of "ok", "failed", "skipped"."""
        self._prefetch.labels(status=status).inc()

    def set_inflight(self, count: int) -> None:
        self._inflight.set(count)

    def record_session(self, outcome: str) -> None:
        self._sessions.labels(outcome=outcome).inc()

    def inc_dropped_boundaries(self) -> None:
        self._dropped_boundaries.inc()

    def sample(self, name: str, labels: dict | None = None) -> float:
        """
        Current value of a sample, 0.0 if it was never recorded.

        Args:
            name: Sample name, e.g. "reader_cache_lookups_total".
            labels: Label values identifying the series.
        """
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0

    def get_metrics_response(self) -> tuple[bytes, str]:
        """Metrics in the Prometheus text format, with its content type."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST


# Process-wide collector: from reader_speech.core.metrics import metrics
metrics = ReaderMetrics()
