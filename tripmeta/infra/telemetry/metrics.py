"""
Metrics Collector — Prometheus + Internal Metrics
===================================================

Metrics registry for the orchestrator.
Provides typed metric primitives (counters, gauges, histograms)
with Prometheus exposition, plus in-process latency percentiles.

Design:
  - One CollectorRegistry per collector, so several orchestrators
    (e.g. one per test) can coexist in a process without name clashes
  - Pre-defined metrics for dispatch, admission, rate limiting, lifecycle
    and event delivery
  - Latency percentile tracking (p50, p95, p99) per service kind

Metric Naming Convention:
  - tripmeta_{component}_{metric}_{unit}
  - e.g., tripmeta_dispatch_latency_seconds
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

# ── Percentile Tracker ─────────────────────────────────────────────

class PercentileTracker:
    """Thread-safe rolling window percentile calculator with cached sorting."""

    __slots__ = ("_lock", "_sorted_cache", "_sorted_dirty", "_values")

    def __init__(self, window_size: int = 1000):
        self._values: deque[float] = deque(maxlen=window_size)
        self._lock = threading.Lock()
        self._sorted_dirty = True
        self._sorted_cache: list[float] = []

    def record(self, value: float) -> None:
        with self._lock:
            self._values.append(value)
            self._sorted_dirty = True

    def percentile(self, p: float) -> float:
        """Get percentile value (0-100). Only re-sorts when data changed."""
        with self._lock:
            if not self._values:
                return 0.0
            if self._sorted_dirty:
                self._sorted_cache = sorted(self._values)
                self._sorted_dirty = False
            idx = int(len(self._sorted_cache) * p / 100)
            return self._sorted_cache[min(idx, len(self._sorted_cache) - 1)]

    @property
    def p50(self) -> float:
        return self.percentile(50)

    @property
    def p95(self) -> float:
        return self.percentile(95)

    @property
    def p99(self) -> float:
        return self.percentile(99)

    @property
    def count(self) -> int:
        return len(self._values)

    def mean(self) -> float:
        with self._lock:
            if not self._values:
                return 0.0
            return sum(self._values) / len(self._values)

# ── Metrics Collector ──────────────────────────────────────────────

class MetricsCollector:
    """
    Orchestrator metrics.

    Each instance owns its Prometheus registry; pass ``registry`` to share
    one (for example the process-wide default) instead.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._lock = threading.Lock()
        self.registry = registry if registry is not None else CollectorRegistry()
        self._latency_trackers: dict[str, PercentileTracker] = {}
        self._queue_wait = PercentileTracker()

        # ── Dispatch Metrics ──
        self.requests = Counter(
            "tripmeta_dispatch_requests_total",
            "Requests handled by the dispatcher",
            labelnames=["kind", "status"],
            registry=self.registry,
        )

        self.latency = Histogram(
            "tripmeta_dispatch_latency_seconds",
            "Backend processing latency",
            labelnames=["kind"],
            buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self.registry,
        )

        # ── Admission Metrics ──
        self.active = Gauge(
            "tripmeta_admission_active_requests",
            "Requests currently holding a concurrency slot",
            registry=self.registry,
        )

        self.queue_depth = Gauge(
            "tripmeta_admission_queue_depth",
            "Requests waiting for a concurrency slot",
            registry=self.registry,
        )

        self.queue_wait = Histogram(
            "tripmeta_admission_queue_wait_seconds",
            "Time spent waiting for admission",
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0),
            registry=self.registry,
        )

        self.queue_expired = Counter(
            "tripmeta_admission_expired_total",
            "Queued requests that expired before admission",
            registry=self.registry,
        )

        # ── Rate Limiter Metrics ──
        self.rate_limit_waits = Counter(
            "tripmeta_rate_limit_waits_total",
            "Calls delayed by a rate limiter",
            labelnames=["kind"],
            registry=self.registry,
        )

        self.rate_limit_wait_seconds = Histogram(
            "tripmeta_rate_limit_wait_seconds",
            "Delay imposed by a rate limiter",
            labelnames=["kind"],
            buckets=(0.01, 0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0),
            registry=self.registry,
        )

        # ── Lifecycle Metrics ──
        self.service_ready = Gauge(
            "tripmeta_service_ready",
            "Whether a service kind has a ready handle (1) or not (0)",
            labelnames=["kind"],
            registry=self.registry,
        )

        self.restarts = Counter(
            "tripmeta_service_restarts_total",
            "Service restarts",
            labelnames=["kind"],
            registry=self.registry,
        )

        # ── Event Metrics ──
        self.subscriber_failures = Counter(
            "tripmeta_event_subscriber_failures_total",
            "Event subscribers that raised while handling an event",
            labelnames=["event"],
            registry=self.registry,
        )

    # ── Recording Methods ──────────────────────────────────────────

    def record_request(self, *, kind: str, status: str, latency_s: float) -> None:
        """Record a completed (or failed) dispatch."""
        self._get_latency_tracker(kind).record(latency_s)
        self.requests.labels(kind=kind, status=status).inc()
        self.latency.labels(kind=kind).observe(latency_s)

    def record_admission(self, *, active: int, queued: int) -> None:
        self.active.set(active)
        self.queue_depth.set(queued)

    def record_queue_wait(self, wait_s: float) -> None:
        self._queue_wait.record(wait_s)
        self.queue_wait.observe(wait_s)

    def record_queue_expired(self) -> None:
        self.queue_expired.inc()

    def record_rate_limit_wait(self, *, kind: str, wait_s: float) -> None:
        self.rate_limit_waits.labels(kind=kind).inc()
        self.rate_limit_wait_seconds.labels(kind=kind).observe(wait_s)

    def record_service_ready(self, *, kind: str, ready: bool) -> None:
        self.service_ready.labels(kind=kind).set(1 if ready else 0)

    def record_restart(self, *, kind: str) -> None:
        self.restarts.labels(kind=kind).inc()

    def record_subscriber_failure(self, *, event: str) -> None:
        self.subscriber_failures.labels(event=event).inc()

    # ── Percentile Access ──────────────────────────────────────────

    def _get_latency_tracker(self, kind: str) -> PercentileTracker:
        if kind not in self._latency_trackers:
            with self._lock:
                if kind not in self._latency_trackers:
                    self._latency_trackers[kind] = PercentileTracker()
        return self._latency_trackers[kind]

    def get_latency_percentiles(self, kind: str) -> dict[str, float]:
        tracker = self._get_latency_tracker(kind)
        return {
            "p50": tracker.p50,
            "p95": tracker.p95,
            "p99": tracker.p99,
            "mean": tracker.mean(),
            "count": tracker.count,
        }

    def get_summary(self) -> dict[str, Any]:
        """Get a metrics summary for the stats endpoint."""
        return {
            "queue_wait": {
                "p50": self._queue_wait.p50,
                "p95": self._queue_wait.p95,
                "count": self._queue_wait.count,
            },
            "kinds": {
                kind: self.get_latency_percentiles(kind)
                for kind in list(self._latency_trackers)
            },
        }

    def export_prometheus(self) -> bytes:
        """Export metrics in Prometheus text format."""
        return generate_latest(self.registry)
