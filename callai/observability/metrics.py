"""
call-ai - Prometheus Metrics

Client-side metrics with the Prometheus client library.

Metrics exposed:
- callai_requests_total: Counter of calls by model, strategy, streaming and outcome
- callai_request_duration_seconds: Histogram of call latency (until finalization)
- callai_time_to_first_snapshot_seconds: Histogram of time to the first emitted snapshot
- callai_stream_events_total: Counter of classified stream events by fragment kind
- callai_finalizations_total: Counter of finalizations by normalized finish reason
- callai_stream_failures_total: Counter of stream failures by error code
- callai_model_fallbacks_total: Counter of invalid-model fallbacks
- callai_active_streams: Gauge of streams currently being consumed

Usage:
    from callai.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.record_event("content")
"""

from typing import Optional

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    CollectorRegistry,
    generate_latest,
    REGISTRY,
)


class StreamMetrics:
    """
    Metrics collector for calls and streams.

    Pass a dedicated ``CollectorRegistry`` to isolate metrics (tests do).
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.registry = registry

        self.requests_total = Counter(
            "callai_requests_total",
            "Total number of calls",
            labelnames=["model", "strategy", "streaming", "outcome"],
            registry=registry,
        )

        # AI calls typically range from 0.1s to 60s+
        self.request_duration = Histogram(
            "callai_request_duration_seconds",
            "Call duration in seconds",
            labelnames=["model", "streaming"],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 25.0, 50.0, 100.0, float("inf")),
            registry=registry,
        )

        self.time_to_first_snapshot = Histogram(
            "callai_time_to_first_snapshot_seconds",
            "Time to the first snapshot in streaming responses",
            labelnames=["model"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, float("inf")),
            registry=registry,
        )

        self.stream_events = Counter(
            "callai_stream_events_total",
            "Classified stream events",
            labelnames=["kind"],
            registry=registry,
        )

        self.finalizations = Counter(
            "callai_finalizations_total",
            "Finalized responses",
            labelnames=["finish_reason"],
            registry=registry,
        )

        self.stream_failures = Counter(
            "callai_stream_failures_total",
            "Calls that failed before finalization",
            labelnames=["code"],
            registry=registry,
        )

        self.model_fallbacks = Counter(
            "callai_model_fallbacks_total",
            "Invalid-model fallbacks",
            labelnames=["from_model", "to_model"],
            registry=registry,
        )

        self.active_streams = Gauge(
            "callai_active_streams",
            "Streams currently being consumed",
            registry=registry,
        )

    def record_request(
        self,
        model: str,
        strategy: str,
        streaming: bool,
        outcome: str,
        duration_seconds: Optional[float] = None,
    ):
        """Record a completed (or failed) call."""
        streaming_label = "true" if streaming else "false"

        self.requests_total.labels(
            model=model or "unknown",
            strategy=strategy,
            streaming=streaming_label,
            outcome=outcome,
        ).inc()

        if duration_seconds is not None:
            self.request_duration.labels(
                model=model or "unknown",
                streaming=streaming_label,
            ).observe(duration_seconds)

    def record_time_to_first_snapshot(self, model: str, seconds: float):
        self.time_to_first_snapshot.labels(model=model or "unknown").observe(seconds)

    def record_event(self, kind: str):
        self.stream_events.labels(kind=kind).inc()

    def record_finalization(self, finish_reason: str):
        self.finalizations.labels(finish_reason=finish_reason or "unknown").inc()

    def record_failure(self, code: str):
        self.stream_failures.labels(code=code).inc()

    def record_fallback(self, from_model: str, to_model: str):
        self.model_fallbacks.labels(from_model=from_model or "unknown", to_model=to_model).inc()

    def track_active_stream(self) -> "ActiveStreamTracker":
        """Context manager to track streams being consumed."""
        return ActiveStreamTracker(self)

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)


class ActiveStreamTracker:
    """Context manager for tracking active streams."""

    def __init__(self, collector: StreamMetrics):
        self.collector = collector

    def __enter__(self):
        self.collector.active_streams.inc()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.collector.active_streams.dec()


# Module-level instance
_metrics_instance: Optional[StreamMetrics] = None


def setup_metrics(registry: CollectorRegistry = REGISTRY) -> StreamMetrics:
    """
    Setup metrics collection.

    Safe to call multiple times - returns the existing instance.
    """
    global _metrics_instance
    if _metrics_instance is None:
        _metrics_instance = StreamMetrics(registry=registry)
    return _metrics_instance


def get_metrics() -> StreamMetrics:
    """Get the metrics collector, creating it on the default registry if needed."""
    if _metrics_instance is None:
        return setup_metrics()
    return _metrics_instance
