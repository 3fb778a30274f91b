"""
call-ai - Observability

Structured logging, Prometheus metrics and OpenTelemetry tracing.
"""

from .logging import (
    JSONFormatter,
    LogContext,
    StructuredLogger,
    get_logger,
    setup_logging,
)
from .metrics import StreamMetrics, get_metrics, setup_metrics
from .tracing import ModelCallSpan, get_tracer, setup_tracing

__all__ = [
    "JSONFormatter",
    "LogContext",
    "StructuredLogger",
    "get_logger",
    "setup_logging",
    "StreamMetrics",
    "get_metrics",
    "setup_metrics",
    "ModelCallSpan",
    "get_tracer",
    "setup_tracing",
]
