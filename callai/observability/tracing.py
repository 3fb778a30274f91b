"""
call-ai - OpenTelemetry Tracing

One client span per model call.

Without ``setup_tracing`` the global OpenTelemetry provider is used, which is
a no-op unless the host application configured one.

Usage:
    from callai.observability.tracing import setup_tracing

    setup_tracing(console_export=True)
"""

import os
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor, SpanExporter
from opentelemetry.trace import SpanKind, Status, StatusCode

TRACER_NAME = "callai"

_provider: Optional[TracerProvider] = None


def setup_tracing(
    service_name: str = "callai",
    service_version: str = "0.1.0",
    console_export: bool = False,
    exporter: Optional[SpanExporter] = None,
    set_global: bool = True,
) -> TracerProvider:
    """
    Create a tracer provider for call spans.

    Args:
        service_name: Name reported in the resource
        service_version: Version reported in the resource
        console_export: Export spans to stdout (OTEL_CONSOLE_EXPORT=true also enables it)
        exporter: Additional span exporter (e.g. an in-memory exporter in tests)
        set_global: Install as the global OpenTelemetry provider
    """
    global _provider

    if os.getenv("OTEL_CONSOLE_EXPORT", "").lower() == "true":
        console_export = True

    resource = Resource.create({
        SERVICE_NAME: service_name,
        SERVICE_VERSION: service_version,
    })
    provider = TracerProvider(resource=resource)

    if console_export:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    if exporter is not None:
        provider.add_span_processor(SimpleSpanProcessor(exporter))

    if set_global:
        trace.set_tracer_provider(provider)

    _provider = provider
    return provider


def get_tracer() -> trace.Tracer:
    if _provider is not None:
        return _provider.get_tracer(TRACER_NAME)
    return trace.get_tracer(TRACER_NAME)


class ModelCallSpan:
    """
    Client span covering one model call.

    Streaming calls outlive the function that opened them, so the span is
    started and ended explicitly instead of through a ``with`` block.
    """

    def __init__(self, model: str, strategy: str, streaming: bool, endpoint: str = ""):
        self.span = get_tracer().start_span(
            "callai.chat_completion",
            kind=SpanKind.CLIENT,
            attributes={
                "llm.model": model,
                "llm.schema_strategy": strategy,
                "llm.streaming": streaming,
                "http.url": endpoint,
            },
        )
        self._ended = False

    def set_attributes(self, attributes: Dict[str, Any]):
        for key, value in attributes.items():
            if value is not None:
                self.span.set_attribute(key, value)

    def record_exception(self, exception: BaseException):
        self.span.record_exception(exception)
        self.span.set_status(Status(StatusCode.ERROR, str(exception)))

    def end(self, error: Optional[BaseException] = None):
        """End the span once; later calls are no-ops."""
        if self._ended:
            return
        self._ended = True
        if error is not None:
            self.record_exception(error)
        else:
            self.span.set_status(Status(StatusCode.OK))
        self.span.end()

    def cancel(self):
        """End the span for a call abandoned by its consumer; status stays unset."""
        if self._ended:
            return
        self._ended = True
        self.span.set_attribute("llm.cancelled", True)
        self.span.end()
