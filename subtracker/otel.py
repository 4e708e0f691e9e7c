from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import Span

from subtracker.context import get_correlation_id
from subtracker.core.config import Settings


TRACER_NAME = "subtracker.subscription"

_provider: TracerProvider | None = None
_exporters_attached = False


def _provider_for(service_name: str, version: str = "0.1.0") -> TracerProvider:
    """Lazily create the process-wide provider; later calls return the same one."""
    global _provider
    if _provider is None:
        _provider = TracerProvider(resource=Resource.create({"service.name": service_name, "service.version": version}))
        trace.set_tracer_provider(_provider)
    return _provider


def configure_tracing(settings: Settings) -> TracerProvider | None:
    global _exporters_attached
    if not settings.otel_enabled:
        return None

    provider = _provider_for(settings.otel_service_name)
    if _exporters_attached:
        return provider

    if settings.otel_exporter_otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)))
    if settings.otel_console_exporter:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    _exporters_attached = True
    return provider


def setup_inmemory_otel(service_name: str = "subtracker-api") -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    _provider_for(service_name).add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


@contextmanager
def subscription_span(name: str, **attributes: Any) -> Iterator[Span]:
    """Start a child span carrying the request correlation id; `None` attributes are skipped."""
    with trace.get_tracer(TRACER_NAME).start_as_current_span(name) as span:
        correlation_id = attributes.pop("correlation_id", None) or get_correlation_id()
        if correlation_id:
            span.set_attribute("correlation_id", correlation_id)
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value)
        yield span


def correlation_request_hook(span: Span | None, scope: dict[str, Any]) -> None:
    if span is None or not span.is_recording():
        return
    for header, value in scope.get("headers", []):
        if header == b"x-correlation-id":
            span.set_attribute("correlation_id", value.decode("latin-1"))
            return
