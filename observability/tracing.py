"""
Summarium - Distributed Tracing with OpenTelemetry

Schedule runs, queue passes and single-summary processing are wrapped in
spans. Until ``setup_tracing`` installs an SDK provider, the global no-op
provider is used, so library code and tests never need a collector.

Usage:
    from observability.tracing import setup_tracing, create_span

    setup_tracing(TracingConfig(service_name="summarium"))

    with create_span("summary.schedule", attributes={"up_to": "2024-01-07"}) as span:
        ...
"""
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)
from opentelemetry.sdk.trace.sampling import ALWAYS_OFF, ALWAYS_ON, ParentBased, TraceIdRatioBased
from opentelemetry.trace import SpanKind, Status, StatusCode

logger = logging.getLogger("summarium.observability.tracing")

_tracer_provider: Optional[TracerProvider] = None


@dataclass
class TracingConfig:
    """Configuration for OpenTelemetry tracing."""

    service_name: str = "summarium"
    service_version: str = "0.1.0"
    otlp_endpoint: str = field(
        default_factory=lambda: os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
    )
    enabled: bool = field(
        default_factory=lambda: os.getenv("OTEL_TRACING_ENABLED", "false").lower() == "true"
    )
    sample_rate: float = field(
        default_factory=lambda: float(os.getenv("OTEL_SAMPLE_RATE", "1.0"))
    )
    environment: str = field(
        default_factory=lambda: os.getenv("ENVIRONMENT", "development")
    )
    console_export: bool = field(
        default_factory=lambda: os.getenv("OTEL_CONSOLE_EXPORT", "false").lower() == "true"
    )
    extra_attributes: Dict[str, str] = field(default_factory=dict)


def setup_tracing(config: Optional[TracingConfig] = None) -> Optional[TracerProvider]:
    """
    Install an SDK tracer provider with OTLP (and optionally console) export.

    Returns ``None`` and leaves the no-op provider in place when tracing is
    disabled.
    """
    global _tracer_provider

    if _tracer_provider is not None:
        return _tracer_provider

    config = config or TracingConfig()
    if not config.enabled:
        return None

    resource = Resource.create({
        SERVICE_NAME: config.service_name,
        SERVICE_VERSION: config.service_version,
        "deployment.environment": config.environment,
        **config.extra_attributes,
    })

    if config.sample_rate <= 0.0:
        sampler = ALWAYS_OFF
    elif config.sample_rate >= 1.0:
        sampler = ALWAYS_ON
    else:
        sampler = ParentBased(root=TraceIdRatioBased(config.sample_rate))

    provider = TracerProvider(resource=resource, sampler=sampler)
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=config.otlp_endpoint, insecure=True))
    )
    if config.console_export:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer_provider = provider
    logger.info("Tracing enabled, exporting to %s", config.otlp_endpoint)
    return provider


def get_tracer(name: str) -> trace.Tracer:
    """Tracer from the global provider (no-op until tracing is set up)."""
    return trace.get_tracer(name)


def shutdown_tracing() -> None:
    """Flush pending spans. Call during application shutdown."""
    global _tracer_provider
    if _tracer_provider is not None:
        _tracer_provider.shutdown()
    _tracer_provider = None


@contextmanager
def create_span(
    name: str,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: Optional[Dict[str, Any]] = None,
    tracer_name: str = "summarium",
) -> Iterator[trace.Span]:
    """
    Context manager for creating spans with automatic error recording.

    Example:
        >>> with create_span("summary.process", attributes={"summary.id": sid}) as span:
        ...     result = await process(sid)
        ...     span.set_attribute("summary.status", result.value.status)
    """
    tracer = get_tracer(tracer_name)
    with tracer.start_as_current_span(name, kind=kind) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise
