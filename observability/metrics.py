"""
Summarium - OpenTelemetry Metrics

Key Metrics:
- summarium_summaries_scheduled_total: summaries created by the scheduler, by tier
- summarium_summaries_processed_total: processing attempts, by tier and outcome
- summarium_pass_duration_seconds: duration of schedule runs and queue passes
- summarium_passes_skipped_total: queue passes skipped by the single-flight guard

Instruments are created from the global meter, which is a no-op proxy until
``setup_metrics`` installs an SDK provider.

Usage:
    from observability.metrics import record_scheduled, timed_pass

    with timed_pass("queue"):
        ...
    record_scheduled("WEEKLY", 1)
"""
from __future__ import annotations

import os
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

from opentelemetry import metrics
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.metrics import Meter
from opentelemetry.sdk.metrics import MeterProvider as SDKMeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource

_meter_provider: Optional[SDKMeterProvider] = None
_summary_metrics: Optional["SummaryMetrics"] = None


@dataclass
class MetricsConfig:
    """Configuration for OpenTelemetry metrics."""

    service_name: str = "summarium"
    service_version: str = "0.1.0"
    otlp_endpoint: str = field(
        default_factory=lambda: os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
    )
    enabled: bool = field(
        default_factory=lambda: os.getenv("OTEL_METRICS_ENABLED", "false").lower() == "true"
    )
    environment: str = field(
        default_factory=lambda: os.getenv("ENVIRONMENT", "development")
    )
    console_export: bool = field(
        default_factory=lambda: os.getenv("OTEL_CONSOLE_EXPORT", "false").lower() == "true"
    )
    export_interval_millis: int = 60000


class SummaryMetrics:
    """Instruments for the summary engine."""

    def __init__(self, meter: Meter):
        self.meter = meter

        self.scheduled = meter.create_counter(
            name="summarium_summaries_scheduled_total",
            description="Summaries created by the scheduler",
            unit="1",
        )
        self.processed = meter.create_counter(
            name="summarium_summaries_processed_total",
            description="Summary processing attempts by outcome",
            unit="1",
        )
        self.pass_duration = meter.create_histogram(
            name="summarium_pass_duration_seconds",
            description="Duration of schedule runs and queue passes",
            unit="s",
        )
        self.passes_skipped = meter.create_counter(
            name="summarium_passes_skipped_total",
            description="Queue passes skipped because another pass was running",
            unit="1",
        )


def setup_metrics(config: Optional[MetricsConfig] = None) -> Optional[SDKMeterProvider]:
    """Install an SDK meter provider. Returns ``None`` when metrics are disabled."""
    global _meter_provider, _summary_metrics

    if _meter_provider is not None:
        return _meter_provider

    config = config or MetricsConfig()
    if not config.enabled:
        return None

    resource = Resource.create({
        SERVICE_NAME: config.service_name,
        SERVICE_VERSION: config.service_version,
        "deployment.environment": config.environment,
    })

    readers = [
        PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=config.otlp_endpoint, insecure=True),
            export_interval_millis=config.export_interval_millis,
        )
    ]
    if config.console_export:
        readers.append(
            PeriodicExportingMetricReader(
                ConsoleMetricExporter(),
                export_interval_millis=config.export_interval_millis,
            )
        )

    _meter_provider = SDKMeterProvider(resource=resource, metric_readers=readers)
    metrics.set_meter_provider(_meter_provider)
    _summary_metrics = None
    return _meter_provider


def get_summary_metrics() -> SummaryMetrics:
    global _summary_metrics
    if _summary_metrics is None:
        _summary_metrics = SummaryMetrics(metrics.get_meter("summarium"))
    return _summary_metrics


def shutdown_metrics() -> None:
    global _meter_provider, _summary_metrics
    if _meter_provider is not None:
        _meter_provider.shutdown()
    _meter_provider = None
    _summary_metrics = None


def record_scheduled(tier: str, count: int) -> None:
    if count > 0:
        get_summary_metrics().scheduled.add(count, {"tier": tier})


def record_processed(tier: str, outcome: str) -> None:
    get_summary_metrics().processed.add(1, {"tier": tier, "outcome": outcome})


def record_pass_skipped() -> None:
    get_summary_metrics().passes_skipped.add(1)


@contextmanager
def timed_pass(kind: str) -> Iterator[Dict[str, str]]:
    """
    Time a schedule run or queue pass.

    Example:
        >>> with timed_pass("queue") as ctx:
        ...     report = await drain()
        ...     ctx["status"] = "ok"
    """
    context = {"status": "ok"}
    start = time.perf_counter()
    try:
        yield context
    except Exception:
        context["status"] = "error"
        raise
    finally:
        get_summary_metrics().pass_duration.record(
            time.perf_counter() - start, {"kind": kind, "status": context["status"]}
        )
