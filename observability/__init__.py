"""
Summarium - Observability Package

Tracing, metrics and structured logging for the summary engine.

Components:
- tracing: OpenTelemetry spans around schedule runs and queue passes
- metrics: counters and histograms for scheduling and processing
- logging: structlog with trace context propagation

Usage:
    from observability import setup_observability

    setup_observability(service_name="summarium")
"""
from typing import Optional

from observability.logging import LoggingConfig, get_logger, setup_logging, shutdown_logging
from observability.metrics import MetricsConfig, setup_metrics, shutdown_metrics
from observability.tracing import TracingConfig, create_span, get_tracer, setup_tracing, shutdown_tracing


def setup_observability(
    service_name: str = "summarium",
    logging_config: Optional[LoggingConfig] = None,
) -> None:
    """Initialize logging, tracing and metrics in one call."""
    setup_logging(logging_config or LoggingConfig(service_name=service_name))
    setup_tracing(TracingConfig(service_name=service_name))
    setup_metrics(MetricsConfig(service_name=service_name))


def shutdown_observability() -> None:
    shutdown_tracing()
    shutdown_metrics()
    shutdown_logging()


__all__ = [
    "LoggingConfig",
    "MetricsConfig",
    "TracingConfig",
    "create_span",
    "get_logger",
    "get_tracer",
    "setup_logging",
    "setup_metrics",
    "setup_tracing",
    "setup_observability",
    "shutdown_observability",
]
