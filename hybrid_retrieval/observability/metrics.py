"""
Metrics and Observability.

Provides:
- Prometheus metrics for the retrieval pipeline
- OpenTelemetry tracing setup
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Counter, Histogram

from hybrid_retrieval.config import get_monitoring_settings

logger = logging.getLogger(__name__)

# =============================================================================
# Prometheus Metrics
# =============================================================================

RETRIEVAL_QUERY_TOTAL = Counter(
    "retrieval_query_total",
    "Total search queries processed",
    ["status"],
)

RETRIEVAL_STAGE_DURATION = Histogram(
    "retrieval_stage_duration_seconds",
    "Duration of each search stage",
    ["stage"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

RETRIEVAL_STRATEGY_RUNS = Counter(
    "retrieval_strategy_runs_total",
    "Strategy runs executed during fan-out",
    ["strategy", "status"],
)

RETRIEVAL_RESULT_COUNT = Histogram(
    "retrieval_result_count",
    "Number of documents produced per stage",
    ["stage"],
    buckets=[0, 1, 5, 10, 20, 50, 100, 500],
)

RETRIEVAL_RERANK_FALLBACK = Counter(
    "retrieval_rerank_fallback_total",
    "Candidates scored by fusion only because reranking was unavailable",
    ["reason"],
)


def _metrics_enabled() -> bool:
    return get_monitoring_settings().enable_metrics


# =============================================================================
# Tracing Setup
# =============================================================================

def setup_telemetry(service_name: str | None = None) -> None:
    """
    Configure OpenTelemetry tracing.

    Args:
        service_name: Name of the service (default from settings)
    """
    settings = get_monitoring_settings()

    if not settings.enable_tracing:
        return

    service_name = service_name or settings.service_name
    resource = Resource.create({
        "service.name": service_name,
        "service.version": "0.1.0",
    })

    tracer_provider = TracerProvider(resource=resource)

    # OTLP Exporter (sends to Jaeger/Tempo)
    otlp_exporter = OTLPSpanExporter(
        endpoint=settings.otlp_endpoint,
        insecure=True,
    )

    tracer_provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
    trace.set_tracer_provider(tracer_provider)

    logger.info(f"OpenTelemetry tracing enabled for {service_name}")


# =============================================================================
# Helper Functions
# =============================================================================

def track_query(status: str) -> None:
    """Track a completed search query."""
    if _metrics_enabled():
        RETRIEVAL_QUERY_TOTAL.labels(status=status).inc()


def track_strategy_run(strategy: str, status: str) -> None:
    """Track one fan-out run."""
    if _metrics_enabled():
        RETRIEVAL_STRATEGY_RUNS.labels(strategy=strategy, status=status).inc()


def track_stage(stage: str, seconds: float) -> None:
    """Track how long a pipeline stage took."""
    if _metrics_enabled():
        RETRIEVAL_STAGE_DURATION.labels(stage=stage).observe(seconds)


def track_retrieval(stage: str, count: int) -> None:
    """Track result counts."""
    if _metrics_enabled():
        RETRIEVAL_RESULT_COUNT.labels(stage=stage).observe(count)


def track_rerank_fallback(reason: str, count: int = 1) -> None:
    """Track candidates that fell back to fusion-only scoring."""
    if _metrics_enabled() and count > 0:
        RETRIEVAL_RERANK_FALLBACK.labels(reason=reason).inc(count)


@contextmanager
def stage_span(name: str, **attributes) -> Iterator[trace.Span]:
    """Open a tracing span for a pipeline stage."""
    tracer = trace.get_tracer("hybrid_retrieval")
    with tracer.start_as_current_span(name) as span:
        for key, value in attributes.items():
            span.set_attribute(key, value)
        yield span


__all__ = [
    "setup_telemetry",
    "stage_span",
    "track_query",
    "track_strategy_run",
    "track_stage",
    "track_retrieval",
    "track_rerank_fallback",
    "RETRIEVAL_QUERY_TOTAL",
    "RETRIEVAL_STAGE_DURATION",
]
