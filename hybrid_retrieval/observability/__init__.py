"""
Observability Package.

Provides:
- Prometheus metrics
- OpenTelemetry tracing
- Logging configuration
"""

from hybrid_retrieval.observability.logging import configure_logging, get_logger
from hybrid_retrieval.observability.metrics import (
    setup_telemetry,
    stage_span,
    track_query,
    track_rerank_fallback,
    track_retrieval,
    track_stage,
    track_strategy_run,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "setup_telemetry",
    "stage_span",
    "track_query",
    "track_rerank_fallback",
    "track_retrieval",
    "track_stage",
    "track_strategy_run",
]
