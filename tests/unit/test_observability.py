"""
Tests for observability components.
"""

import logging

from unittest.mock import patch

from hybrid_retrieval.observability.logging import configure_logging
from hybrid_retrieval.observability.metrics import (
    stage_span,
    track_query,
    track_rerank_fallback,
    track_retrieval,
    track_strategy_run,
)


class TestMetrics:
    """Tests for metrics collection."""

    @patch("hybrid_retrieval.observability.metrics.RETRIEVAL_QUERY_TOTAL")
    def test_track_query(self, mock_counter):
        """Test tracking search queries."""
        track_query("success")

        mock_counter.labels.assert_called_with(status="success")
        mock_counter.labels.return_value.inc.assert_called()

    @patch("hybrid_retrieval.observability.metrics.RETRIEVAL_STRATEGY_RUNS")
    def test_track_strategy_run(self, mock_counter):
        track_strategy_run("hybrid-0.3", "failed")

        mock_counter.labels.assert_called_with(strategy="hybrid-0.3", status="failed")

    @patch("hybrid_retrieval.observability.metrics.RETRIEVAL_RESULT_COUNT")
    def test_track_retrieval(self, mock_hist):
        """Test tracking retrieval."""
        track_retrieval("fused", 10)

        mock_hist.labels.assert_called_with(stage="fused")
        mock_hist.labels.return_value.observe.assert_called_with(10)

    @patch("hybrid_retrieval.observability.metrics.RETRIEVAL_RERANK_FALLBACK")
    def test_track_rerank_fallback_ignores_zero(self, mock_counter):
        track_rerank_fallback("document_embedding", 0)
        track_rerank_fallback("query_embedding", 3)

        mock_counter.labels.assert_called_once_with(reason="query_embedding")
        mock_counter.labels.return_value.inc.assert_called_once_with(3)

    def test_stage_span(self):
        with stage_span("fusion", candidates=5) as span:
            assert span is not None


def test_configure_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level

    try:
        configure_logging(level="debug", log_format="json")

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
    finally:
        root.handlers = handlers
        root.setLevel(level)
