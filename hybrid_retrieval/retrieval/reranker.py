"""
Semantic reranker for fused candidates.

Recomputes cosine similarity between the original query embedding and each
fused candidate's document embedding, then blends it with the fusion score:

    final = weight * rerank + (1 - weight) * fused

Candidates without a usable embedding keep their fused score as final score
instead of being dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np

from hybrid_retrieval.exceptions import RerankUnavailableError
from hybrid_retrieval.observability.metrics import track_rerank_fallback
from hybrid_retrieval.retrieval.corpus import CorpusSnapshot
from hybrid_retrieval.retrieval.dense import DenseScorer, as_vector
from hybrid_retrieval.retrieval.fusion import FusedResult, StrategyContribution

logger = logging.getLogger(__name__)


@dataclass
class RankedResult:
    """Final ranked search result."""
    fused: FusedResult
    final_score: float
    rerank_score: float | None = None
    original_rank: int = 0
    new_rank: int = 0

    @property
    def reranked(self) -> bool:
        """False when the final score fell back to the fusion score."""
        return self.rerank_score is not None

    @property
    def rank_change(self) -> int:
        """How much the ranking changed (positive = moved up)."""
        return self.original_rank - self.new_rank

    @property
    def doc_id(self) -> str:
        return self.fused.doc_id

    @property
    def text(self) -> str:
        return self.fused.text

    @property
    def metadata(self) -> dict[str, Any]:
        return self.fused.metadata

    @property
    def fused_score(self) -> float:
        return self.fused.fused_score

    @property
    def contributions(self) -> dict[str, StrategyContribution]:
        return self.fused.contributions

    @property
    def per_strategy_score(self) -> dict[str, float]:
        return self.fused.per_strategy_score

    @property
    def per_strategy_best_rank(self) -> dict[str, int]:
        return self.fused.per_strategy_best_rank

    @property
    def retrieved_by(self) -> frozenset[str]:
        return self.fused.retrieved_by

    def to_dict(self) -> dict[str, Any]:
        """Convert to a serializable dictionary."""
        return {
            "id": self.doc_id,
            "text": self.text,
            "metadata": self.metadata,
            "rank": self.new_rank,
            "scores": {
                "final_score": self.final_score,
                "rerank_score": self.rerank_score,
                "fused_score": self.fused_score,
                "source_scores": self.per_strategy_score,
                "ranks": self.per_strategy_best_rank,
            },
            "retrieved_by": sorted(self.retrieved_by),
        }


class SemanticReranker:
    """
    Embedding-similarity reranker.

    All candidates with an embedding are scored in one batched cosine
    computation against the original query embedding.

    Example:
        reranker = SemanticReranker(weight=0.7)
        ranked = reranker.rerank(query_embedding, fused, top_k=5, snapshot=snapshot)
    """

    def __init__(
        self,
        weight: float = 0.7,
        dense_scorer: DenseScorer | None = None,
    ):
        """
        Initialize semantic reranker.

        Args:
            weight: Share of the final score taken by the rerank similarity
            dense_scorer: Cosine scorer
        """
        if not 0.0 <= weight <= 1.0:
            raise ValueError(f"rerank weight must be in [0, 1], got {weight}")
        self.weight = weight
        self.dense_scorer = dense_scorer or DenseScorer()

    def rerank(
        self,
        query_embedding: np.ndarray | Sequence[float] | None,
        results: Sequence[FusedResult],
        top_k: int,
        snapshot: CorpusSnapshot,
        weight: float | None = None,
    ) -> list[RankedResult]:
        """
        Rerank fused candidates against the original query.

        Args:
            query_embedding: Embedding of the original query, or None if the
                provider was unavailable
            results: Fused candidates
            top_k: Number of results to return
            snapshot: Corpus view holding the document embeddings
            weight: Per-call override of the rerank weight

        Returns:
            Top-k results sorted by final score
        """
        if not results:
            return []

        weight = self.weight if weight is None else weight
        rerank_scores = self._score_candidates(query_embedding, results, snapshot)

        ranked = []
        for i, (result, similarity) in enumerate(zip(results, rerank_scores)):
            if similarity is None:
                final_score = result.fused_score
            else:
                final_score = weight * similarity + (1 - weight) * result.fused_score
            ranked.append(RankedResult(
                fused=result,
                final_score=final_score,
                rerank_score=similarity,
                original_rank=i + 1,
            ))

        return self._finalize(ranked, top_k)

    def skip(self, results: Sequence[FusedResult], top_k: int) -> list[RankedResult]:
        """Rank by fusion score alone (reranking disabled)."""
        ranked = [
            RankedResult(fused=result, final_score=result.fused_score, original_rank=i + 1)
            for i, result in enumerate(results)
        ]
        return self._finalize(ranked, top_k)

    def _score_candidates(
        self,
        query_embedding: np.ndarray | Sequence[float] | None,
        results: Sequence[FusedResult],
        snapshot: CorpusSnapshot,
    ) -> list[float | None]:
        scores: list[float | None] = [None] * len(results)

        if query_embedding is None:
            error = RerankUnavailableError()
            logger.warning(f"{error}; using fusion scores")
            track_rerank_fallback("query_embedding", len(results))
            return scores

        query = as_vector(query_embedding)
        positions = []
        rows = []
        missing = mismatched = 0
        for i, result in enumerate(results):
            embedding = snapshot.embedding_for(result.doc_id)
            if embedding is None:
                missing += 1
            elif embedding.shape[0] != query.shape[0]:
                mismatched += 1
            else:
                positions.append(i)
                rows.append(embedding)

        if missing:
            logger.debug(f"{missing} candidates have no embedding, using fusion scores")
            track_rerank_fallback("document_embedding", missing)
        if mismatched:
            logger.warning(
                f"{mismatched} candidates have an embedding dimension other than "
                f"{query.shape[0]}, using fusion scores"
            )
            track_rerank_fallback("dimension_mismatch", mismatched)

        if not rows:
            return scores

        similarities = self.dense_scorer.score_all(query, np.vstack(rows))

        for position, similarity in zip(positions, similarities):
            scores[position] = float(similarity)
        return scores

    @staticmethod
    def _finalize(ranked: list[RankedResult], top_k: int) -> list[RankedResult]:
        ranked.sort(key=lambda r: (-r.final_score, r.doc_id))
        ranked = ranked[:top_k]
        for i, r in enumerate(ranked):
            r.new_rank = i + 1
        return ranked


__all__ = [
    "RankedResult",
    "SemanticReranker",
]
