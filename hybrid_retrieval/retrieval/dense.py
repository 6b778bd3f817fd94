"""
Dense (cosine similarity) scoring.

All documents are scored against a query in one vectorized operation: the
query is normalized once, every document row is normalized in one pass, and a
single matrix-vector product yields the similarities.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

import numpy as np

from hybrid_retrieval.exceptions import InvalidDimensionError

if TYPE_CHECKING:
    from hybrid_retrieval.retrieval.corpus import CorpusSnapshot

logger = logging.getLogger(__name__)


def as_vector(embedding: Sequence[float] | np.ndarray) -> np.ndarray:
    """Convert an embedding to a 1-D float64 array."""
    vector = np.asarray(embedding, dtype=np.float64)
    if vector.ndim != 1:
        raise ValueError(f"Embedding must be 1-dimensional, got shape {vector.shape}")
    return vector


def as_matrix(embeddings: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    """
    Stack embeddings into an (n, D) float64 matrix.

    Raises:
        InvalidDimensionError: If the rows do not share one dimension
    """
    if isinstance(embeddings, np.ndarray):
        if embeddings.ndim != 2:
            raise ValueError(f"Embedding matrix must be 2-dimensional, got shape {embeddings.shape}")
        return embeddings.astype(np.float64, copy=False)

    if len(embeddings) == 0:
        return np.empty((0, 0), dtype=np.float64)

    dimension = len(embeddings[0])
    for row, embedding in enumerate(embeddings):
        if len(embedding) != dimension:
            raise InvalidDimensionError(dimension, len(embedding), doc_id=f"row {row}")
    return np.asarray(embeddings, dtype=np.float64).reshape(len(embeddings), dimension)


class DenseScorer:
    """
    Batched cosine similarity scorer.

    Zero-magnitude vectors score exactly 0.0 instead of NaN, and results are
    clipped to [-1, 1] to absorb floating point overshoot.

    Example:
        scorer = DenseScorer()
        sims = scorer.score_all(query_vec, [doc_vec_1, doc_vec_2])
    """

    def score_all(
        self,
        query_embedding: Sequence[float] | np.ndarray,
        document_embeddings: Sequence[Sequence[float]] | np.ndarray,
    ) -> np.ndarray:
        """
        Score every document embedding against the query.

        Args:
            query_embedding: Query vector of dimension D
            document_embeddings: n vectors of dimension D

        Returns:
            Array of n similarities in input order

        Raises:
            InvalidDimensionError: If the query and documents differ in dimension
        """
        query = as_vector(query_embedding)
        matrix = as_matrix(document_embeddings)

        if matrix.shape[0] == 0:
            return np.empty(0, dtype=np.float64)

        if matrix.shape[1] != query.shape[0]:
            raise InvalidDimensionError(matrix.shape[1], query.shape[0])

        query_norm = np.linalg.norm(query)
        if query_norm == 0.0:
            return np.zeros(matrix.shape[0], dtype=np.float64)

        row_norms = np.linalg.norm(matrix, axis=1)
        zero_rows = row_norms == 0.0
        safe_norms = np.where(zero_rows, 1.0, row_norms)

        normalized = matrix / safe_norms[:, np.newaxis]
        similarities = normalized @ (query / query_norm)
        similarities[zero_rows] = 0.0

        return np.clip(similarities, -1.0, 1.0)

    def score_snapshot(
        self,
        query_embedding: Sequence[float] | np.ndarray,
        snapshot: CorpusSnapshot,
    ) -> np.ndarray:
        """
        Score a corpus snapshot.

        Only documents whose embedding has the query's dimension are scored.

        Returns:
            Array aligned with ``snapshot.documents``; NaN marks documents
            excluded from dense scoring (missing or mismatched embedding).

        Raises:
            InvalidDimensionError: If no document shares the query's dimension
        """
        query = as_vector(query_embedding)
        scores = np.full(len(snapshot), np.nan, dtype=np.float64)
        if not snapshot.dense_groups:
            return scores

        group = snapshot.dense_group(query.shape[0])
        if group is None:
            raise InvalidDimensionError(snapshot.dimension, query.shape[0])

        matrix, positions = group
        skipped = snapshot.embedded_count - len(positions)
        if skipped:
            logger.debug(f"Skipping {skipped} documents whose embedding dimension is not {query.shape[0]}")

        scores[positions] = self.score_all(query, matrix)
        return scores


_default_scorer = DenseScorer()


def cosine_similarity(
    a: Sequence[float] | np.ndarray,
    b: Sequence[float] | np.ndarray,
) -> float:
    """Cosine similarity of two vectors (0.0 if either has zero magnitude)."""
    return float(_default_scorer.score_all(a, [as_vector(b)])[0])


__all__ = [
    "DenseScorer",
    "as_matrix",
    "as_vector",
    "cosine_similarity",
]
