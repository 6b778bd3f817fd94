"""
Lexical (BM25-style) scoring.

Implements an IDF-free variant of Okapi BM25: every query term present in a
document contributes

    tf * (k1 + 1) / (tf + k1 * (1 - b + b * doc_len / avg_doc_len))

regardless of how rare the term is across the corpus. Corpus-wide scoring runs
on rank_bm25 with the IDF table pinned to 1.0, so the single-document function
and the vectorised path agree.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING, Sequence

import numpy as np
from rank_bm25 import BM25Okapi

if TYPE_CHECKING:
    from hybrid_retrieval.retrieval.corpus import CorpusSnapshot

logger = logging.getLogger(__name__)


def bm25_score(
    query_terms: Sequence[str],
    doc_terms: Sequence[str],
    avg_doc_length: float,
    k1: float = 1.5,
    b: float = 0.75,
) -> float:
    """
    Score one document against a query.

    Args:
        query_terms: Tokenized query (repeated terms count once per occurrence)
        doc_terms: Tokenized document
        avg_doc_length: Mean token count across the corpus
        k1: Term frequency saturation
        b: Document length normalization

    Returns:
        Non-negative relevance score
    """
    if avg_doc_length <= 0 or not doc_terms:
        return 0.0

    doc_len = len(doc_terms)
    term_frequency = Counter(doc_terms)

    score = 0.0
    for term in query_terms:
        tf = term_frequency.get(term, 0)
        if tf > 0:
            score += tf * (k1 + 1) / (tf + k1 * (1 - b + b * doc_len / avg_doc_length))
    return score


class IdfFreeBM25(BM25Okapi):
    """BM25Okapi with every term weighted equally."""

    def _calc_idf(self, nd):
        self.idf = {word: 1.0 for word in nd}


class LexicalScorer:
    """
    Scores every document of a corpus snapshot in one pass.

    Example:
        scorer = LexicalScorer()
        scores = scorer.score_corpus(["pets"], snapshot)
    """

    def __init__(self, k1: float = 1.5, b: float = 0.75):
        """
        Initialize lexical scorer.

        Args:
            k1: BM25 k1 parameter (term frequency saturation)
            b: BM25 b parameter (document length normalization)
        """
        self.k1 = k1
        self.b = b

    def build_index(self, corpus_tokens: Sequence[Sequence[str]]) -> IdfFreeBM25:
        """Build the term-frequency index for a tokenized corpus."""
        return IdfFreeBM25([list(tokens) for tokens in corpus_tokens], k1=self.k1, b=self.b)

    def score_document(
        self,
        query_terms: Sequence[str],
        doc_terms: Sequence[str],
        avg_doc_length: float,
    ) -> float:
        """Score a single document with this scorer's parameters."""
        return bm25_score(query_terms, doc_terms, avg_doc_length, k1=self.k1, b=self.b)

    def score_corpus(
        self,
        query_terms: Sequence[str],
        snapshot: CorpusSnapshot,
    ) -> np.ndarray:
        """
        Score every document in the snapshot.

        Returns:
            Scores aligned with ``snapshot.documents``. All zeros when the
            query has no terms or the corpus has no tokens.
        """
        if snapshot.avg_doc_length <= 0 or not query_terms:
            return np.zeros(len(snapshot), dtype=np.float64)

        index = snapshot.lexical_index(self)
        return np.asarray(index.get_scores(list(query_terms)), dtype=np.float64)


__all__ = [
    "IdfFreeBM25",
    "LexicalScorer",
    "bm25_score",
]
