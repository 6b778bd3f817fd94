"""
Retrieval strategies.

A strategy turns one query text (and its embedding) into a ranked list over
the corpus snapshot:

- Lexical: IDF-free BM25 scores
- Dense: cosine similarity to the query embedding
- Blend(alpha): alpha * dense + (1 - alpha) * max-normalized lexical
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np

from hybrid_retrieval.exceptions import EmptyCorpusError, StrategyRunFailedError
from hybrid_retrieval.retrieval.corpus import CorpusSnapshot
from hybrid_retrieval.retrieval.dense import DenseScorer
from hybrid_retrieval.retrieval.lexical import LexicalScorer

logger = logging.getLogger(__name__)


class StrategyKind(str, Enum):
    """Strategy families."""
    LEXICAL = "lexical"
    DENSE = "dense"
    BLEND = "blend"


@dataclass(frozen=True)
class Strategy:
    """A retrieval configuration applied identically to every query variant."""
    kind: StrategyKind
    alpha: float | None = None

    def __post_init__(self):
        if self.kind is StrategyKind.BLEND:
            if self.alpha is None or not 0.0 <= self.alpha <= 1.0:
                raise ValueError(f"Blend alpha must be in [0, 1], got {self.alpha}")
        elif self.alpha is not None:
            raise ValueError(f"{self.kind.value} strategy takes no alpha")

    @classmethod
    def lexical(cls) -> "Strategy":
        return cls(StrategyKind.LEXICAL)

    @classmethod
    def dense(cls) -> "Strategy":
        return cls(StrategyKind.DENSE)

    @classmethod
    def blend(cls, alpha: float) -> "Strategy":
        return cls(StrategyKind.BLEND, float(alpha))

    @property
    def name(self) -> str:
        """Family label, e.g. ``lexical``, ``dense`` or ``hybrid-0.3``."""
        if self.kind is StrategyKind.BLEND:
            return f"hybrid-{self.alpha:g}"
        return self.kind.value

    @property
    def needs_embedding(self) -> bool:
        return self.kind is not StrategyKind.LEXICAL

    def key(self, variant_index: int) -> str:
        """Run label for one query variant, e.g. ``hybrid-0.7_q2``."""
        return f"{self.name}_q{variant_index}"

    def __str__(self) -> str:
        return self.name


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    Strategy.blend(0.3),
    Strategy.blend(0.7),
    Strategy.dense(),
)


def build_strategies(
    alphas: Sequence[float] = (0.3, 0.7),
    include_dense: bool = True,
    include_lexical: bool = False,
) -> tuple[Strategy, ...]:
    """Build a strategy set from blend weights and pure-strategy switches."""
    strategies: list[Strategy] = []
    if include_lexical:
        strategies.append(Strategy.lexical())
    strategies.extend(Strategy.blend(alpha) for alpha in alphas)
    if include_dense:
        strategies.append(Strategy.dense())

    # Same family twice would double-count in fusion
    unique = list(dict.fromkeys(strategies))
    if not unique:
        raise ValueError("At least one strategy is required")
    return tuple(unique)


@dataclass(frozen=True)
class RawResult:
    """One ranked hit of a single strategy run."""
    doc_id: str
    score: float
    rank: int


class StrategyRunner:
    """
    Executes one strategy for one query text.

    Runs are pure: they read the snapshot and return a new list. Ties are
    broken by document id so that results never depend on corpus order.

    Example:
        runner = StrategyRunner()
        results = runner.run("pets", None, 2, Strategy.lexical(), snapshot)
    """

    def __init__(
        self,
        lexical_scorer: LexicalScorer | None = None,
        dense_scorer: DenseScorer | None = None,
        lexical_epsilon: float = 1e-4,
    ):
        """
        Initialize strategy runner.

        Args:
            lexical_scorer: BM25 scorer (default k1=1.5, b=0.75)
            dense_scorer: Cosine scorer
            lexical_epsilon: Added to the lexical maximum before normalizing
        """
        self.lexical_scorer = lexical_scorer or LexicalScorer()
        self.dense_scorer = dense_scorer or DenseScorer()
        self.lexical_epsilon = lexical_epsilon

    def run(
        self,
        query_text: str,
        query_embedding: np.ndarray | Sequence[float] | None,
        top_k: int,
        strategy: Strategy,
        snapshot: CorpusSnapshot,
    ) -> list[RawResult]:
        """
        Rank the snapshot for one query.

        Args:
            query_text: Query (or query variant) text
            query_embedding: Embedding of ``query_text``; required unless lexical
            top_k: Maximum number of results
            strategy: Strategy to apply
            snapshot: Corpus view

        Returns:
            Results ranked 1..len (len <= top_k)

        Raises:
            EmptyCorpusError: If the snapshot has no documents
            StrategyRunFailedError: If a dense-based strategy has no query embedding
        """
        if top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {top_k}")
        if snapshot.is_empty:
            raise EmptyCorpusError()

        if strategy.kind is StrategyKind.LEXICAL:
            scores = self.lexical_scores(query_text, snapshot)
            if scores is None:
                return []
        else:
            if query_embedding is None:
                raise StrategyRunFailedError(strategy.name, "query embedding unavailable")
            dense = self.dense_scorer.score_snapshot(query_embedding, snapshot)
            if strategy.kind is StrategyKind.DENSE:
                scores = dense
            else:
                scores = self.blend_scores(query_text, dense, strategy.alpha, snapshot)

        return self._rank(scores, top_k, snapshot)

    def lexical_scores(self, query_text: str, snapshot: CorpusSnapshot) -> np.ndarray | None:
        """Raw lexical scores, or None when the corpus has no tokens at all."""
        if snapshot.avg_doc_length <= 0:
            logger.debug("Average document length is zero, no lexical results")
            return None
        query_terms = snapshot.tokenizer.tokenize(query_text)
        return self.lexical_scorer.score_corpus(query_terms, snapshot)

    def blend_scores(
        self,
        query_text: str,
        dense_scores: np.ndarray,
        alpha: float,
        snapshot: CorpusSnapshot,
    ) -> np.ndarray:
        """Combine dense scores with max-normalized lexical scores."""
        lexical = self.lexical_scores(query_text, snapshot)
        if lexical is None:
            lexical = np.zeros(len(snapshot), dtype=np.float64)

        normalized = lexical / (lexical.max() + self.lexical_epsilon)
        # NaN dense entries (no usable embedding) stay NaN and drop out
        return alpha * dense_scores + (1 - alpha) * normalized

    @staticmethod
    def _rank(scores: np.ndarray, top_k: int, snapshot: CorpusSnapshot) -> list[RawResult]:
        candidates = np.flatnonzero(~np.isnan(scores)).tolist()
        documents = snapshot.documents
        top = heapq.nsmallest(
            top_k,
            candidates,
            key=lambda i: (-scores[i], documents[i].doc_id),
        )
        return [
            RawResult(doc_id=documents[i].doc_id, score=float(scores[i]), rank=rank)
            for rank, i in enumerate(top, start=1)
        ]


__all__ = [
    "DEFAULT_STRATEGIES",
    "RawResult",
    "Strategy",
    "StrategyKind",
    "StrategyRunner",
    "build_strategies",
]
