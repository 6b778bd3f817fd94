"""
Reciprocal Rank Fusion (RRF).

Merges the ranked lists of every strategy run into one deduplicated candidate
set. Each appearance of a document at rank r contributes 1 / (k + r); the
contributions are grouped per strategy family (across query variants) for
observability and summed into the fused score.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from hybrid_retrieval.retrieval.corpus import CorpusSnapshot
from hybrid_retrieval.retrieval.multi_query import RunOutcome, flatten
from hybrid_retrieval.retrieval.strategies import RawResult, Strategy

logger = logging.getLogger(__name__)

DEFAULT_RRF_K = 60


@dataclass(frozen=True)
class StrategyContribution:
    """Fused contribution of one strategy family to one document."""
    strategy: Strategy
    rrf_score: float
    best_rank: int
    hits: int


@dataclass
class FusedResult:
    """A deduplicated candidate after rank fusion."""
    doc_id: str
    text: str
    fused_score: float
    contributions: dict[str, StrategyContribution] = field(default_factory=dict)
    retrieved_by: frozenset[str] = frozenset()
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def per_strategy_score(self) -> dict[str, float]:
        """RRF score per strategy family."""
        return {name: c.rrf_score for name, c in self.contributions.items()}

    @property
    def per_strategy_best_rank(self) -> dict[str, int]:
        """Best rank per strategy family across query variants."""
        return {name: c.best_rank for name, c in self.contributions.items()}

    @property
    def sources(self) -> list[str]:
        """Strategy families that retrieved this document."""
        return list(self.contributions)


class RankFusionEngine:
    """
    RRF fusion across strategy runs.

    The fused score is the exactly rounded sum of all contributions
    (math.fsum), so it does not depend on the order runs finished in.

    Example:
        engine = RankFusionEngine(k=60)
        fused = engine.fuse(outcomes, snapshot)
    """

    def __init__(self, k: int = DEFAULT_RRF_K):
        if k < 0:
            raise ValueError(f"RRF k must be non-negative, got {k}")
        self.k = k

    def contribution(self, rank: int) -> float:
        """RRF contribution of a single appearance at ``rank``."""
        if rank < 1:
            raise ValueError(f"rank must be >= 1, got {rank}")
        return 1.0 / (self.k + rank)

    def fuse(
        self,
        outcomes: Sequence[RunOutcome],
        snapshot: CorpusSnapshot | None = None,
    ) -> list[FusedResult]:
        """Fuse the successful runs among ``outcomes``."""
        return self.fuse_entries(flatten(outcomes), snapshot)

    def fuse_entries(
        self,
        entries: Iterable[tuple[RawResult, Strategy, int]],
        snapshot: CorpusSnapshot | None = None,
    ) -> list[FusedResult]:
        """
        Fuse raw ``(result, strategy, variant_index)`` entries.

        Args:
            entries: Raw results with their run identity
            snapshot: Corpus view used to attach text and metadata

        Returns:
            Fused results sorted by fused score (desc), then document id
        """
        # doc_id -> family name -> contributions
        scores: dict[str, dict[str, list[float]]] = defaultdict(lambda: defaultdict(list))
        best_ranks: dict[str, dict[str, int]] = defaultdict(dict)
        families: dict[str, Strategy] = {}
        retrieved_by: dict[str, set[str]] = defaultdict(set)

        for result, strategy, variant_index in entries:
            name = strategy.name
            families[name] = strategy

            scores[result.doc_id][name].append(self.contribution(result.rank))

            current = best_ranks[result.doc_id].get(name)
            if current is None or result.rank < current:
                best_ranks[result.doc_id][name] = result.rank

            retrieved_by[result.doc_id].add(strategy.key(variant_index))

        fused: list[FusedResult] = []
        for doc_id, by_family in scores.items():
            contributions = {
                name: StrategyContribution(
                    strategy=families[name],
                    rrf_score=math.fsum(parts),
                    best_rank=best_ranks[doc_id][name],
                    hits=len(parts),
                )
                for name, parts in sorted(by_family.items())
            }
            fused_score = math.fsum(part for parts in by_family.values() for part in parts)

            doc = snapshot.get(doc_id) if snapshot is not None else None
            fused.append(FusedResult(
                doc_id=doc_id,
                text=doc.text if doc else "",
                fused_score=fused_score,
                contributions=contributions,
                retrieved_by=frozenset(retrieved_by[doc_id]),
                metadata=dict(doc.metadata) if doc else {},
            ))

        fused.sort(key=lambda r: (-r.fused_score, r.doc_id))
        logger.debug(f"Fused {len(fused)} unique documents")
        return fused


__all__ = [
    "DEFAULT_RRF_K",
    "FusedResult",
    "RankFusionEngine",
    "StrategyContribution",
]
