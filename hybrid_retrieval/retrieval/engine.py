"""
Hybrid Retrieval Engine.

Runs the full query pipeline:
1. Snapshot the corpus
2. Expand the query into variants (original first)
3. Embed every variant
4. Fan out every (variant x strategy) run in parallel
5. Fuse the runs with Reciprocal Rank Fusion
6. Rerank against the original query embedding
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Sequence

from hybrid_retrieval.config import Settings, get_settings
from hybrid_retrieval.exceptions import (
    EmbeddingUnavailableError,
    InvalidQueryError,
    RetrievalFailedError,
)
from hybrid_retrieval.observability.metrics import (
    stage_span,
    track_query,
    track_retrieval,
    track_stage,
)
from hybrid_retrieval.retrieval.corpus import CorpusSnapshot
from hybrid_retrieval.retrieval.dense import DenseScorer
from hybrid_retrieval.retrieval.expansion import QueryExpander, expand_query
from hybrid_retrieval.retrieval.fusion import RankFusionEngine
from hybrid_retrieval.retrieval.lexical import LexicalScorer
from hybrid_retrieval.retrieval.multi_query import MultiQueryRetriever, QueryVariant
from hybrid_retrieval.retrieval.providers import DocumentStore, EmbeddingProvider, embed_texts
from hybrid_retrieval.retrieval.reranker import RankedResult, SemanticReranker
from hybrid_retrieval.retrieval.strategies import Strategy, StrategyRunner, build_strategies
from hybrid_retrieval.retrieval.tokenizer import LexicalTokenizer

logger = logging.getLogger(__name__)


@dataclass
class SearchOptions:
    """
    Per-query switches. Unset fields fall back to settings.

    ``strategies`` wins over ``alphas``; ``alphas`` builds one blend strategy
    per weight plus the pure dense pass (unless ``include_dense`` is False).
    """
    strategies: Sequence[Strategy] | None = None
    alphas: Sequence[float] | None = None
    include_dense: bool | None = None
    enable_rerank: bool | None = None
    enable_expansion: bool | None = None
    rerank_weight: float | None = None
    candidate_multiplier: int | None = None

    def resolve_strategies(self, settings: Settings) -> tuple[Strategy, ...]:
        if self.strategies is not None:
            if not self.strategies:
                raise InvalidQueryError("At least one strategy is required")
            return tuple(dict.fromkeys(self.strategies))

        retrieval = settings.retrieval
        return build_strategies(
            alphas=self.alphas if self.alphas is not None else retrieval.blend_alphas,
            include_dense=self.include_dense if self.include_dense is not None else retrieval.include_dense,
            include_lexical=retrieval.include_lexical,
        )


@dataclass
class SearchReport:
    """Diagnostics for one search call."""
    query: str
    variants: list[str] = field(default_factory=list)
    strategies: list[str] = field(default_factory=list)
    total_runs: int = 0
    failures: dict[str, str] = field(default_factory=dict)
    embedding_failures: dict[int, str] = field(default_factory=dict)
    raw_results: int = 0
    fused_results: int = 0
    returned: int = 0
    rerank_applied: bool = False
    rerank_fallbacks: int = 0
    timings_ms: dict[str, float] = field(default_factory=dict)

    @property
    def failed_runs(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "variants": self.variants,
            "strategies": self.strategies,
            "total_runs": self.total_runs,
            "failed_runs": self.failed_runs,
            "failures": self.failures,
            "embedding_failures": self.embedding_failures,
            "raw_results": self.raw_results,
            "fused_results": self.fused_results,
            "returned": self.returned,
            "rerank_applied": self.rerank_applied,
            "rerank_fallbacks": self.rerank_fallbacks,
            "timings_ms": self.timings_ms,
        }


class HybridRetrievalEngine:
    """
    Multi-query hybrid retrieval with RRF fusion and semantic reranking.

    All collaborators are injected; the engine keeps no per-query state, so
    concurrent searches are safe as long as the store hands out snapshots.

    Features:
    - Query expansion intake (original + up to 3 variants by default)
    - 3 strategies per variant by default: hybrid-0.3, hybrid-0.7, dense
    - Failed runs, variants and embeddings degrade instead of failing the query

    Example:
        engine = HybridRetrievalEngine(store, embedder, expander)
        results = await engine.search("how do I reset my password", top_k=5)
    """

    def __init__(
        self,
        document_store: DocumentStore,
        embedding_provider: EmbeddingProvider | None = None,
        query_expander: QueryExpander | None = None,
        settings: Settings | None = None,
        retriever: MultiQueryRetriever | None = None,
        fusion: RankFusionEngine | None = None,
        reranker: SemanticReranker | None = None,
        tokenizer: LexicalTokenizer | None = None,
    ):
        """
        Initialize the engine.

        Args:
            document_store: Corpus source, read once per query
            embedding_provider: Embeds the query and its variants
            query_expander: Optional paraphrase source
            settings: Configuration (default: cached environment settings)
            retriever: Fan-out orchestrator
            fusion: RRF engine
            reranker: Semantic reranker
            tokenizer: Tokenizer used for lexical scoring
        """
        self.settings = settings or get_settings()
        retrieval = self.settings.retrieval

        self.document_store = document_store
        self.embedding_provider = embedding_provider
        self.query_expander = query_expander
        self.tokenizer = tokenizer or LexicalTokenizer()

        dense_scorer = DenseScorer()
        self.retriever = retriever or MultiQueryRetriever(
            runner=StrategyRunner(
                lexical_scorer=LexicalScorer(k1=retrieval.bm25_k1, b=retrieval.bm25_b),
                dense_scorer=dense_scorer,
                lexical_epsilon=retrieval.lexical_epsilon,
            ),
            max_workers=retrieval.max_workers,
            run_timeout=retrieval.run_timeout_seconds,
        )
        self.fusion = fusion or RankFusionEngine(k=retrieval.rrf_k)
        self.reranker = reranker or SemanticReranker(
            weight=self.settings.reranker.weight,
            dense_scorer=dense_scorer,
        )

    async def search(
        self,
        query: str,
        top_k: int | None = None,
        options: SearchOptions | None = None,
    ) -> list[RankedResult]:
        """
        Search the corpus.

        Args:
            query: User query
            top_k: Number of results (default from settings)
            options: Per-query switches

        Returns:
            Up to top_k results; empty if the corpus is empty

        Raises:
            InvalidQueryError: If the query is blank or top_k < 1
            RetrievalFailedError: If every strategy run failed
        """
        results, _ = await self.search_with_report(query, top_k=top_k, options=options)
        return results

    async def search_with_report(
        self,
        query: str,
        top_k: int | None = None,
        options: SearchOptions | None = None,
    ) -> tuple[list[RankedResult], SearchReport]:
        """Search and return per-stage diagnostics alongside the results."""
        options = options or SearchOptions()
        top_k = top_k if top_k is not None else self.settings.retrieval.default_top_k

        if not query or not query.strip():
            raise InvalidQueryError("Query must not be empty")
        if top_k < 1:
            raise InvalidQueryError(f"top_k must be >= 1, got {top_k}", {"top_k": top_k})
        weight = options.rerank_weight
        if weight is not None and not 0.0 <= weight <= 1.0:
            raise InvalidQueryError(
                f"rerank_weight must be in [0, 1], got {weight}", {"rerank_weight": weight}
            )
        multiplier = options.candidate_multiplier
        if multiplier is not None and multiplier < 1:
            raise InvalidQueryError(
                f"candidate_multiplier must be >= 1, got {multiplier}",
                {"candidate_multiplier": multiplier},
            )

        strategies = options.resolve_strategies(self.settings)
        report = SearchReport(query=query, strategies=[s.name for s in strategies])

        try:
            with stage_span("hybrid_search", top_k=top_k):
                results = await self._run_pipeline(query, top_k, options, strategies, report)
        except RetrievalFailedError:
            track_query("failed")
            raise

        report.returned = len(results)
        track_query("success" if results else "empty")
        track_retrieval("final", len(results))
        logger.info(
            f"Search returned {len(results)} results for query: {query[:50]} "
            f"({report.total_runs} runs, {report.failed_runs} failed)"
        )
        return results, report

    async def _run_pipeline(
        self,
        query: str,
        top_k: int,
        options: SearchOptions,
        strategies: tuple[Strategy, ...],
        report: SearchReport,
    ) -> list[RankedResult]:
        loop = asyncio.get_running_loop()

        with self._stage("snapshot", report):
            snapshot = await loop.run_in_executor(
                self.retriever.executor,
                CorpusSnapshot.from_store,
                self.document_store,
                self.tokenizer,
            )

        if snapshot.is_empty:
            logger.info("Corpus is empty, returning no results")
            return []

        enable_expansion = (
            options.enable_expansion
            if options.enable_expansion is not None
            else self.settings.expansion.enabled
        )
        enable_rerank = (
            options.enable_rerank
            if options.enable_rerank is not None
            else self.settings.reranker.enabled
        )

        with self._stage("expansion", report):
            texts = await expand_query(
                query,
                self.query_expander if enable_expansion else None,
                max_variants=self.settings.expansion.max_variants,
            )
        report.variants = texts

        with self._stage("embedding", report):
            needs_embedding = enable_rerank or any(s.needs_embedding for s in strategies)
            variants = await self._embed_variants(texts, needs_embedding, report)

        multiplier = options.candidate_multiplier
        if multiplier is None:
            multiplier = self.settings.retrieval.candidate_multiplier
        with self._stage("retrieval", report):
            outcomes = await self.retriever.retrieve(variants, top_k * multiplier, strategies, snapshot)

        report.total_runs = len(outcomes)
        report.failures = {o.key: o.error for o in outcomes if not o.succeeded}
        report.raw_results = sum(len(o.results) for o in outcomes)
        track_retrieval("raw", report.raw_results)

        if outcomes and len(report.failures) == len(outcomes):
            raise RetrievalFailedError(
                f"All {len(outcomes)} strategy runs failed",
                {"failures": report.failures},
            )

        with self._stage("fusion", report):
            fused = self.fusion.fuse(outcomes, snapshot)
        report.fused_results = len(fused)
        track_retrieval("fused", len(fused))

        with self._stage("rerank", report):
            if enable_rerank and fused:
                ranked = self.reranker.rerank(
                    variants[0].embedding,
                    fused,
                    top_k,
                    snapshot,
                    weight=options.rerank_weight,
                )
                report.rerank_applied = True
                report.rerank_fallbacks = sum(1 for r in ranked if not r.reranked)
            else:
                ranked = self.reranker.skip(fused, top_k)

        return ranked

    async def _embed_variants(
        self,
        texts: list[str],
        needs_embedding: bool,
        report: SearchReport,
    ) -> list[QueryVariant]:
        if not needs_embedding:
            return [QueryVariant(index=i, text=text) for i, text in enumerate(texts)]

        embeddings = await embed_texts(self.embedding_provider, texts, self.retriever.executor)

        variants = []
        for i, (text, embedding) in enumerate(zip(texts, embeddings)):
            if isinstance(embedding, EmbeddingUnavailableError):
                report.embedding_failures[i] = embedding.message
                variants.append(QueryVariant(index=i, text=text, error=embedding.message))
            else:
                variants.append(QueryVariant(index=i, text=text, embedding=embedding))
        return variants

    @contextmanager
    def _stage(self, name: str, report: SearchReport) -> Iterator[None]:
        start = time.perf_counter()
        try:
            with stage_span(f"retrieval.{name}"):
                yield
        finally:
            elapsed = time.perf_counter() - start
            report.timings_ms[name] = elapsed * 1000
            track_stage(name, elapsed)

    def close(self) -> None:
        """Release the fan-out worker pool."""
        self.retriever.close()

    def __enter__(self) -> "HybridRetrievalEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def create_engine(
    document_store: DocumentStore,
    embedding_provider: EmbeddingProvider | None = None,
    query_expander: QueryExpander | None = None,
    settings: Settings | None = None,
) -> HybridRetrievalEngine:
    """Create an engine configured from settings."""
    return HybridRetrievalEngine(
        document_store=document_store,
        embedding_provider=embedding_provider,
        query_expander=query_expander,
        settings=settings,
    )


__all__ = [
    "HybridRetrievalEngine",
    "SearchOptions",
    "SearchReport",
    "create_engine",
]
