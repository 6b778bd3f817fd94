"""
Multi-query parallel retrieval.

Fans the strategy runner out over every (query variant x strategy) pair on a
bounded thread pool and joins all runs before anything is fused. A failing or
timed-out run is recorded as a failed outcome; it never aborts its siblings.
"""

from __future__ import annotations

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterator, Sequence

import numpy as np

from hybrid_retrieval.exceptions import StrategyRunFailedError
from hybrid_retrieval.observability.metrics import track_strategy_run
from hybrid_retrieval.retrieval.corpus import CorpusSnapshot
from hybrid_retrieval.retrieval.strategies import (
    DEFAULT_STRATEGIES,
    RawResult,
    Strategy,
    StrategyRunner,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryVariant:
    """A query phrasing with its embedding (index 0 is the original query)."""
    index: int
    text: str
    embedding: np.ndarray | None = None
    error: str | None = None

    @property
    def is_original(self) -> bool:
        return self.index == 0


@dataclass(frozen=True)
class RunOutcome:
    """Result of one (variant, strategy) run."""
    strategy: Strategy
    variant_index: int
    results: tuple[RawResult, ...] = ()
    error: str | None = None
    duration_ms: float = 0.0

    @property
    def key(self) -> str:
        return self.strategy.key(self.variant_index)

    @property
    def succeeded(self) -> bool:
        return self.error is None


def flatten(outcomes: Sequence[RunOutcome]) -> Iterator[tuple[RawResult, Strategy, int]]:
    """Yield ``(result, strategy, variant_index)`` from successful runs only."""
    for outcome in outcomes:
        if not outcome.succeeded:
            continue
        for result in outcome.results:
            yield result, outcome.strategy, outcome.variant_index


class MultiQueryRetriever:
    """
    Concurrent fan-out of strategy runs.

    Features:
    - One run per (variant, strategy) pair, all on a shared worker pool
    - Outcomes returned in (variant, strategy) order regardless of completion
    - Optional per-run timeout, counted from when a worker starts the run;
      timeouts count as failures
    - Cancelling the awaiting task cancels every outstanding run

    Example:
        retriever = MultiQueryRetriever(max_workers=4)
        outcomes = await retriever.retrieve(variants, 10, DEFAULT_STRATEGIES, snapshot)
    """

    def __init__(
        self,
        runner: StrategyRunner | None = None,
        max_workers: int = 4,
        run_timeout: float | None = None,
        executor: ThreadPoolExecutor | None = None,
    ):
        """
        Initialize multi-query retriever.

        Args:
            runner: Strategy runner shared by all runs
            max_workers: Worker threads when no executor is given
            run_timeout: Seconds a single run may execute once a worker picks it up
            executor: Externally owned executor (not shut down by close())
        """
        self.runner = runner or StrategyRunner()
        self.run_timeout = run_timeout
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="strategy-run",
        )

    @property
    def executor(self) -> ThreadPoolExecutor:
        return self._executor

    async def retrieve(
        self,
        variants: Sequence[QueryVariant],
        top_k: int,
        strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
        snapshot: CorpusSnapshot | None = None,
    ) -> list[RunOutcome]:
        """
        Run every strategy for every query variant.

        Args:
            variants: Query variants, original first
            top_k: Results per run
            strategies: Strategy set applied to each variant
            snapshot: Corpus view shared read-only by all runs

        Returns:
            One outcome per (variant, strategy) pair
        """
        if snapshot is None:
            raise ValueError("A corpus snapshot is required")

        pairs = [(variant, strategy) for variant in variants for strategy in strategies]
        if not pairs:
            return []

        tasks = [
            self._run_one(variant, strategy, top_k, snapshot)
            for variant, strategy in pairs
        ]
        outcomes = await asyncio.gather(*tasks)

        failed = sum(1 for o in outcomes if not o.succeeded)
        logger.debug(f"Fan-out finished: {len(outcomes) - failed} ok, {failed} failed")
        return list(outcomes)

    async def retrieve_texts(
        self,
        query_variants: Sequence[str],
        query_embeddings: Sequence[Sequence[float] | np.ndarray | None],
        top_k: int,
        strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
        snapshot: CorpusSnapshot | None = None,
    ) -> list[tuple[RawResult, str, int]]:
        """
        Fan out over parallel lists of variant texts and embeddings.

        Returns:
            Flat ``(result, strategy_key, variant_index)`` triples from
            successful runs
        """
        if len(query_variants) != len(query_embeddings):
            raise ValueError("query_variants and query_embeddings must have the same length")

        variants = [
            QueryVariant(
                index=i,
                text=text,
                embedding=np.asarray(emb, dtype=np.float64) if emb is not None else None,
            )
            for i, (text, emb) in enumerate(zip(query_variants, query_embeddings))
        ]
        outcomes = await self.retrieve(variants, top_k, strategies, snapshot)
        return [
            (result, strategy.key(variant_index), variant_index)
            for result, strategy, variant_index in flatten(outcomes)
        ]

    async def _run_one(
        self,
        variant: QueryVariant,
        strategy: Strategy,
        top_k: int,
        snapshot: CorpusSnapshot,
    ) -> RunOutcome:
        key = strategy.key(variant.index)
        start = time.perf_counter()

        try:
            if strategy.needs_embedding and variant.embedding is None:
                reason = variant.error or "query embedding unavailable"
                raise StrategyRunFailedError(key, reason)

            loop = asyncio.get_running_loop()
            started = asyncio.Event()

            def work():
                loop.call_soon_threadsafe(started.set)
                return self.runner.run(variant.text, variant.embedding, top_k, strategy, snapshot)

            future = loop.run_in_executor(self._executor, work)
            if self.run_timeout is not None:
                # The timeout covers execution only, not time queued for a worker
                await self._wait_started(started, future)
                results = await asyncio.wait_for(future, timeout=self.run_timeout)
            else:
                results = await future

        except asyncio.TimeoutError:
            error = f"timed out after {self.run_timeout}s"
            logger.warning(f"Strategy run {key} {error}")
            track_strategy_run(strategy.name, "timeout")
            return RunOutcome(strategy, variant.index, error=error, duration_ms=_elapsed_ms(start))

        except Exception as e:
            logger.error(f"Strategy run {key} failed: {e}")
            track_strategy_run(strategy.name, "failed")
            return RunOutcome(strategy, variant.index, error=str(e), duration_ms=_elapsed_ms(start))

        track_strategy_run(strategy.name, "success")
        return RunOutcome(
            strategy,
            variant.index,
            results=tuple(results),
            duration_ms=_elapsed_ms(start),
        )

    @staticmethod
    async def _wait_started(started: asyncio.Event, future: asyncio.Future) -> None:
        """Wait until a worker picks the run up (or it ends without starting)."""
        waiter = asyncio.ensure_future(started.wait())
        try:
            await asyncio.wait({waiter, future}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            future.cancel()
            raise
        finally:
            waiter.cancel()

    def close(self) -> None:
        """Shut down the worker pool if this retriever created it."""
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


__all__ = [
    "MultiQueryRetriever",
    "QueryVariant",
    "RunOutcome",
    "flatten",
]
