"""
Tests for Reciprocal Rank Fusion.
"""

import math
import random

import pytest

from hybrid_retrieval.retrieval.fusion import RankFusionEngine
from hybrid_retrieval.retrieval.multi_query import RunOutcome
from hybrid_retrieval.retrieval.strategies import RawResult, Strategy


def outcome(strategy, variant_index, *doc_ids):
    return RunOutcome(
        strategy,
        variant_index,
        results=tuple(
            RawResult(doc_id=doc_id, score=1.0 / rank, rank=rank)
            for rank, doc_id in enumerate(doc_ids, start=1)
        ),
    )


class TestRankFusionEngine:
    """Tests for RankFusionEngine."""

    def test_single_contribution(self):
        engine = RankFusionEngine(k=60)

        fused = engine.fuse([outcome(Strategy.dense(), 0, "a", "b", "c")])

        by_id = {r.doc_id: r for r in fused}
        assert by_id["a"].fused_score == 1 / 61
        assert by_id["b"].fused_score == 1 / 62
        assert by_id["c"].fused_score == 1 / 63

    def test_contribution_formula(self):
        engine = RankFusionEngine(k=60)

        assert engine.contribution(1) == 1 / 61
        assert engine.contribution(7) == 1 / 67
        with pytest.raises(ValueError):
            engine.contribution(0)

    def test_sum_across_runs(self):
        engine = RankFusionEngine()
        outcomes = [
            outcome(Strategy.blend(0.3), 0, "a", "b"),
            outcome(Strategy.blend(0.7), 0, "b", "a"),
            outcome(Strategy.dense(), 0, "c", "a"),
            outcome(Strategy.dense(), 1, "a"),
        ]

        fused = {r.doc_id: r for r in engine.fuse(outcomes)}

        assert fused["a"].fused_score == math.fsum([1 / 61, 1 / 62, 1 / 62, 1 / 61])
        assert fused["b"].fused_score == math.fsum([1 / 62, 1 / 61])
        assert fused["c"].fused_score == 1 / 61

    def test_groups_by_strategy_family(self):
        engine = RankFusionEngine()
        outcomes = [
            outcome(Strategy.dense(), 0, "x", "a"),
            outcome(Strategy.dense(), 1, "a"),
            outcome(Strategy.dense(), 2, "y", "z", "a"),
            outcome(Strategy.blend(0.3), 1, "q", "a"),
        ]

        a = {r.doc_id: r for r in engine.fuse(outcomes)}["a"]

        assert set(a.contributions) == {"dense", "hybrid-0.3"}
        dense = a.contributions["dense"]
        assert dense.rrf_score == math.fsum([1 / 62, 1 / 61, 1 / 63])
        assert dense.best_rank == 1
        assert dense.hits == 3
        assert a.per_strategy_best_rank == {"dense": 1, "hybrid-0.3": 2}
        assert a.per_strategy_score["hybrid-0.3"] == 1 / 62
        assert a.retrieved_by == frozenset({"dense_q0", "dense_q1", "dense_q2", "hybrid-0.3_q1"})

    def test_fused_equals_sum_of_families(self):
        engine = RankFusionEngine()
        outcomes = [
            outcome(Strategy.blend(0.3), 0, "a", "b", "c"),
            outcome(Strategy.blend(0.7), 0, "c", "a"),
            outcome(Strategy.dense(), 0, "b", "a"),
        ]

        for result in engine.fuse(outcomes):
            assert result.fused_score == pytest.approx(sum(result.per_strategy_score.values()))

    def test_top_in_all_six_runs(self):
        """Ranked first in 3 strategies x 2 variants: exactly 6/61."""
        engine = RankFusionEngine(k=60)
        outcomes = [
            outcome(strategy, variant, "a", "b")
            for variant in (0, 1)
            for strategy in (Strategy.blend(0.3), Strategy.blend(0.7), Strategy.dense())
        ]

        a = engine.fuse(outcomes)[0]

        assert a.doc_id == "a"
        assert a.fused_score == 6 * (1 / 61)
        assert len(a.retrieved_by) == 6

    def test_unseen_documents_absent(self, pets_snapshot):
        engine = RankFusionEngine()

        fused = engine.fuse([outcome(Strategy.dense(), 0, "d1")], pets_snapshot)

        assert [r.doc_id for r in fused] == ["d1"]

    def test_failed_runs_ignored(self):
        engine = RankFusionEngine()
        outcomes = [
            outcome(Strategy.dense(), 0, "a"),
            RunOutcome(Strategy.lexical(), 0, error="boom"),
        ]

        fused = engine.fuse(outcomes)

        assert len(fused) == 1
        assert fused[0].sources == ["dense"]

    def test_attaches_text_and_metadata(self, pets_snapshot):
        fused = RankFusionEngine().fuse([outcome(Strategy.dense(), 0, "d2")], pets_snapshot)

        assert fused[0].text == "dogs are loyal pets"
        assert fused[0].metadata == {}

    def test_sorted_by_score_then_id(self):
        fused = RankFusionEngine().fuse([
            outcome(Strategy.dense(), 0, "b"),
            outcome(Strategy.dense(), 1, "a"),
            outcome(Strategy.lexical(), 0, "c", "a"),
        ])

        assert [r.doc_id for r in fused] == ["a", "b", "c"]

    def test_order_independent(self):
        outcomes = [
            outcome(strategy, variant, *random.Random(variant * 10 + i).sample("abcdefgh", 6))
            for variant in range(4)
            for i, strategy in enumerate((Strategy.blend(0.3), Strategy.blend(0.7), Strategy.dense()))
        ]
        shuffled = list(outcomes)
        random.Random(42).shuffle(shuffled)

        first = RankFusionEngine().fuse(outcomes)
        second = RankFusionEngine().fuse(shuffled)

        assert [(r.doc_id, r.fused_score) for r in first] == [(r.doc_id, r.fused_score) for r in second]

    def test_empty(self):
        assert RankFusionEngine().fuse([]) == []

    def test_engine_is_the_only_fusion_entry_point(self):
        from hybrid_retrieval import retrieval
        from hybrid_retrieval.retrieval import fusion

        assert "RankFusionEngine" in retrieval.__all__
        assert not hasattr(retrieval, "reciprocal_rank_fusion")
        assert not hasattr(fusion, "reciprocal_rank_fusion")
