"""
Tests for tokenization, lexical scoring, dense scoring and corpus snapshots.
"""

import math

import numpy as np
import pytest

from hybrid_retrieval.exceptions import InvalidDimensionError
from hybrid_retrieval.retrieval.corpus import CorpusSnapshot, Document, InMemoryDocumentStore
from hybrid_retrieval.retrieval.dense import DenseScorer, as_matrix, cosine_similarity
from hybrid_retrieval.retrieval.lexical import LexicalScorer, bm25_score
from hybrid_retrieval.retrieval.tokenizer import LexicalTokenizer, tokenize


class TestTokenizer:
    """Tests for LexicalTokenizer."""

    def test_basic_tokenization(self):
        """Test lowercasing and punctuation replacement."""
        tokens = tokenize("Hello World, this is a test!")

        assert tokens == ["hello", "world", "this", "is", "a", "test"]

    def test_punctuation_splits_words(self):
        """Punctuation inside a word becomes a separator."""
        assert tokenize("state-of-the-art RAG/LLM") == ["state", "of", "the", "art", "rag", "llm"]

    def test_keeps_numbers_and_short_tokens(self):
        assert tokenize("Top 5 of 10") == ["top", "5", "of", "10"]

    def test_empty_input(self):
        """Test empty string handling."""
        assert tokenize("") == []
        assert tokenize("   ...!!  ") == []

    def test_batch_tokenization(self):
        """Test batch tokenization."""
        tokenizer = LexicalTokenizer()
        batch = tokenizer.tokenize_batch(["Hello world", "Python programming"])

        assert batch == [["hello", "world"], ["python", "programming"]]


class TestBM25Score:
    """Tests for the IDF-free BM25 function."""

    def test_single_term_by_hand(self):
        doc = ["cats", "are", "small", "pets"]
        avg = 11 / 3

        expected = 1 * 2.5 / (1 + 1.5 * (1 - 0.75 + 0.75 * 4 / avg))

        assert bm25_score(["pets"], doc, avg) == pytest.approx(expected)

    def test_absent_terms_contribute_zero(self):
        doc = ["stock", "market", "trends"]

        assert bm25_score(["pets", "cats"], doc, 3.0) == 0.0

    def test_term_frequency_saturates(self):
        once = bm25_score(["solar"], ["solar", "x", "y", "z"], 4.0)
        twice = bm25_score(["solar"], ["solar", "solar", "y", "z"], 4.0)

        assert twice > once
        assert twice < 2 * once

    def test_no_idf_weighting(self):
        """A rare and a common term score the same at equal tf."""
        doc = ["common", "rare"]

        assert bm25_score(["common"], doc, 2.0) == bm25_score(["rare"], doc, 2.0)

    def test_zero_average_length(self):
        assert bm25_score(["pets"], [], 0.0) == 0.0

    def test_custom_parameters(self):
        doc = ["a", "b", "c", "d"]
        score = bm25_score(["a"], doc, 2.0, k1=2.0, b=0.5)

        assert score == pytest.approx(3.0 / (1 + 2.0 * (0.5 + 0.5 * 2.0)))


class TestLexicalScorer:
    """Tests for corpus-wide lexical scoring."""

    def test_matches_single_document_function(self, pets_snapshot):
        scorer = LexicalScorer()
        query = ["pets", "cats"]

        scores = scorer.score_corpus(query, pets_snapshot)

        for i, tokens in enumerate(pets_snapshot.tokens):
            expected = bm25_score(query, tokens, pets_snapshot.avg_doc_length)
            assert scores[i] == pytest.approx(expected)

    def test_repeated_query_terms_count_twice(self, pets_snapshot):
        scorer = LexicalScorer()

        once = scorer.score_corpus(["pets"], pets_snapshot)
        twice = scorer.score_corpus(["pets", "pets"], pets_snapshot)

        assert twice[0] == pytest.approx(2 * once[0])

    def test_empty_query_scores_zero(self, pets_snapshot):
        scores = LexicalScorer().score_corpus([], pets_snapshot)

        assert scores.tolist() == [0.0, 0.0, 0.0]

    def test_corpus_without_tokens(self):
        snapshot = CorpusSnapshot([Document(doc_id="x", text="!!!"), Document(doc_id="y", text="")])

        scores = LexicalScorer().score_corpus(["anything"], snapshot)

        assert snapshot.avg_doc_length == 0.0
        assert scores.tolist() == [0.0, 0.0]

    def test_index_cached_per_parameters(self, pets_snapshot):
        scorer = LexicalScorer()

        first = pets_snapshot.lexical_index(scorer)
        second = pets_snapshot.lexical_index(scorer)
        other = pets_snapshot.lexical_index(LexicalScorer(k1=1.2))

        assert first is second
        assert other is not first


class TestDenseScorer:
    """Tests for batched cosine similarity."""

    def test_scores_in_input_order(self):
        scorer = DenseScorer()
        scores = scorer.score_all([1.0, 0.0], [[1.0, 0.0], [0.0, 1.0], [-1.0, 0.0]])

        assert scores.tolist() == pytest.approx([1.0, 0.0, -1.0])

    def test_symmetric(self):
        a = [0.3, -1.2, 4.0]
        b = [2.5, 0.1, -0.7]

        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a), abs=1e-12)

    def test_self_similarity(self):
        a = [0.3, -1.2, 4.0, 7.7]

        assert cosine_similarity(a, a) == pytest.approx(1.0, abs=1e-6)

    def test_magnitude_independent(self):
        assert cosine_similarity([1.0, 2.0], [10.0, 20.0]) == pytest.approx(1.0)

    def test_zero_document_vector(self):
        scores = DenseScorer().score_all([1.0, 1.0], [[0.0, 0.0], [1.0, 1.0]])

        assert scores[0] == 0.0
        assert not np.isnan(scores).any()

    def test_zero_query_vector(self):
        scores = DenseScorer().score_all([0.0, 0.0], [[1.0, 0.0], [0.0, 1.0]])

        assert scores.tolist() == [0.0, 0.0]

    def test_bounded(self):
        rng = np.random.default_rng(7)
        matrix = rng.normal(size=(50, 8))
        query = rng.normal(size=8)

        scores = DenseScorer().score_all(query, matrix)

        assert scores.min() >= -1.0
        assert scores.max() <= 1.0

    def test_query_dimension_mismatch(self):
        with pytest.raises(InvalidDimensionError) as exc_info:
            DenseScorer().score_all([1.0, 0.0, 0.0], [[1.0, 0.0]])

        assert exc_info.value.expected == 2
        assert exc_info.value.actual == 3

    def test_ragged_document_vectors(self):
        with pytest.raises(InvalidDimensionError):
            as_matrix([[1.0, 0.0], [1.0, 0.0, 0.0]])

    def test_empty_documents(self):
        assert DenseScorer().score_all([1.0], []).size == 0

    def test_snapshot_scoring_marks_excluded_documents(self):
        snapshot = CorpusSnapshot([
            Document(doc_id="a", text="x", embedding=(1.0, 0.0)),
            Document(doc_id="b", text="y"),
            Document(doc_id="c", text="z", embedding=(0.0, 1.0)),
        ])

        scores = DenseScorer().score_snapshot([1.0, 0.0], snapshot)

        assert scores[0] == pytest.approx(1.0)
        assert math.isnan(scores[1])
        assert scores[2] == pytest.approx(0.0)


class TestCorpusSnapshot:
    """Tests for CorpusSnapshot."""

    def test_average_document_length(self, pets_snapshot):
        assert pets_snapshot.avg_doc_length == pytest.approx(11 / 3)
        assert len(pets_snapshot) == 3

    def test_embedding_matrix(self, pets_snapshot):
        assert pets_snapshot.dimension == 3
        assert pets_snapshot.embedding_matrix.shape == (3, 3)
        assert pets_snapshot.dense_indices.tolist() == [0, 1, 2]

    def test_embeddings_grouped_by_dimension(self):
        snapshot = CorpusSnapshot([
            Document(doc_id="a", text="alpha", embedding=(1.0, 0.0)),
            Document(doc_id="b", text="beta", embedding=(1.0, 0.0, 0.0)),
            Document(doc_id="c", text="gamma", embedding=(0.0, 1.0, 0.0)),
        ])

        assert sorted(snapshot.dense_groups) == [2, 3]
        assert snapshot.dimension == 3
        assert snapshot.dense_indices.tolist() == [1, 2]
        assert snapshot.dense_mask(2).tolist() == [True, False, False]
        assert snapshot.dense_mask(3).tolist() == [False, True, True]
        assert snapshot.dense_mask(5).tolist() == [False, False, False]
        assert snapshot.embedding_for("a").tolist() == [1.0, 0.0]
        assert snapshot.tokens[1] == ("beta",)

    def test_odd_sized_first_document_does_not_hide_the_rest(self):
        snapshot = CorpusSnapshot([
            Document(doc_id="odd", text="odd one", embedding=(1.0, 0.0)),
            Document(doc_id="x", text="x", embedding=(1.0, 0.0, 0.0)),
            Document(doc_id="y", text="y", embedding=(0.0, 1.0, 0.0)),
        ])

        scores = DenseScorer().score_snapshot([1.0, 0.0, 0.0], snapshot)

        assert math.isnan(scores[0])
        assert scores[1] == pytest.approx(1.0)
        assert scores[2] == pytest.approx(0.0)

    def test_query_matching_no_document_dimension(self, pets_snapshot):
        with pytest.raises(InvalidDimensionError) as exc_info:
            DenseScorer().score_snapshot([1.0, 0.0], pets_snapshot)

        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2

    def test_numpy_embedding_coerced_to_tuple(self):
        doc = Document(doc_id="n", text="numpy vector", embedding=np.array([0.5, 0.5]))

        snapshot = CorpusSnapshot([doc])

        assert doc.embedding == (0.5, 0.5)
        assert isinstance(doc.embedding, tuple)
        assert snapshot.dense_indices.tolist() == [0]

    def test_empty_embedding_is_lexical_only(self):
        snapshot = CorpusSnapshot([Document(doc_id="e", text="empty vector", embedding=())])

        assert snapshot.dense_groups == {}
        assert snapshot.embedding_for("e") is None

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            CorpusSnapshot([Document(doc_id="a", text="x"), Document(doc_id="a", text="y")])

    def test_lookup(self, pets_snapshot):
        assert pets_snapshot.get("d2").text == "dogs are loyal pets"
        assert pets_snapshot.get("missing") is None
        assert pets_snapshot.embedding_for("d1").tolist() == [0.9, 0.1, 0.0]

    def test_matrix_is_read_only(self, pets_snapshot):
        with pytest.raises(ValueError):
            pets_snapshot.embedding_matrix[0, 0] = 5.0

    def test_empty(self):
        snapshot = CorpusSnapshot([])

        assert snapshot.is_empty
        assert snapshot.avg_doc_length == 0.0
        assert snapshot.embedding_matrix.shape[0] == 0

    def test_from_store_records(self):
        store = InMemoryDocumentStore([
            {"id": "r1", "text": "record one", "vector": [1, 0], "metadata": {"source": "a.txt"}},
        ])

        snapshot = CorpusSnapshot.from_store(store)

        doc = snapshot.get("r1")
        assert doc.embedding == (1.0, 0.0)
        assert doc.metadata == {"source": "a.txt"}

    def test_store_snapshot_isolated_from_later_changes(self, pets_documents):
        store = InMemoryDocumentStore(pets_documents)
        snapshot = CorpusSnapshot.from_store(store)

        store.add([Document(doc_id="d4", text="new pets")])
        store.remove("d1")

        assert snapshot.doc_ids == ["d1", "d2", "d3"]
        assert len(store) == 3
