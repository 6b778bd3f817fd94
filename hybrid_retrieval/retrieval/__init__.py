"""
Retrieval Package - Multi-Query Hybrid Search and Reranking.

This package implements the retrieval and ranking pipeline:
- Lexical scoring (IDF-free BM25)
- Dense scoring (batched cosine similarity)
- Alpha-weighted blends of both

Every strategy runs for every query variant in parallel. The runs are fused
with Reciprocal Rank Fusion (RRF) and reranked against the original query
embedding.
"""

from hybrid_retrieval.retrieval.tokenizer import LexicalTokenizer, tokenize
from hybrid_retrieval.retrieval.lexical import IdfFreeBM25, LexicalScorer, bm25_score
from hybrid_retrieval.retrieval.dense import DenseScorer, cosine_similarity
from hybrid_retrieval.retrieval.corpus import CorpusSnapshot, Document, InMemoryDocumentStore
from hybrid_retrieval.retrieval.providers import (
    CallableEmbeddingProvider,
    DocumentStore,
    EmbeddingProvider,
    MappingEmbeddingProvider,
)
from hybrid_retrieval.retrieval.expansion import QueryExpander, StaticQueryExpander, expand_query
from hybrid_retrieval.retrieval.strategies import (
    DEFAULT_STRATEGIES,
    RawResult,
    Strategy,
    StrategyKind,
    StrategyRunner,
    build_strategies,
)
from hybrid_retrieval.retrieval.multi_query import (
    MultiQueryRetriever,
    QueryVariant,
    RunOutcome,
    flatten,
)
from hybrid_retrieval.retrieval.fusion import (
    FusedResult,
    RankFusionEngine,
    StrategyContribution,
)
from hybrid_retrieval.retrieval.reranker import RankedResult, SemanticReranker
from hybrid_retrieval.retrieval.engine import (
    HybridRetrievalEngine,
    SearchOptions,
    SearchReport,
    create_engine,
)

__all__ = [
    # Tokenizer
    "LexicalTokenizer",
    "tokenize",
    # Lexical
    "IdfFreeBM25",
    "LexicalScorer",
    "bm25_score",
    # Dense
    "DenseScorer",
    "cosine_similarity",
    # Corpus
    "CorpusSnapshot",
    "Document",
    "InMemoryDocumentStore",
    # Collaborators
    "CallableEmbeddingProvider",
    "DocumentStore",
    "EmbeddingProvider",
    "MappingEmbeddingProvider",
    "QueryExpander",
    "StaticQueryExpander",
    "expand_query",
    # Strategies
    "DEFAULT_STRATEGIES",
    "RawResult",
    "Strategy",
    "StrategyKind",
    "StrategyRunner",
    "build_strategies",
    # Fan-out
    "MultiQueryRetriever",
    "QueryVariant",
    "RunOutcome",
    "flatten",
    # Fusion
    "FusedResult",
    "RankFusionEngine",
    "StrategyContribution",
    # Reranker
    "RankedResult",
    "SemanticReranker",
    # Engine
    "HybridRetrievalEngine",
    "SearchOptions",
    "SearchReport",
    "create_engine",
]
