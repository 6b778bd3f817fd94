"""
Hybrid Retrieval Engine.

Ranks an in-memory corpus for a text query by fusing lexical, dense and
blended strategy runs over several query phrasings.
"""

from hybrid_retrieval.retrieval import (
    Document,
    HybridRetrievalEngine,
    InMemoryDocumentStore,
    RankedResult,
    SearchOptions,
    Strategy,
    create_engine,
)

__version__ = "0.1.0"

__all__ = [
    "Document",
    "HybridRetrievalEngine",
    "InMemoryDocumentStore",
    "RankedResult",
    "SearchOptions",
    "Strategy",
    "create_engine",
]
