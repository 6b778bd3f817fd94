"""
Pytest configuration and fixtures.
"""

import os

import pytest

# Set test environment
os.environ["ENABLE_TRACING"] = "false"
os.environ["LOG_FORMAT"] = "text"

from hybrid_retrieval.config import Settings
from hybrid_retrieval.retrieval.corpus import CorpusSnapshot, Document, InMemoryDocumentStore
from hybrid_retrieval.retrieval.providers import MappingEmbeddingProvider


@pytest.fixture
def test_settings():
    """Provide default settings for testing."""
    return Settings()


@pytest.fixture
def pets_documents():
    """Three-document corpus with 3-dim toy embeddings."""
    return [
        Document(doc_id="d1", text="cats are small pets", embedding=(0.9, 0.1, 0.0)),
        Document(doc_id="d2", text="dogs are loyal pets", embedding=(0.8, 0.2, 0.1)),
        Document(doc_id="d3", text="stock market trends", embedding=(0.0, 0.1, 0.9)),
    ]


@pytest.fixture
def pets_snapshot(pets_documents):
    return CorpusSnapshot(pets_documents)


@pytest.fixture
def energy_documents():
    """Five-document corpus where 'a' is the best match for solar queries."""
    return [
        Document(doc_id="a", text="solar panels convert solar energy", embedding=(1.0, 0.0, 0.0, 0.0)),
        Document(doc_id="b", text="wind turbines generate energy", embedding=(0.0, 1.0, 0.0, 0.0)),
        Document(doc_id="c", text="hydro power from rivers", embedding=(0.0, 0.0, 1.0, 0.0)),
        Document(doc_id="d", text="panels for walls", embedding=(0.5, 0.5, 0.0, 0.0)),
        Document(doc_id="e", text="nuclear fission reactors", embedding=(0.0, 0.0, 0.0, 1.0)),
    ]


@pytest.fixture
def energy_snapshot(energy_documents):
    return CorpusSnapshot(energy_documents)


@pytest.fixture
def energy_store(energy_documents):
    return InMemoryDocumentStore(energy_documents)


@pytest.fixture
def energy_embedder():
    """Embeddings for the solar query and its variant."""
    return MappingEmbeddingProvider({
        "solar panels": [1.0, 0.0, 0.0, 0.0],
        "solar panel energy": [1.0, 0.0, 0.0, 0.0],
        "wind power": [0.1, 0.9, 0.1, 0.0],
    })
