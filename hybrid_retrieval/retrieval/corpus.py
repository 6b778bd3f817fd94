"""
Corpus snapshot.

A CorpusSnapshot is the immutable, per-query view of the document set that
every strategy run shares. Tokenization, document lengths and the embedding
matrix are computed once when the snapshot is built; runs only read them.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence

import numpy as np

from hybrid_retrieval.retrieval.tokenizer import LexicalTokenizer

if TYPE_CHECKING:
    from hybrid_retrieval.retrieval.lexical import IdfFreeBM25, LexicalScorer
    from hybrid_retrieval.retrieval.providers import DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Document:
    """Document with its precomputed embedding."""
    doc_id: str
    text: str
    embedding: tuple[float, ...] | None = None
    metadata: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    def __post_init__(self):
        if self.embedding is not None and not isinstance(self.embedding, tuple):
            object.__setattr__(self, "embedding", tuple(float(x) for x in self.embedding))

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Document":
        """
        Build a document from a store record.

        Accepts ``{id, text, vector, metadata}`` as well as
        ``{doc_id, text, embedding, metadata}``.
        """
        doc_id = record.get("id", record.get("doc_id"))
        if doc_id is None:
            raise ValueError("Document record has no id")

        return cls(
            doc_id=str(doc_id),
            text=record.get("text") or "",
            embedding=record.get("vector", record.get("embedding")),
            metadata=dict(record.get("metadata") or {}),
        )


class CorpusSnapshot:
    """
    Read-only view of a document set for the lifetime of one query.

    Holds:
    - Documents in store order
    - Token lists and the mean document length
    - One embedding matrix per embedding dimension, plus the document
      positions of its rows

    A query embedding is only compared with documents of its own dimension.
    Documents without an embedding, or with a dimension the query does not
    share, are left out of dense scoring but still take part in lexical
    scoring.

    Document ids must be unique; duplicates are rejected.
    """

    def __init__(
        self,
        documents: Iterable[Document],
        tokenizer: LexicalTokenizer | None = None,
    ):
        self.documents: tuple[Document, ...] = tuple(documents)
        self.tokenizer = tokenizer or LexicalTokenizer()

        self._positions: dict[str, int] = {}
        for position, doc in enumerate(self.documents):
            if doc.doc_id in self._positions:
                raise ValueError(f"Duplicate document id '{doc.doc_id}' in corpus")
            self._positions[doc.doc_id] = position

        self.tokens: tuple[tuple[str, ...], ...] = tuple(
            tuple(self.tokenizer.tokenize(doc.text)) for doc in self.documents
        )
        total_tokens = sum(len(tokens) for tokens in self.tokens)
        self.avg_doc_length: float = total_tokens / len(self.documents) if self.documents else 0.0

        # dimension -> (matrix, document positions of its rows)
        self.dense_groups: dict[int, tuple[np.ndarray, np.ndarray]] = self._build_dense_groups()
        self._embedding_by_position: dict[int, np.ndarray] = {
            int(position): matrix[row]
            for matrix, positions in self.dense_groups.values()
            for row, position in enumerate(positions)
        }

        self.dimension: int | None = self._dominant_dimension()
        if self.dimension is None:
            self.embedding_matrix = np.empty((0, 0), dtype=np.float64)
            self.dense_indices = np.empty(0, dtype=np.intp)
        else:
            self.embedding_matrix, self.dense_indices = self.dense_groups[self.dimension]

        self._lexical_indexes: dict[tuple[float, float], IdfFreeBM25] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_store(
        cls,
        store: DocumentStore,
        tokenizer: LexicalTokenizer | None = None,
    ) -> "CorpusSnapshot":
        """Snapshot the current contents of a document store."""
        documents = []
        for item in store.list_documents():
            documents.append(item if isinstance(item, Document) else Document.from_record(item))
        return cls(documents, tokenizer=tokenizer)

    def _build_dense_groups(self) -> dict[int, tuple[np.ndarray, np.ndarray]]:
        rows: dict[int, list[tuple[float, ...]]] = {}
        positions: dict[int, list[int]] = {}

        for position, doc in enumerate(self.documents):
            if doc.embedding is None or len(doc.embedding) == 0:
                logger.debug(f"Document '{doc.doc_id}' has no embedding, lexical only")
                continue
            dimension = len(doc.embedding)
            rows.setdefault(dimension, []).append(doc.embedding)
            positions.setdefault(dimension, []).append(position)

        if len(rows) > 1:
            sizes = {dimension: len(group) for dimension, group in rows.items()}
            logger.warning(
                f"Corpus mixes embedding dimensions {sizes}; documents are only "
                f"dense-scored against queries of their own dimension"
            )

        groups = {}
        for dimension, group in rows.items():
            matrix = np.asarray(group, dtype=np.float64).reshape(len(group), dimension)
            indices = np.asarray(positions[dimension], dtype=np.intp)
            matrix.setflags(write=False)
            indices.setflags(write=False)
            groups[dimension] = (matrix, indices)
        return groups

    def _dominant_dimension(self) -> int | None:
        # Most embedded documents wins; ties go to the dimension seen first
        best = None
        for dimension, (_, indices) in self.dense_groups.items():
            if best is None or len(indices) > len(self.dense_groups[best][1]):
                best = dimension
        return best

    def dense_group(self, dimension: int) -> tuple[np.ndarray, np.ndarray] | None:
        """Embedding matrix and document positions for one dimension."""
        return self.dense_groups.get(dimension)

    @property
    def embedded_count(self) -> int:
        """Number of documents carrying a non-empty embedding."""
        return len(self._embedding_by_position)

    def __len__(self) -> int:
        return len(self.documents)

    @property
    def is_empty(self) -> bool:
        return not self.documents

    @property
    def doc_ids(self) -> list[str]:
        return [doc.doc_id for doc in self.documents]

    def dense_mask(self, dimension: int) -> np.ndarray:
        """Boolean mask of documents dense-scored against a query of ``dimension``."""
        mask = np.zeros(len(self.documents), dtype=bool)
        group = self.dense_groups.get(dimension)
        if group is not None:
            mask[group[1]] = True
        return mask

    def position(self, doc_id: str) -> int | None:
        return self._positions.get(doc_id)

    def get(self, doc_id: str) -> Document | None:
        """Get a document by its id."""
        position = self._positions.get(doc_id)
        return self.documents[position] if position is not None else None

    def embedding_for(self, doc_id: str) -> np.ndarray | None:
        """Return the embedding row for a document, if it has one."""
        position = self._positions.get(doc_id)
        if position is None:
            return None
        return self._embedding_by_position.get(position)

    def lexical_index(self, scorer: LexicalScorer) -> IdfFreeBM25:
        """Term-frequency index for this snapshot, built once per (k1, b)."""
        key = (scorer.k1, scorer.b)
        with self._lock:
            index = self._lexical_indexes.get(key)
            if index is None:
                index = scorer.build_index(self.tokens)
                self._lexical_indexes[key] = index
        return index


class InMemoryDocumentStore:
    """
    Document store backed by a list.

    Every ``list_documents`` call returns a fresh tuple, so a snapshot taken
    before ``add``/``remove`` never observes the change.
    """

    def __init__(self, documents: Iterable[Document | Mapping[str, Any]] = ()):
        self._documents: dict[str, Document] = {}
        self._lock = threading.Lock()
        self.add(documents)

    def add(self, documents: Iterable[Document | Mapping[str, Any]]) -> None:
        """Add or replace documents by id."""
        with self._lock:
            for item in documents:
                doc = item if isinstance(item, Document) else Document.from_record(item)
                self._documents[doc.doc_id] = doc

    def remove(self, doc_id: str) -> None:
        with self._lock:
            self._documents.pop(doc_id, None)

    def clear(self) -> None:
        with self._lock:
            self._documents = {}

    def list_documents(self) -> tuple[Document, ...]:
        with self._lock:
            return tuple(self._documents.values())

    def __len__(self) -> int:
        return len(self._documents)


__all__ = [
    "CorpusSnapshot",
    "Document",
    "InMemoryDocumentStore",
]
