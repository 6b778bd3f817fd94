"""
Error taxonomy for the retrieval engine.

Failures local to a document, a strategy run, a query variant or the
reranking step are logged and absorbed where they happen. Only total
failure (no usable run at all) reaches the caller as RetrievalFailedError.

Usage:
    from hybrid_retrieval.exceptions import RetrievalFailedError

    raise RetrievalFailedError("All 12 strategy runs failed", {"failures": ...})
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    INVALID_DIMENSION = "INVALID_DIMENSION"
    EMPTY_CORPUS = "EMPTY_CORPUS"
    STRATEGY_RUN_FAILED = "STRATEGY_RUN_FAILED"
    RERANK_UNAVAILABLE = "RERANK_UNAVAILABLE"
    RETRIEVAL_FAILED = "RETRIEVAL_FAILED"
    EMBEDDING_UNAVAILABLE = "EMBEDDING_UNAVAILABLE"
    INVALID_QUERY = "INVALID_QUERY"


class RetrievalError(Exception):
    """Base exception with error code support."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to a serializable dictionary."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class InvalidDimensionError(RetrievalError, ValueError):
    """Embedding dimensionality does not match the corpus."""

    def __init__(self, expected: int, actual: int, doc_id: str | None = None) -> None:
        details: dict[str, Any] = {"expected": expected, "actual": actual}
        if doc_id is not None:
            details["doc_id"] = doc_id
            message = f"Document '{doc_id}' has dimension {actual}, expected {expected}"
        else:
            message = f"Query embedding has dimension {actual}, expected {expected}"
        super().__init__(ErrorCode.INVALID_DIMENSION, message, details)
        self.expected = expected
        self.actual = actual
        self.doc_id = doc_id


class EmptyCorpusError(RetrievalError):
    """No documents are available to score."""

    def __init__(self, message: str = "Corpus is empty") -> None:
        super().__init__(ErrorCode.EMPTY_CORPUS, message)


class StrategyRunFailedError(RetrievalError):
    """A single (variant, strategy) run could not produce results."""

    def __init__(
        self,
        strategy_key: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.STRATEGY_RUN_FAILED,
            f"{strategy_key}: {message}",
            {"strategy_key": strategy_key, **(details or {})},
        )
        self.strategy_key = strategy_key


class RerankUnavailableError(RetrievalError):
    """The query embedding needed for reranking is unavailable."""

    def __init__(self, message: str = "Query embedding unavailable for reranking") -> None:
        super().__init__(ErrorCode.RERANK_UNAVAILABLE, message)


class RetrievalFailedError(RetrievalError):
    """Every strategy run failed; no usable results exist."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.RETRIEVAL_FAILED, message, details)


class EmbeddingUnavailableError(RetrievalError):
    """The embedding provider failed for a piece of text."""

    def __init__(self, text: str, cause: BaseException | None = None) -> None:
        preview = text if len(text) <= 50 else f"{text[:50]}..."
        message = f"Embedding failed for '{preview}'"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(ErrorCode.EMBEDDING_UNAVAILABLE, message, {"text": preview})


class InvalidQueryError(RetrievalError, ValueError):
    """The query or its parameters are unusable."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.INVALID_QUERY, message, details)


__all__ = [
    "ErrorCode",
    "RetrievalError",
    "InvalidDimensionError",
    "EmptyCorpusError",
    "StrategyRunFailedError",
    "RerankUnavailableError",
    "RetrievalFailedError",
    "EmbeddingUnavailableError",
    "InvalidQueryError",
]
