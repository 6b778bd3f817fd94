"""
Inbound collaborator interfaces.

The engine never computes embeddings or loads documents itself; it talks to
these protocols. Any object with matching methods can be injected.
"""

import asyncio
import logging
from concurrent.futures import Executor
from typing import Any, Callable, Iterable, Mapping, Protocol, Sequence, runtime_checkable

import numpy as np

from hybrid_retrieval.exceptions import EmbeddingUnavailableError

logger = logging.getLogger(__name__)


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Computes an embedding for a piece of text."""

    def embed(self, text: str) -> Sequence[float]:
        ...


@runtime_checkable
class DocumentStore(Protocol):
    """Hands out a snapshot of the corpus."""

    def list_documents(self) -> Iterable[Any]:
        ...


class CallableEmbeddingProvider:
    """Adapts a plain ``text -> vector`` function to EmbeddingProvider."""

    def __init__(self, fn: Callable[[str], Sequence[float]]):
        self._fn = fn

    def embed(self, text: str) -> Sequence[float]:
        return self._fn(text)


class MappingEmbeddingProvider:
    """
    Looks embeddings up in a precomputed table.

    Unknown texts raise KeyError, which callers see as an unavailable
    embedding.
    """

    def __init__(self, embeddings: Mapping[str, Sequence[float]]):
        self._embeddings = dict(embeddings)

    def embed(self, text: str) -> Sequence[float]:
        return self._embeddings[text]


def embed_text(provider: EmbeddingProvider, text: str) -> np.ndarray:
    """
    Embed one text, normalizing failures to EmbeddingUnavailableError.
    """
    try:
        vector = provider.embed(text)
    except EmbeddingUnavailableError:
        raise
    except Exception as e:
        raise EmbeddingUnavailableError(text, e) from e

    if vector is None:
        raise EmbeddingUnavailableError(text)
    return np.asarray(vector, dtype=np.float64)


async def embed_texts(
    provider: EmbeddingProvider | None,
    texts: Sequence[str],
    executor: Executor | None = None,
) -> list[np.ndarray | EmbeddingUnavailableError]:
    """
    Embed several texts concurrently.

    Returns:
        One entry per text: the embedding, or the error that prevented it
    """
    if provider is None:
        return [EmbeddingUnavailableError(text) for text in texts]

    loop = asyncio.get_running_loop()
    tasks = [loop.run_in_executor(executor, embed_text, provider, text) for text in texts]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    embeddings: list[np.ndarray | EmbeddingUnavailableError] = []
    for text, result in zip(texts, results):
        if isinstance(result, EmbeddingUnavailableError):
            logger.warning(f"Embedding unavailable: {result.message}")
            embeddings.append(result)
        elif isinstance(result, BaseException):
            raise result
        else:
            embeddings.append(result)
    return embeddings


__all__ = [
    "CallableEmbeddingProvider",
    "DocumentStore",
    "EmbeddingProvider",
    "MappingEmbeddingProvider",
    "embed_text",
    "embed_texts",
]
