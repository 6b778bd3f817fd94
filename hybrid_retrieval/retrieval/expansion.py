"""
Query variant intake.

Paraphrase generation happens outside the engine. This module only asks an
injected QueryExpander for variants and turns its answer into the list of
query strings to fan out over, original query first.
"""

import inspect
import logging
from typing import Awaitable, Mapping, Protocol, Sequence, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class QueryExpander(Protocol):
    """Produces alternative phrasings of a query (sync or async)."""

    def expand(self, query: str) -> Sequence[str] | Awaitable[Sequence[str]]:
        ...


class StaticQueryExpander:
    """
    Expander answering from a fixed table.

    Queries missing from the table get ``default`` (no variants unless given).
    """

    def __init__(
        self,
        variants: Mapping[str, Sequence[str]] | None = None,
        default: Sequence[str] = (),
    ):
        self._variants = {k: list(v) for k, v in (variants or {}).items()}
        self._default = list(default)

    def expand(self, query: str) -> list[str]:
        return list(self._variants.get(query, self._default))


async def expand_query(
    query: str,
    expander: QueryExpander | None,
    max_variants: int = 4,
) -> list[str]:
    """
    Build the list of query texts to search with.

    The original query is always element 0. Blank variants and duplicates of
    earlier entries are dropped, and the list is capped at ``max_variants``
    entries in total. A failing expander leaves only the original query.

    Args:
        query: Original user query
        expander: Variant source, or None to skip expansion
        max_variants: Maximum number of queries including the original

    Returns:
        Query texts, original first
    """
    queries = [query]
    if expander is None or max_variants <= 1:
        return queries

    try:
        variants = expander.expand(query)
        if inspect.isawaitable(variants):
            variants = await variants
        # Lazy answers (generators, streams) can still fail while being read
        variants = list(variants or [])
    except Exception as e:
        logger.warning(f"Query expansion failed, using original query only: {e}")
        return queries

    seen = {query.strip().lower()}
    for variant in variants:
        if not isinstance(variant, str):
            continue
        normalized = variant.strip().lower()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        queries.append(variant.strip())
        if len(queries) >= max_variants:
            break

    logger.debug(f"Expanded query into {len(queries)} variants")
    return queries


__all__ = [
    "QueryExpander",
    "StaticQueryExpander",
    "expand_query",
]
