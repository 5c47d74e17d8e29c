"""Single search phase: query -> ranked ScoredDocument list.

Used twice per topic (plain query, then expanded query) against the same open
index handle.
"""

from __future__ import annotations

from typing import Callable, List, Mapping, Tuple, Union

from querier.lucene_backend import COLLECTION_ID_FIELD, escape_query
from querier.types import ExpandedQuery, NormalizedQuery, ScoredDocument


QueryLike = Union[str, NormalizedQuery, ExpandedQuery]


def to_lucene_syntax(query: QueryLike, escape: Callable[[str], str] = escape_query) -> str:
    """Escaped parser input for the free-text part of a query.

    Expansion terms of an ExpandedQuery are not part of it; see
    `expansion_clauses`.
    """
    if isinstance(query, ExpandedQuery):
        text = query.base_text
    elif isinstance(query, NormalizedQuery):
        text = query.text
    else:
        text = query
    return escape(text).strip()


def expansion_clauses(query: QueryLike) -> Tuple[Tuple[str, float], ...]:
    """(term, weight) pairs searched verbatim, without re-analysis."""
    if isinstance(query, ExpandedQuery):
        return tuple((t.term, t.weight) for t in query.terms)
    return ()


def search(
    index,
    query: QueryLike,
    *,
    max_results: int,
    boosts: Mapping[str, float],
    docno_field: str = COLLECTION_ID_FIELD,
) -> List[ScoredDocument]:
    """Search the index and return at most `max_results` hits, rank 0 first.

    Parse failures propagate as QueryParseError.
    """
    if not isinstance(max_results, int) or max_results <= 0:
        raise ValueError("max_results must be a positive integer")
    if not boosts:
        raise ValueError("boosts must name at least one field")

    query_text = to_lucene_syntax(query, escape=index.escape)
    expansion = expansion_clauses(query)
    if not query_text and not expansion:
        return []

    parsed = index.parse(query_text, boosts, expansion=expansion)
    raw_hits = index.search(parsed, max_results)

    out: List[ScoredDocument] = []
    for rank, (internal_id, score) in enumerate(raw_hits[:max_results]):
        doc_id = index.get_field(internal_id, docno_field)
        index_id = "" if docno_field == COLLECTION_ID_FIELD else index.get_field(internal_id, COLLECTION_ID_FIELD)
        out.append(ScoredDocument(doc_id=doc_id, score=float(score), rank=rank, index_id=index_id))
    return out
