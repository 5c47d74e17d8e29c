"""Core dataclasses passed between pipeline stages.

These types are backend-agnostic (no Pyserini deps). A topic flows through:
- Topic -> NormalizedQuery (query builder)
- NormalizedQuery -> list[ScoredDocument] (phase 1 retrieval)
- ScoredDocument list -> ExpandedQuery (PRF expansion)
- ExpandedQuery -> RankedResultList (phase 2 retrieval) -> run file lines
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple


@dataclass(frozen=True)
class Topic:
    """A parsed TREC topic."""

    id: str
    title: str
    description: str
    narrative: str


@dataclass(frozen=True)
class NormalizedQuery:
    """Plain query text for one topic, punctuation already removed."""

    topic_id: str
    text: str


@dataclass(frozen=True)
class ScoredDocument:
    doc_id: str
    score: float
    rank: int
    # Collection docid used for term-statistics lookups; empty when it equals doc_id.
    index_id: str = ""

    @property
    def stats_id(self) -> str:
        return self.index_id or self.doc_id


@dataclass(frozen=True)
class ExpansionTerm:
    """A feedback term with its boost relative to the original terms (1.0)."""

    term: str
    weight: float

    @property
    def sort_key(self) -> Tuple[float, str]:
        return (-self.weight, self.term)

    def render(self) -> str:
        return f"{self.term}^{self.weight:.4f}"


@dataclass(frozen=True)
class ExpandedQuery:
    """Original query text plus boosted feedback terms."""

    topic_id: str
    base_text: str
    terms: Tuple[ExpansionTerm, ...] = field(default_factory=tuple)

    @property
    def is_expanded(self) -> bool:
        return bool(self.terms)

    @property
    def text(self) -> str:
        if not self.terms:
            return self.base_text
        rendered = " ".join(t.render() for t in self.terms)
        return f"{self.base_text} {rendered}".strip()

    @classmethod
    def unchanged(cls, query: NormalizedQuery) -> "ExpandedQuery":
        return cls(topic_id=query.topic_id, base_text=query.text, terms=())


@dataclass(frozen=True)
class RankedResultList:
    topic_id: str
    hits: Tuple[ScoredDocument, ...]

    def __len__(self) -> int:
        return len(self.hits)
