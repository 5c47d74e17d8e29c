from __future__ import annotations

from collections import Counter
from typing import Callable, Dict, Iterable, List, Mapping, Tuple

import pytest

from querier.config import RunConfig
from querier.lucene_backend import escape_query
from querier.errors import QueryParseError, TermStatsUnavailableError
from querier.text import tokenize


_RESERVED = set('\\+-!():^[]"{}~*?|&/')


def _parse_clauses(query_text: str, stem: Callable[[str], str]) -> List[Tuple[str, float]]:
    """Tiny subset of Lucene syntax: escaped chars, bare terms, `term^boost`."""
    clauses: List[Tuple[str, float]] = []
    i = 0
    n = len(query_text)
    while i < n:
        while i < n and query_text[i].isspace():
            i += 1
        if i >= n:
            break
        buf: List[str] = []
        boost = 1.0
        while i < n and not query_text[i].isspace():
            ch = query_text[i]
            if ch == "\\":
                if i + 1 >= n:
                    raise QueryParseError(query_text, "dangling escape")
                buf.append(query_text[i + 1])
                i += 2
                continue
            if ch == "^":
                j = i + 1
                while j < n and (query_text[j].isdigit() or query_text[j] == "."):
                    j += 1
                if j == i + 1:
                    raise QueryParseError(query_text, "boost without a number")
                boost = float(query_text[i + 1 : j])
                i = j
                continue
            if ch in _RESERVED:
                raise QueryParseError(query_text, f"unexpected {ch!r}")
            buf.append(ch)
            i += 1
        for tok in tokenize("".join(buf)):
            clauses.append((stem(tok), boost))
    return clauses


class FakeIndex:
    """In-memory stand-in for LuceneIndex: weighted term-count scoring.

    Fields listed in `stored_only` are retrievable through get_field but are
    not tokenized, like a stored docno field in a Lucene index. `stem` is
    applied to parsed query text only; expansion terms are matched verbatim.
    """

    def __init__(
        self,
        docs: Mapping[str, Mapping[str, str]],
        *,
        missing_vectors: Iterable[str] = (),
        parse_error: bool = False,
        stored_only: Iterable[str] = ("docno",),
        stem: Callable[[str], str] = lambda tok: tok,
    ):
        self.docs: List[Tuple[str, Dict[str, str]]] = [(d, dict(f)) for d, f in docs.items()]
        self.missing_vectors = set(missing_vectors)
        self.parse_error = parse_error
        self.stored_only = frozenset(stored_only)
        self.stem = stem
        self.parsed: List[str] = []
        self.expansions: List[Tuple[Tuple[str, float], ...]] = []
        self.vector_requests: List[str] = []
        self.closed = False

    def _tokens(self, fields: Mapping[str, str]) -> List[str]:
        out: List[str] = []
        for name in sorted(fields):
            if name not in self.stored_only:
                out.extend(tokenize(fields[name]))
        return out

    def analyze(self, text: str) -> List[str]:
        return [self.stem(tok) for tok in tokenize(text)]

    def escape(self, text: str) -> str:
        return escape_query(text)

    def parse(self, query_text: str, boosts: Mapping[str, float], expansion: Iterable[Tuple[str, float]] = ()):
        expansion = tuple((str(t), float(w)) for t, w in expansion)
        self.parsed.append(query_text)
        self.expansions.append(expansion)
        if self.parse_error:
            raise QueryParseError(query_text, "forced failure")
        clauses = _parse_clauses(query_text, self.stem) if query_text.strip() else []
        if not clauses and not expansion:
            raise QueryParseError(query_text, "empty query")
        return (tuple(clauses) + expansion, dict(boosts))

    def search(self, parsed, k: int) -> List[Tuple[int, float]]:
        clauses, boosts = parsed
        scored: List[Tuple[int, float]] = []
        for i, (_docid, fields) in enumerate(self.docs):
            score = 0.0
            for field_name, field_boost in boosts.items():
                if field_name in self.stored_only:
                    continue
                counts = Counter(tokenize(fields.get(field_name, "")))
                for term, term_boost in clauses:
                    score += field_boost * term_boost * counts[term]
            if score > 0:
                scored.append((i, score))
        scored.sort(key=lambda x: -x[1])
        return scored[:k]

    def get_field(self, internal_docid: int, field_name: str) -> str:
        docid, fields = self.docs[internal_docid]
        if field_name == "id":
            return docid
        return fields[field_name]

    def document_vector(self, docid: str) -> Dict[str, int]:
        self.vector_requests.append(docid)
        if docid in self.missing_vectors:
            raise TermStatsUnavailableError(docid, reason="not indexed")
        for d, fields in self.docs:
            if d == docid:
                return dict(Counter(self._tokens(fields)))
        raise TermStatsUnavailableError(docid, reason="unknown document")

    def document_frequency(self, term: str) -> int:
        return sum(1 for _d, fields in self.docs if term in self._tokens(fields))

    def num_docs(self) -> int:
        return len(self.docs)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_index():
    def _make(docs, **kwargs) -> FakeIndex:
        return FakeIndex(docs, **kwargs)

    return _make


@pytest.fixture
def cats_index() -> FakeIndex:
    return FakeIndex(
        {
            "D1": {"title": "", "content": "cats cats cats"},
            "D2": {"title": "", "content": "dogs dogs"},
        }
    )


@pytest.fixture
def feline_index() -> FakeIndex:
    return FakeIndex(
        {
            "F1": {"title": "cats", "content": "cats felines whiskers"},
            "F2": {"title": "", "content": "cats felines purr the 1999"},
            "F3": {"title": "", "content": "dogs bark loudly"},
            "F4": {"title": "", "content": "felines in the wild"},
        }
    )


@pytest.fixture
def make_config(tmp_path):
    def _make(**overrides) -> RunConfig:
        values = dict(
            index_path=str(tmp_path / "index"),
            topics_path=str(tmp_path / "topics.txt"),
            results_dir=str(tmp_path / "results"),
            field_boosts={"title": 0.07, "content": 1.1},
            max_results=2,
            feedback_depth=10,
            expansion_term_count=5,
        )
        values.update(overrides)
        return RunConfig(**values)

    return _make
