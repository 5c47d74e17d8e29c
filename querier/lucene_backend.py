"""Pyserini Lucene backend.

Wraps a LuceneSearcher (search + stored fields) and a LuceneIndexReader (term
vectors + corpus statistics) behind one read-only handle, so the pipeline and
the expansion code only see plain Python values.

Expected usage:
    from querier.lucene_backend import open_index

    with open_index("indexes/robust04", analysis="porter", scoring="bm25") as index:
        parsed = index.parse(index.escape("international organized crime"), {"contents": 1.0})
        hits = index.search(parsed, k=1000)
"""

from __future__ import annotations

import logging
import os
from typing import Dict, List, Mapping, Sequence, Tuple

from querier.config import ANALYSIS_METHODS, SCORING_FUNCTIONS, RunConfig
from querier.errors import ConfigError, IndexOpenError, QuerierError, QueryParseError, TermStatsUnavailableError


log = logging.getLogger("querier.lucene_backend")

# Stored field Anserini uses for the collection docid; term vectors are keyed by it.
COLLECTION_ID_FIELD = "id"

# Reserved by Lucene's classic query parser (same set as QueryParser.escape).
_RESERVED = frozenset('\\+-!():^[]"{}~*?|&/')


def escape_query(text: str) -> str:
    """Backslash-escape every character the classic query parser reserves."""
    out: List[str] = []
    for ch in text or "":
        if ch in _RESERVED:
            out.append("\\")
        out.append(ch)
    return "".join(out)


def _boost_key(boosts: Mapping[str, float]) -> Tuple[Tuple[str, float], ...]:
    return tuple(sorted((str(k), float(v)) for k, v in boosts.items()))


def get_analyzer(analysis: str):
    """Build the Lucene analyzer for an analysis method name."""
    from pyserini.analysis import get_lucene_analyzer

    name = (analysis or "").strip().lower()
    if name == "porter":
        return get_lucene_analyzer(language="en", stemming=True, stemmer="porter", stopwords=True)
    if name == "krovetz":
        return get_lucene_analyzer(language="en", stemming=True, stemmer="krovetz", stopwords=True)
    if name == "none":
        return get_lucene_analyzer(language="en", stemming=False, stopwords=True)
    raise ConfigError(f"Unknown analysis method: {analysis!r} (expected one of {ANALYSIS_METHODS})")


def set_bm25(searcher, k1: float, b: float) -> None:
    """Set BM25 parameters on a LuceneSearcher."""
    if k1 <= 0:
        raise ConfigError("k1 must be > 0")
    if not (0.0 <= b <= 1.0):
        raise ConfigError("b must be in [0, 1]")
    searcher.set_bm25(k1=k1, b=b)


def set_qld(searcher, mu: float) -> None:
    """Set Query Likelihood with Dirichlet smoothing (QLD) on a LuceneSearcher."""
    if mu <= 0:
        raise ConfigError("mu must be > 0")
    searcher.set_qld(mu)


def apply_scoring(searcher, scoring: str, *, k1: float = 0.9, b: float = 0.4, mu: float = 1000.0) -> None:
    name = (scoring or "").strip().lower()
    if name == "bm25":
        set_bm25(searcher, k1=k1, b=b)
    elif name == "qld":
        set_qld(searcher, mu=mu)
    else:
        raise ConfigError(f"Unknown scoring function: {scoring!r} (expected one of {SCORING_FUNCTIONS})")


class LuceneIndex:
    """Read-only handle over one on-disk Lucene index."""

    def __init__(self, searcher, reader, analyzer, *, docno_field: str = "id", path: str = ""):
        self.searcher = searcher
        self.reader = reader
        self.analyzer = analyzer
        self.docno_field = docno_field
        self.path = path
        self._parsers: Dict[Tuple[Tuple[str, float], ...], object] = {}
        self._df_cache: Dict[str, int] = {}
        self._num_docs: int | None = None
        self._closed = False

    def __enter__(self) -> "LuceneIndex":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _parser(self, boosts: Mapping[str, float]):
        key = _boost_key(boosts)
        parser = self._parsers.get(key)
        if parser is None:
            from pyserini.pyclass import autoclass

            JMultiFieldQueryParser = autoclass("org.apache.lucene.queryparser.classic.MultiFieldQueryParser")
            JHashMap = autoclass("java.util.HashMap")
            JFloat = autoclass("java.lang.Float")

            jboosts = JHashMap()
            for name, weight in key:
                jboosts.put(name, JFloat.valueOf(str(weight)))
            parser = JMultiFieldQueryParser([name for name, _ in key], self.analyzer, jboosts)
            self._parsers[key] = parser
        return parser

    def escape(self, text: str) -> str:
        """Escape with Lucene's own QueryParser.escape."""
        from pyserini.pyclass import autoclass

        JQueryParser = autoclass("org.apache.lucene.queryparser.classic.QueryParser")
        return str(JQueryParser.escape(text or ""))

    def _term_clauses(self, terms: Sequence[Tuple[str, float]], boosts: Mapping[str, float]) -> List[object]:
        """One unanalyzed TermQuery per (term, field), boosted by weight * field boost."""
        from pyserini.pyclass import autoclass

        JTerm = autoclass("org.apache.lucene.index.Term")
        JTermQuery = autoclass("org.apache.lucene.search.TermQuery")
        JBoostQuery = autoclass("org.apache.lucene.search.BoostQuery")

        clauses: List[object] = []
        for term, weight in terms:
            for field_name, field_boost in _boost_key(boosts):
                tq = JTermQuery(JTerm(field_name, term))
                clauses.append(JBoostQuery(tq, float(weight) * field_boost))
        return clauses

    def parse(
        self,
        query_text: str,
        boosts: Mapping[str, float],
        expansion: Sequence[Tuple[str, float]] = (),
    ):
        """Parse escaped query text over the boosted fields.

        `expansion` holds already-analyzed (term, weight) pairs; they become
        exact TermQuery clauses and bypass the analyzer, so a stemmed feedback
        term is searched as is instead of being stemmed a second time.
        """
        from jnius import JavaException

        try:
            base = self._parser(boosts).parse(query_text) if query_text.strip() else None
            if not expansion:
                if base is None:
                    raise QueryParseError(query_text, reason="empty query")
                return base

            from pyserini.pyclass import autoclass

            JBooleanQueryBuilder = autoclass("org.apache.lucene.search.BooleanQuery$Builder")
            JOccur = autoclass("org.apache.lucene.search.BooleanClause$Occur")

            builder = JBooleanQueryBuilder()
            if base is not None:
                builder.add(base, JOccur.SHOULD)
            for clause in self._term_clauses(expansion, boosts):
                builder.add(clause, JOccur.SHOULD)
            return builder.build()
        except JavaException as e:
            raise QueryParseError(query_text, reason=str(e)) from e

    def search(self, parsed_query, k: int) -> List[Tuple[int, float]]:
        """Return (internal docid, score) pairs, best first."""
        hits = self.searcher.search(parsed_query, k=k)
        return [(int(h.lucene_docid), float(h.score)) for h in hits]

    def get_field(self, internal_docid: int, field_name: str) -> str:
        doc = self.searcher.doc(internal_docid)
        value = doc.get(field_name) if doc is not None else None
        if value is None:
            raise QuerierError(f"document {internal_docid} has no stored field {field_name!r} in {self.path!r}")
        return str(value)

    def document_vector(self, docid: str) -> Dict[str, int]:
        """Analyzed term -> frequency for one document (needs stored doc vectors)."""
        from jnius import JavaException

        try:
            vector = self.reader.get_document_vector(docid)
        except (JavaException, ValueError, TypeError) as e:
            raise TermStatsUnavailableError(docid, reason=str(e)) from e
        if not vector:
            raise TermStatsUnavailableError(docid, reason="empty or missing document vector")
        return {str(t): int(tf) for t, tf in vector.items()}

    def document_frequency(self, term: str) -> int:
        df = self._df_cache.get(term)
        if df is None:
            # Terms from document vectors are already analyzed.
            df, _cf = self.reader.get_term_counts(term, analyzer=None)
            df = int(df or 0)
            self._df_cache[term] = df
        return df

    def num_docs(self) -> int:
        if self._num_docs is None:
            self._num_docs = int(self.reader.stats()["documents"])
        return self._num_docs

    def analyze(self, text: str) -> List[str]:
        return [str(t) for t in self.reader.analyze(text, analyzer=self.analyzer)]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.searcher.close()
        close_reader = getattr(self.reader, "close", None)
        if callable(close_reader):
            close_reader()
        log.debug("Closed index %s", self.path)


def open_index(
    path: str,
    *,
    analysis: str = "porter",
    scoring: str = "bm25",
    k1: float = 0.9,
    b: float = 0.4,
    mu: float = 1000.0,
    docno_field: str = "id",
) -> LuceneIndex:
    """Open a local Lucene index with the given analyzer and similarity."""
    if not os.path.isdir(path):
        raise IndexOpenError(path, reason="not a directory")

    analyzer = get_analyzer(analysis)
    try:
        from pyserini.index.lucene import LuceneIndexReader
        from pyserini.search.lucene import LuceneSearcher

        searcher = LuceneSearcher(path)
    except Exception as e:
        raise IndexOpenError(path, reason=str(e)) from e
    try:
        reader = LuceneIndexReader(path)
    except Exception as e:
        searcher.close()
        raise IndexOpenError(path, reason=str(e)) from e

    searcher.set_analyzer(analyzer)
    apply_scoring(searcher, scoring, k1=k1, b=b, mu=mu)
    log.info("Opened index %s (analysis=%s, scoring=%s)", path, analysis, scoring)
    return LuceneIndex(searcher, reader, analyzer, docno_field=docno_field, path=path)


def open_index_from_config(config: RunConfig) -> LuceneIndex:
    return open_index(
        config.index_path,
        analysis=config.analysis,
        scoring=config.scoring,
        k1=config.k1,
        b=config.b,
        mu=config.mu,
        docno_field=config.docno_field,
    )
