"""Pseudo-relevance feedback (PRF) query expansion.

The top `feedback_depth` first-pass hits are treated as relevant. Every term in
their document vectors gets a Rocchio-style score

    score(t) = 1/|F| * sum_{d in F} (tf(t, d) / |d|) * idf(t)
    idf(t)   = ln(1 + (N - df(t) + 0.5) / (df(t) + 0.5))

where F holds the feedback documents that have term vectors, |d| is the total
term count of d, N the corpus size and df(t) the corpus document frequency.
Terms frequent in the feedback set but rare in the corpus score highest.

Selection is deterministic: score desc, then term asc. Selected terms are
boosted relative to the strongest one (`max_boost * score / top_score`), so no
expansion term ever outweighs an original query term (implicit boost 1.0).
"""

from __future__ import annotations

import logging
import math
import re
from collections import defaultdict
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set

from querier.errors import TermStatsUnavailableError
from querier.text import DEFAULT_STOPWORDS, tokenize
from querier.types import ExpandedQuery, ExpansionTerm, NormalizedQuery, ScoredDocument


log = logging.getLogger("querier.expansion")

DEFAULT_MAX_BOOST = 0.5

_CANDIDATE_RE = re.compile(r"^[a-z0-9]+$")
_MIN_TERM_LEN = 2
_MAX_TERM_LEN = 20


def idf(df: int, n_docs: int) -> float:
    """BM25-style idf, kept non-negative with the +1 inside the log."""
    df = max(int(df), 0)
    n_docs = max(int(n_docs), df)
    return math.log(1.0 + (n_docs - df + 0.5) / (df + 0.5))


def is_candidate_term(term: str, stopwords: FrozenSet[str] = DEFAULT_STOPWORDS) -> bool:
    if not (_MIN_TERM_LEN <= len(term) <= _MAX_TERM_LEN):
        return False
    if not _CANDIDATE_RE.match(term):
        return False
    if term.isdigit():
        return False
    return term not in stopwords


def original_terms(query: NormalizedQuery, index=None) -> Set[str]:
    """Lower-cased query tokens plus their analyzed forms when an index is given."""
    terms = set(tokenize(query.text))
    if index is not None and query.text.strip():
        terms.update(t.lower() for t in index.analyze(query.text))
    return terms


def _feedback_vectors(index, feedback: Sequence[ScoredDocument]) -> List[Dict[str, int]]:
    vectors: List[Dict[str, int]] = []
    for doc in feedback:
        try:
            vectors.append(index.document_vector(doc.stats_id))
        except TermStatsUnavailableError as e:
            log.warning("Skipping feedback document %s: %s", doc.doc_id, e)
    return vectors


def score_candidates(
    index,
    vectors: Sequence[Dict[str, int]],
    *,
    exclude: Iterable[str] = (),
    stopwords: FrozenSet[str] = DEFAULT_STOPWORDS,
) -> Dict[str, float]:
    """Aggregate PRF scores over the feedback term vectors."""
    if not vectors:
        return {}
    excluded = {t.lower() for t in exclude}

    weighted_tf: Dict[str, float] = defaultdict(float)
    for vec in vectors:
        doc_len = sum(vec.values())
        if doc_len <= 0:
            continue
        for term in sorted(vec):
            t = term.lower()
            if t in excluded or not is_candidate_term(t, stopwords):
                continue
            weighted_tf[t] += vec[term] / float(doc_len)

    n_docs = index.num_docs()
    scores: Dict[str, float] = {}
    for term in sorted(weighted_tf):
        scores[term] = (weighted_tf[term] / len(vectors)) * idf(index.document_frequency(term), n_docs)
    return scores


def select_terms(scores: Dict[str, float], count: int, max_boost: float = DEFAULT_MAX_BOOST) -> List[ExpansionTerm]:
    """Top `count` terms by score (ties alphabetical), boosts scaled to `max_boost`."""
    if count <= 0 or not scores:
        return []
    if not (0.0 < max_boost <= 1.0):
        raise ValueError("max_boost must be in (0, 1]")

    ranked = sorted(scores.items(), key=lambda kv: (-kv[1], kv[0]))[:count]
    top_score = ranked[0][1]
    if top_score <= 0:
        return []

    out: List[ExpansionTerm] = []
    for term, score in ranked:
        if score <= 0:
            continue
        out.append(ExpansionTerm(term=term, weight=max_boost * score / top_score))
    return out


def expand(
    query: NormalizedQuery,
    phase1_hits: Sequence[ScoredDocument],
    index,
    *,
    feedback_depth: int,
    expansion_term_count: int,
    max_boost: float = DEFAULT_MAX_BOOST,
    stopwords: Optional[FrozenSet[str]] = None,
) -> ExpandedQuery:
    """Expand a query with feedback terms from the top first-pass hits.

    Falls back to the unchanged query when there is nothing to learn from: no
    hits, no usable term vectors, or no candidate term left after filtering.
    """
    if feedback_depth <= 0 or expansion_term_count <= 0:
        return ExpandedQuery.unchanged(query)

    feedback = list(phase1_hits[:feedback_depth])
    if not feedback:
        log.debug("Topic %s: empty feedback set, query left unchanged", query.topic_id)
        return ExpandedQuery.unchanged(query)

    vectors = _feedback_vectors(index, feedback)
    if not vectors:
        log.warning("Topic %s: no feedback document had term statistics, query left unchanged", query.topic_id)
        return ExpandedQuery.unchanged(query)

    scores = score_candidates(
        index,
        vectors,
        exclude=original_terms(query, index),
        stopwords=DEFAULT_STOPWORDS if stopwords is None else stopwords,
    )
    terms = select_terms(scores, expansion_term_count, max_boost=max_boost)
    if not terms:
        return ExpandedQuery.unchanged(query)

    log.debug(
        "Topic %s: %d feedback docs, %d candidates, added %s",
        query.topic_id,
        len(vectors),
        len(scores),
        " ".join(t.render() for t in terms),
    )
    return ExpandedQuery(topic_id=query.topic_id, base_text=query.text, terms=tuple(terms))
