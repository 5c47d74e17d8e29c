from __future__ import annotations

import logging
import math

import pytest

from querier import expansion, retriever
from querier.types import ExpandedQuery, NormalizedQuery, ScoredDocument


BOOSTS = {"title": 0.07, "content": 1.1}


def _phase1(index, text, k=10):
    q = NormalizedQuery(topic_id="Q", text=text)
    return q, retriever.search(index, q, max_results=k, boosts=BOOSTS)


def test_idf_prefers_rare_terms():
    assert expansion.idf(1, 100) > expansion.idf(50, 100) > 0
    assert expansion.idf(0, 0) == pytest.approx(math.log(2.0))


@pytest.mark.parametrize(
    "term,ok",
    [("felines", True), ("the", False), ("1999", False), ("a", False), ("u.s", False), ("x" * 21, False), ("b52", True)],
)
def test_candidate_filter(term, ok):
    assert expansion.is_candidate_term(term) is ok


def test_prf_ranking_and_weights(feline_index):
    q, hits = _phase1(feline_index, "cats")
    assert [h.doc_id for h in hits] == ["F1", "F2"]

    expanded = expansion.expand(q, hits[:2], feline_index, feedback_depth=2, expansion_term_count=3, max_boost=0.5)
    terms = [t.term for t in expanded.terms]
    assert terms == ["whiskers", "purr", "felines"]
    assert expanded.terms[0].weight == pytest.approx(0.5)
    assert expanded.terms[1].weight == pytest.approx(0.4)
    assert all(t.weight <= 0.5 for t in expanded.terms)
    assert expanded.text.startswith("cats whiskers^0.5000 purr^0.4000 felines^")


def test_feedback_depth_limits_documents(feline_index):
    q, hits = _phase1(feline_index, "cats")
    expansion.expand(q, hits, feline_index, feedback_depth=1, expansion_term_count=5)
    assert feline_index.vector_requests == ["F1"]


def test_expansion_term_count_limits_terms(feline_index):
    q, hits = _phase1(feline_index, "cats")
    expanded = expansion.expand(q, hits[:2], feline_index, feedback_depth=2, expansion_term_count=1)
    assert [t.term for t in expanded.terms] == ["whiskers"]


def test_no_original_terms_or_stopwords(feline_index):
    q, hits = _phase1(feline_index, "Cats FELINES")
    expanded = expansion.expand(q, hits, feline_index, feedback_depth=10, expansion_term_count=50)
    original = {t.lower() for t in q.text.split()}
    added = {t.term.lower() for t in expanded.terms}
    assert added
    assert not (added & original)
    assert "the" not in added and "in" not in added and "1999" not in added


def test_ties_break_alphabetically(make_index):
    index = make_index({"T1": {"content": "query beta alpha"}, "T2": {"content": "other"}})
    q = NormalizedQuery(topic_id="Q", text="query")
    hits = [ScoredDocument(doc_id="T1", score=1.0, rank=0)]
    expanded = expansion.expand(q, hits, index, feedback_depth=5, expansion_term_count=5)
    assert [t.term for t in expanded.terms] == ["alpha", "beta"]
    assert expanded.terms[0].weight == expanded.terms[1].weight


def test_empty_feedback_leaves_query_unchanged(feline_index):
    q = NormalizedQuery(topic_id="Q", text="nothing matches here")
    expanded = expansion.expand(q, [], feline_index, feedback_depth=10, expansion_term_count=10)
    assert expanded == ExpandedQuery.unchanged(q)
    assert expanded.text == q.text
    assert not expanded.is_expanded


def test_no_new_terms_leaves_query_unchanged(cats_index):
    q, hits = _phase1(cats_index, "cats information about cats", k=2)
    expanded = expansion.expand(q, hits, cats_index, feedback_depth=10, expansion_term_count=10)
    assert expanded.text == "cats information about cats"


def test_missing_term_stats_are_skipped(make_index, caplog):
    index = make_index(
        {
            "A": {"content": "cats alpha"},
            "B": {"content": "cats beta"},
        },
        missing_vectors={"A"},
    )
    q, hits = _phase1(index, "cats")
    with caplog.at_level(logging.WARNING, logger="querier.expansion"):
        expanded = expansion.expand(q, hits, index, feedback_depth=2, expansion_term_count=5)
    assert [t.term for t in expanded.terms] == ["beta"]
    assert "Skipping feedback document A" in caplog.text


def test_all_term_stats_missing_falls_back(make_index):
    index = make_index({"A": {"content": "cats alpha"}}, missing_vectors={"A"})
    q, hits = _phase1(index, "cats")
    expanded = expansion.expand(q, hits, index, feedback_depth=2, expansion_term_count=5)
    assert expanded.text == "cats"


@pytest.mark.parametrize("depth,count", [(0, 5), (5, 0)])
def test_disabled_expansion(feline_index, depth, count):
    q, hits = _phase1(feline_index, "cats")
    expanded = expansion.expand(q, hits, feline_index, feedback_depth=depth, expansion_term_count=count)
    assert expanded.text == "cats"


def test_expansion_is_deterministic(feline_index):
    q, hits = _phase1(feline_index, "cats")
    first = expansion.expand(q, hits, feline_index, feedback_depth=3, expansion_term_count=10)
    second = expansion.expand(q, hits, feline_index, feedback_depth=3, expansion_term_count=10)
    assert first == second
    assert first.text == second.text


def test_select_terms_rejects_bad_boost():
    with pytest.raises(ValueError):
        expansion.select_terms({"a": 1.0}, 1, max_boost=1.5)
