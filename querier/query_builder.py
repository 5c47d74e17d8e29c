"""Topic -> query text.

The narrative filter is a lexical heuristic: a sentence-delimited segment is
dropped when it contains both "not" and "relevant" anywhere (substring match, no
adjacency check) or contains "irrelevant". It will also drop segments such as
"not about relevant events"; that behavior is intentional and kept as is.
"""

from __future__ import annotations

from typing import List, Optional

from querier.errors import MissingFieldError
from querier.text import collapse_whitespace, replace_punctuation, split_sentences
from querier.types import NormalizedQuery, Topic


def is_negative_segment(segment: str) -> bool:
    s = segment.lower()
    return ("not" in s and "relevant" in s) or "irrelevant" in s


def filter_narrative(narrative: str) -> str:
    """Drop negative-relevance segments and normalize what remains."""
    kept: List[str] = []
    for segment in split_sentences(narrative.strip().lower()):
        segment = segment.strip()
        if is_negative_segment(segment):
            continue
        kept.append(segment.replace("\n", " "))
    return replace_punctuation(" ".join(kept))


def _require(topic: Topic, name: str) -> str:
    value: Optional[str] = getattr(topic, name, None)
    if value is None:
        raise MissingFieldError(name, topic_id=getattr(topic, "id", None))
    return value


def build_query(topic: Topic) -> NormalizedQuery:
    """Build the normalized query text: title + description + filtered narrative."""
    title = replace_punctuation(_require(topic, "title"))
    description = replace_punctuation(_require(topic, "description"))
    narrative = filter_narrative(_require(topic, "narrative"))
    text = collapse_whitespace(" ".join((title, description, narrative)))
    return NormalizedQuery(topic_id=topic.id, text=text)
