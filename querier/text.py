"""Text helpers shared by query building and expansion."""

from __future__ import annotations

import re
import string
from typing import List


_PUNCT_RE = re.compile("[" + re.escape(string.punctuation) + "]")
_WS_RE = re.compile(r"\s+")
_TOKEN_RE = re.compile(r"\b\w+\b")
_SENTENCE_RE = re.compile(r"[.!?;]")

# Lucene's default English stop set.
DEFAULT_STOPWORDS = frozenset(
    {
        "a",
        "an",
        "and",
        "are",
        "as",
        "at",
        "be",
        "but",
        "by",
        "for",
        "if",
        "in",
        "into",
        "is",
        "it",
        "no",
        "not",
        "of",
        "on",
        "or",
        "such",
        "that",
        "the",
        "their",
        "then",
        "there",
        "these",
        "they",
        "this",
        "to",
        "was",
        "will",
        "with",
    }
)


def collapse_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text or "").strip()


def split_sentences(text: str) -> List[str]:
    """Split on sentence terminators (. ! ? ;), keeping empty pieces."""
    return _SENTENCE_RE.split(text or "")


def replace_punctuation(text: str) -> str:
    """Replace ASCII punctuation with spaces and collapse whitespace."""
    return collapse_whitespace(_PUNCT_RE.sub(" ", text or ""))


def tokenize(text: str) -> List[str]:
    return _TOKEN_RE.findall((text or "").lower())
