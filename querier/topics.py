"""TREC topic file loading.

Expected input (one block per topic, Robust04 style):

    <top>
    <num> Number: 401
    <title> foreign minorities, Germany
    <desc> Description:
    What language and cultural differences impede the integration ...
    <narr> Narrative:
    A relevant document will focus on ...
    </top>

Topics are returned in file order; that order is the processing order.
"""

from __future__ import annotations

import re
from typing import Dict, List

from querier.errors import InputError, MissingFieldError
from querier.types import Topic


_TOP_RE = re.compile(r"<top>(.*?)</top>", re.DOTALL | re.IGNORECASE)
_TAG_RE = re.compile(r"<(num|title|desc|narr)>", re.IGNORECASE)

# Boilerplate labels that open some fields.
_LABELS = {
    "num": re.compile(r"^\s*number\s*:", re.IGNORECASE),
    "desc": re.compile(r"^\s*description\s*:", re.IGNORECASE),
    "narr": re.compile(r"^\s*narrative\s*:", re.IGNORECASE),
}

_FIELD_NAMES = {"title": "title", "desc": "description", "narr": "narrative"}


def _split_fields(block: str) -> Dict[str, str]:
    """Map tag name -> raw text between that tag and the next one."""
    fields: Dict[str, str] = {}
    matches = list(_TAG_RE.finditer(block))
    for i, m in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(block)
        tag = m.group(1).lower()
        value = block[m.end():end]
        label = _LABELS.get(tag)
        if label is not None:
            value = label.sub("", value, count=1)
        fields[tag] = value.strip()
    return fields


def parse_topics(text: str, source: str = "<string>") -> List[Topic]:
    """Parse every <top> block of a TREC topic file.

    Raises InputError for duplicate or empty ids and when no topic is present;
    MissingFieldError when a block lacks title, desc or narr.
    """
    topics: List[Topic] = []
    seen = set()

    for n, m in enumerate(_TOP_RE.finditer(text or ""), start=1):
        fields = _split_fields(m.group(1))
        topic_id = fields.get("num", "").strip()
        if not topic_id:
            raise InputError(f"{source}: topic block #{n} has no <num>")
        if topic_id in seen:
            raise InputError(f"{source}: duplicate topic id {topic_id!r}")
        seen.add(topic_id)

        for tag, name in _FIELD_NAMES.items():
            if tag not in fields:
                raise MissingFieldError(name, topic_id=topic_id)

        topics.append(
            Topic(
                id=topic_id,
                title=fields["title"],
                description=fields["desc"],
                narrative=fields["narr"],
            )
        )

    if not topics:
        raise InputError(f"{source}: no <top> blocks found")
    return topics


def load_topics(path: str) -> List[Topic]:
    """Load topics from a TREC topic file on disk."""
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return parse_topics(f.read(), source=path)
