"""Exception types raised by the query runner.

Everything derives from `QuerierError` so entrypoints can catch one type.
Only `TermStatsUnavailableError` is recovered from (inside expansion); the rest
abort the run.
"""

from __future__ import annotations


class QuerierError(Exception):
    """Base class for query runner failures."""


class ConfigError(QuerierError, ValueError):
    """Invalid run configuration."""


class InputError(QuerierError, ValueError):
    """Topic input is unusable (empty, duplicated ids, malformed)."""


class MissingFieldError(InputError):
    """A topic is missing one of its required text fields."""

    def __init__(self, field_name: str, topic_id: str | None = None):
        self.field_name = field_name
        self.topic_id = topic_id
        where = f" (topic {topic_id})" if topic_id else ""
        super().__init__(f"missing required topic field {field_name!r}{where}")


class QueryParseError(QuerierError):
    """The index query parser rejected a machine-generated query string."""

    def __init__(self, query_text: str, reason: str = ""):
        self.query_text = query_text
        msg = f"could not parse query {query_text!r}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class TermStatsUnavailableError(QuerierError):
    """The index holds no term vector for a document."""

    def __init__(self, docid: str, reason: str = ""):
        self.docid = docid
        msg = f"no term statistics for document {docid!r}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class IndexOpenError(QuerierError, OSError):
    """The Lucene index could not be opened."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        msg = f"cannot open index at {path!r}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
