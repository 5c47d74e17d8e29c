"""Per-topic orchestration of the two-phase PRF run.

Each topic moves strictly forward through:
    BUILT -> PHASE1_SEARCHED -> EXPANDED -> PHASE2_SEARCHED -> FORMATTED -> DONE

All queries are built before the index is opened, so bad topic input fails
before any search runs. The index handle and the run writer live in a
`RunContext` and are released on every exit path; a failed run leaves no
result file behind.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from querier import expansion, retriever
from querier.config import RunConfig
from querier.errors import InputError
from querier.lucene_backend import open_index_from_config
from querier.query_builder import build_query
from querier.runs import RunWriter, format_run_lines, run_file_path
from querier.types import ExpandedQuery, NormalizedQuery, RankedResultList, ScoredDocument, Topic


log = logging.getLogger("querier.pipeline")


class TopicState(Enum):
    BUILT = "built"
    PHASE1_SEARCHED = "phase1_searched"
    EXPANDED = "expanded"
    PHASE2_SEARCHED = "phase2_searched"
    FORMATTED = "formatted"
    DONE = "done"


@dataclass(frozen=True)
class TopicResult:
    query: NormalizedQuery
    phase1_hits: Tuple[ScoredDocument, ...]
    expanded: ExpandedQuery
    results: RankedResultList
    lines: Tuple[str, ...]
    state: TopicState

    @property
    def topic_id(self) -> str:
        return self.query.topic_id


@dataclass(frozen=True)
class RunSummary:
    output_path: str
    topics: int
    lines: int
    elapsed_ms: int


class RunContext:
    """Owns the open index and the run writer for one run."""

    def __init__(self, config: RunConfig, index, writer: RunWriter):
        self.config = config
        self.index = index
        self.writer = writer
        self._committed = False

    @classmethod
    def open(cls, config: RunConfig, open_index: Callable[[RunConfig], object]) -> "RunContext":
        index = open_index(config)
        writer = RunWriter(run_file_path(config.results_dir, config.analysis, config.scoring))
        try:
            writer.open()
        except BaseException:
            index.close()
            raise
        return cls(config, index, writer)

    def __enter__(self) -> "RunContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if not self._committed:
                self.writer.discard()
        finally:
            self.index.close()

    def commit(self) -> str:
        path = self.writer.commit()
        self._committed = True
        return path


def _advance(topic_id: str, state: TopicState) -> TopicState:
    log.debug("Topic %s -> %s", topic_id, state.value)
    return state


def process_topic(query: NormalizedQuery, index, config: RunConfig) -> TopicResult:
    """Run both search phases and the expansion for one built query."""
    state = _advance(query.topic_id, TopicState.BUILT)

    phase1 = retriever.search(
        index,
        query,
        max_results=config.max_results,
        boosts=config.field_boosts,
        docno_field=config.docno_field,
    )
    state = _advance(query.topic_id, TopicState.PHASE1_SEARCHED)

    expanded = expansion.expand(
        query,
        phase1,
        index,
        feedback_depth=config.feedback_depth,
        expansion_term_count=config.expansion_term_count,
        max_boost=config.max_boost,
    )
    state = _advance(query.topic_id, TopicState.EXPANDED)

    phase2 = retriever.search(
        index,
        expanded,
        max_results=config.max_results,
        boosts=config.field_boosts,
        docno_field=config.docno_field,
    )
    results = RankedResultList(topic_id=query.topic_id, hits=tuple(phase2))
    state = _advance(query.topic_id, TopicState.PHASE2_SEARCHED)

    lines = format_run_lines(query.topic_id, results.hits, config.run_tag)
    state = _advance(query.topic_id, TopicState.FORMATTED)

    return TopicResult(
        query=query,
        phase1_hits=tuple(phase1),
        expanded=expanded,
        results=results,
        lines=tuple(lines),
        state=state,
    )


def build_queries(topics: Sequence[Topic]) -> List[NormalizedQuery]:
    if not topics:
        raise InputError("no topics to run")
    seen = set()
    queries: List[NormalizedQuery] = []
    for topic in topics:
        if topic.id in seen:
            raise InputError(f"duplicate topic id {topic.id!r}")
        seen.add(topic.id)
        queries.append(build_query(topic))
    return queries


def run_pipeline(
    topics: Sequence[Topic],
    config: RunConfig,
    *,
    open_index: Callable[[RunConfig], object] = open_index_from_config,
    on_topic: Optional[Callable[[TopicResult], None]] = None,
) -> RunSummary:
    """Process every topic in order and write one run file.

    Any exception (query parse failure, I/O error) aborts the run; the partial
    result file is discarded and the index closed before it propagates.
    """
    start = time.perf_counter()
    queries = build_queries(topics)
    log.info("Built %d queries", len(queries))

    with RunContext.open(config, open_index) as ctx:
        for query in queries:
            result = process_topic(query, ctx.index, config)
            ctx.writer.write_lines(result.lines)
            result = replace(result, state=_advance(query.topic_id, TopicState.DONE))
            if on_topic is not None:
                on_topic(result)
        output_path = ctx.commit()
        lines = ctx.writer.lines_written

    elapsed_ms = int((time.perf_counter() - start) * 1000)
    log.info("Result file %s generated in %d milliseconds", output_path, elapsed_ms)
    return RunSummary(output_path=output_path, topics=len(queries), lines=lines, elapsed_ms=elapsed_ms)

