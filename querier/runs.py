"""Run file writing (TREC 6-column format).

Format per line:
  topic_id Q0 docid rank score run_tag

- Topics appear in processing order; hits keep their retrieval order.
- Rank starts at 0.
- The file is written to `<path>.tmp` and moved over `<path>` only when the
  whole run succeeded, so a failed run never leaves a half-written result file.
"""

from __future__ import annotations

import logging
import os
from typing import List, Sequence

from querier.types import ScoredDocument


log = logging.getLogger("querier.runs")


def run_file_path(results_dir: str, analysis: str, scoring: str) -> str:
    """results_<analysis>_<scoring> inside results_dir."""
    name = f"results_{analysis.strip().lower()}_{scoring.strip().lower()}"
    return os.path.join(results_dir, name)


def format_run_lines(topic_id: str, hits: Sequence[ScoredDocument], run_tag: str) -> List[str]:
    """One line per hit, newline-terminated; no lines for an empty hit list."""
    if not isinstance(run_tag, str) or not run_tag.strip() or any(ch.isspace() for ch in run_tag):
        raise ValueError(f"run_tag must be a non-empty string without whitespace, got {run_tag!r}")

    lines: List[str] = []
    for i, hit in enumerate(hits):
        docid = hit.doc_id
        if not docid or any(ch.isspace() for ch in docid):
            raise ValueError(f"Invalid docid for topic_id={topic_id}: {docid!r}")
        lines.append(f"{topic_id} Q0 {docid} {i} {hit.score:.6f} {run_tag}\n")
    return lines


class RunWriter:
    """Sequential, all-or-nothing writer for one run file."""

    def __init__(self, path: str):
        self.path = path
        self.tmp_path = path + ".tmp"
        self.lines_written = 0
        self._fh = None

    def open(self) -> "RunWriter":
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        self._fh = open(self.tmp_path, "w", encoding="utf-8")
        return self

    def write_lines(self, lines: Sequence[str]) -> None:
        if self._fh is None:
            raise RuntimeError(f"run writer for {self.path!r} is not open")
        self._fh.writelines(lines)
        self.lines_written += len(lines)

    def commit(self) -> str:
        """Flush and move the temp file into place; returns the final path."""
        if self._fh is None:
            raise RuntimeError(f"run writer for {self.path!r} is not open")
        fh, self._fh = self._fh, None
        fh.close()
        os.replace(self.tmp_path, self.path)
        log.debug("Committed %d lines to %s", self.lines_written, self.path)
        return self.path

    def discard(self) -> None:
        """Drop whatever was written so far. Safe to call more than once."""
        fh = self._fh
        self._fh = None
        if fh is not None:
            fh.close()
        if os.path.exists(self.tmp_path):
            os.remove(self.tmp_path)
