from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from querier.config import ANALYSIS_METHODS, SCORING_FUNCTIONS, load_run_config
from querier.errors import QuerierError
from querier.logging_utils import configure_logging
from querier.pipeline import run_pipeline
from querier.topics import load_topics


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Two-phase PRF query runner over a Lucene index (Pyserini).")
    p.add_argument("--config", default=None, help="Optional JSON run config; flags below override it.")
    p.add_argument("--index", dest="index_path", default=None, help="Path to a local Lucene index.")
    p.add_argument("--topics", dest="topics_path", default=None, help="Path to a TREC topic file.")
    p.add_argument("--results-dir", default=None, help="Directory for the run file (default: results).")
    p.add_argument("--run-tag", default=None, help="Run tag (column 6, default: HYLIT).")
    p.add_argument("--topk", dest="max_results", type=int, default=None, help="Max docs per phase (default: 1000).")
    p.add_argument("--log-level", default="INFO", help="Logging level (INFO, DEBUG, ...).")
    p.add_argument("--log-file", default=None, help="Also write logs to this file.")

    # PRF params
    p.add_argument("--fb-docs", dest="feedback_depth", type=int, default=None, help="Feedback documents (default: 10).")
    p.add_argument("--fb-terms", dest="expansion_term_count", type=int, default=None, help="Expansion terms (default: 20).")
    p.add_argument("--max-boost", type=float, default=None, help="Boost of the best expansion term (default: 0.5).")

    # Analysis / similarity
    p.add_argument("--analysis", choices=ANALYSIS_METHODS, default=None)
    p.add_argument("--scoring", choices=SCORING_FUNCTIONS, default=None)
    p.add_argument("--k1", type=float, default=None)
    p.add_argument("--b", type=float, default=None)
    p.add_argument("--mu", type=float, default=None)
    p.add_argument("--docno-field", default=None, help="Stored field with the external docno (default: id).")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    configure_logging(args.log_level, log_file=args.log_file)
    log = logging.getLogger("querier.main")

    overrides = {
        k: v
        for k, v in vars(args).items()
        if k not in ("config", "log_level", "log_file")
    }
    try:
        config = load_run_config(args.config, **overrides)
        topics = load_topics(config.topics_path)
        log.info("Loaded %d topics from %s", len(topics), config.topics_path)
        summary = run_pipeline(topics, config)
    except (QuerierError, OSError, ValueError) as e:
        log.error("Run failed: %s", e)
        return 1

    log.info("Wrote %d lines for %d topics to %s", summary.lines, summary.topics, summary.output_path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
