"""Run configuration.

A single immutable `RunConfig` is built once per run (defaults, optionally a
JSON file, then CLI overrides) and passed by reference to every stage.

JSON example:
    {
      "index_path": "indexes/robust04",
      "topics_path": "topics.robust04.txt",
      "max_results": 1000,
      "feedback_depth": 10,
      "expansion_term_count": 20,
      "field_boosts": {"title": 0.07, "contents": 1.1},
      "analysis": "porter",
      "scoring": "bm25"
    }
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from querier.errors import ConfigError


ANALYSIS_METHODS = ("porter", "krovetz", "none")
SCORING_FUNCTIONS = ("bm25", "qld")

DEFAULT_FIELD_BOOSTS: Dict[str, float] = {
    "title": 0.07,
    "contents": 1.1,
}

# Fixed label in column 6 of every run line ("Have You Lucene It?").
DEFAULT_RUN_TAG = "HYLIT"


@dataclass(frozen=True)
class RunConfig:
    """Everything a run needs besides the topics themselves."""

    index_path: str = "index"
    topics_path: str = "topics.txt"
    results_dir: str = "results"

    # Top-k per search phase.
    max_results: int = 1000
    # PRF knobs.
    feedback_depth: int = 10
    expansion_term_count: int = 20
    # Boost of the strongest expansion term; original terms carry 1.0.
    max_boost: float = 0.5

    field_boosts: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_FIELD_BOOSTS))

    analysis: str = "porter"
    scoring: str = "bm25"
    k1: float = 0.9
    b: float = 0.4
    mu: float = 1000.0

    run_tag: str = DEFAULT_RUN_TAG
    # Stored field holding the external document number.
    docno_field: str = "id"

    def __post_init__(self) -> None:
        boosts = {str(k): float(v) for k, v in dict(self.field_boosts).items()}
        object.__setattr__(self, "field_boosts", MappingProxyType(boosts))
        object.__setattr__(self, "analysis", str(self.analysis).strip().lower())
        object.__setattr__(self, "scoring", str(self.scoring).strip().lower())
        self._validate()

    def _validate(self) -> None:
        if not isinstance(self.max_results, int) or self.max_results <= 0:
            raise ConfigError("max_results must be a positive integer")
        if not isinstance(self.feedback_depth, int) or self.feedback_depth < 0:
            raise ConfigError("feedback_depth must be a non-negative integer")
        if not isinstance(self.expansion_term_count, int) or self.expansion_term_count < 0:
            raise ConfigError("expansion_term_count must be a non-negative integer")
        if not (0.0 < self.max_boost <= 1.0):
            raise ConfigError("max_boost must be in (0, 1] so original terms keep priority")
        if not self.field_boosts:
            raise ConfigError("field_boosts must name at least one field")
        for name, weight in self.field_boosts.items():
            if not name.strip():
                raise ConfigError("field_boosts contains an empty field name")
            if weight <= 0:
                raise ConfigError(f"boost for field {name!r} must be > 0, got {weight}")
        if self.analysis not in ANALYSIS_METHODS:
            raise ConfigError(f"Unknown analysis method: {self.analysis!r} (expected one of {ANALYSIS_METHODS})")
        if self.scoring not in SCORING_FUNCTIONS:
            raise ConfigError(f"Unknown scoring function: {self.scoring!r} (expected one of {SCORING_FUNCTIONS})")
        if self.k1 <= 0:
            raise ConfigError("k1 must be > 0")
        if not (0.0 <= self.b <= 1.0):
            raise ConfigError("b must be in [0, 1]")
        if self.mu <= 0:
            raise ConfigError("mu must be > 0")
        if not self.run_tag or any(ch.isspace() for ch in self.run_tag):
            raise ConfigError(f"run_tag must be a non-empty string without whitespace, got {self.run_tag!r}")
        if not self.docno_field.strip():
            raise ConfigError("docno_field must be a non-empty string")

    def with_overrides(self, **overrides: Any) -> "RunConfig":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(changes) - _field_names()
        if unknown:
            raise ConfigError(f"Unknown config keys: {sorted(unknown)}")
        return dataclasses.replace(self, **changes)


def _field_names() -> set:
    return {f.name for f in dataclasses.fields(RunConfig)}


def load_run_config(path: Optional[str] = None, **overrides: Any) -> RunConfig:
    """Build a RunConfig from an optional JSON file plus keyword overrides."""
    values: Dict[str, Any] = {}
    if path:
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"{path}: invalid JSON config: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(f"{path}: config must be a JSON object")
        unknown = set(loaded) - _field_names()
        if unknown:
            raise ConfigError(f"{path}: unknown config keys: {sorted(unknown)}")
        values.update(loaded)
    try:
        base = RunConfig(**values)
    except TypeError as e:
        raise ConfigError(f"invalid config values: {e}") from e
    return base.with_overrides(**overrides)
