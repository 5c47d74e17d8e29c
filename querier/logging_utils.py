"""Logging setup for the query runner.

Call `configure_logging()` once from the entrypoint. Modules log through
`logging.getLogger("querier.<module>")` and never configure handlers themselves.
"""

from __future__ import annotations

import logging
from typing import Optional


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def parse_level(level: str) -> int:
    """Map a level name ("INFO") or number ("20") to a logging level."""
    if not isinstance(level, str) or not level.strip():
        raise ValueError("log level must be a non-empty string (e.g., 'INFO', 'DEBUG')")
    name = level.strip().upper()
    if name in _LEVELS:
        return _LEVELS[name]
    try:
        return int(name)
    except ValueError as e:
        raise ValueError(f"Unknown log level: {level!r}") from e


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Attach console (and optionally file) handlers to the `querier` logger.

    Repeated calls replace the handlers installed by earlier calls instead of
    stacking duplicates.
    """
    target = logging.getLogger("querier")
    target.setLevel(parse_level(level))

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    for h in list(target.handlers):
        target.removeHandler(h)
        h.close()

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    target.addHandler(console)

    if log_file:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(formatter)
        target.addHandler(fh)

    return target
