"""
Logging configuration — one setup call for the CLI entrypoint.

Every module logs through ``logging.getLogger(__name__)``; this module
only decides handlers, levels and formats.

Level precedence:
    --debug / --verbose / --quiet  >  MCPI_LOG_LEVEL  >  WARNING

Optional file output via MCPI_LOG_FILE (level MCPI_LOG_FILE_LEVEL,
defaulting to the console level).
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Mapping

ENV_LEVEL = "MCPI_LOG_LEVEL"
ENV_FILE = "MCPI_LOG_FILE"
ENV_FILE_LEVEL = "MCPI_LOG_FILE_LEVEL"

# Console format per level: quiet by default, more context as it gets louder
_CONSOLE_FORMATS: list[tuple[int, str, str | None]] = [
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d - %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
]
_FMT_MINIMAL = "%(message)s"

_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d - %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"


def resolve_level(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Pick the console level name from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    env = os.environ if environ is None else environ
    return env.get(ENV_LEVEL, "WARNING")


def parse_level(level: str | None) -> int:
    """Level name → numeric level; unknown names fall back to WARNING."""
    if not level:
        return logging.WARNING
    numeric = logging.getLevelName(level.upper())
    return numeric if isinstance(numeric, int) else logging.WARNING


def _console_formatter(numeric_level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_FORMATS:
        if numeric_level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter(_FMT_MINIMAL)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name.
        log_file: Optional log file path.
        log_file_level: Level for the file; defaults to ``level``.
    """
    numeric_level = parse_level(level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(_console_formatter(numeric_level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    effective = numeric_level

    if log_file:
        file_level = parse_level(log_file_level) if log_file_level else numeric_level
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(handler)
        effective = min(effective, file_level)

    root.setLevel(effective)
    logging.raiseExceptions = False


def setup_logging_from_env(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """``setup_logging`` with flag/env resolution. Returns the console level."""
    env = os.environ if environ is None else environ
    level = resolve_level(debug=debug, verbose=verbose, quiet=quiet, environ=env)
    setup_logging(
        level=level,
        log_file=env.get(ENV_FILE),
        log_file_level=env.get(ENV_FILE_LEVEL),
    )
    return level
