"""Logging setup for pmbench.

A console handler reports benchmark progress (one line per trial) and
case failures; an optional file handler keeps the full DEBUG trace of
preparation steps, which is where a failed warm-up is usually diagnosed.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

_LOGGER_NAME = "pmbench"
_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_CONSOLE_FORMAT = "%(levelname)-8s %(message)s"


def _console_level(verbose: bool, quiet: bool) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def setup_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure and return the ``pmbench`` logger.

    Progress goes to stderr so that command output on stdout (artifact
    paths, CSV, Markdown) stays clean for redirection.

    Args:
        verbose: Show preparation steps (DEBUG) on the console.
        quiet: Only show warnings and errors. Ignored if *verbose* is set.
        log_file: Also write everything at DEBUG to this file. Parent
            directories are created.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    # Repeated CLI invocations in one process must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(_console_level(verbose, quiet))
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        trace = logging.FileHandler(log_file, encoding="utf-8")
        trace.setLevel(logging.DEBUG)
        trace.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(trace)

    return logger
