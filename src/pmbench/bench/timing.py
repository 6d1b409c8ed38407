"""Timing capture for package-manager commands.

Every subprocess the engine starts goes through :func:`run_command`.
Timed trials (:func:`time_command`) and untimed preparation steps
(:func:`run_checked`) differ only in what they do with the result.

Elapsed time is measured with ``time.perf_counter()``, which is
monotonic and high resolution, from just before the spawn to the
moment the child has been reaped.  There is no per-command timeout;
a hung install is ended by killing the whole benchmark process.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from pmbench.bench.errors import ExecError

log = logging.getLogger("pmbench")

# How the child's stdout/stderr are handled:
#   "discard" - sent to /dev/null (default; nothing is buffered)
#   "inherit" - shown on the terminal as the command runs
#   "capture" - stdout collected for the caller (version probes only)
OUTPUT_MODES = ("discard", "inherit", "capture")


# ---------------------------------------------------------------------------
# CommandResult
# ---------------------------------------------------------------------------


@dataclass
class CommandResult:
    """Result of one completed subprocess."""

    exit_code: int
    elapsed_ms: float
    stdout: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


# ---------------------------------------------------------------------------
# Core primitive
# ---------------------------------------------------------------------------


def run_command(
    command: str | Sequence[str],
    *,
    cwd: str | Path | None = None,
    env: dict[str, str] | None = None,
    output: str = "discard",
) -> CommandResult:
    """Run a command to completion and measure its wall-clock time.

    Args:
        command: Argument list, or a shell command string.
        cwd: Working directory for the subprocess.
        env: Variables layered over the inherited ``os.environ``.
        output: One of :data:`OUTPUT_MODES`.

    Returns:
        CommandResult with the exit code and elapsed milliseconds.

    Raises:
        OSError: If the executable cannot be spawned.
        ValueError: If *output* is not a known mode.
    """
    if output not in OUTPUT_MODES:
        raise ValueError(f"Unknown output mode {output!r}; expected one of {OUTPUT_MODES}")

    run_env = dict(os.environ)
    if env:
        run_env.update(env)

    if output == "discard":
        stdout = stderr = subprocess.DEVNULL
    elif output == "capture":
        stdout, stderr = subprocess.PIPE, subprocess.DEVNULL
    else:
        stdout = stderr = None

    shell = isinstance(command, str)
    args = command if shell else list(command)

    start = time.perf_counter()
    proc = subprocess.Popen(
        args,
        shell=shell,
        cwd=str(cwd) if cwd else None,
        env=run_env,
        stdout=stdout,
        stderr=stderr,
        text=True,
    )
    captured, _ = proc.communicate()
    elapsed_ms = (time.perf_counter() - start) * 1000.0

    return CommandResult(
        exit_code=proc.returncode,
        elapsed_ms=elapsed_ms,
        stdout=captured or "",
    )


def _describe(command: str | Sequence[str]) -> str:
    return command if isinstance(command, str) else " ".join(command)


def run_checked(
    command: str | Sequence[str],
    *,
    cwd: str | Path | None = None,
    env: dict[str, str] | None = None,
    output: str = "discard",
) -> CommandResult:
    """Run an untimed command (warm-up, lockfile generation, ...).

    Raises:
        ExecError: If the command exits non-zero or cannot be spawned.
    """
    log.debug("Running %s (cwd=%s)", _describe(command), cwd)
    try:
        result = run_command(command, cwd=cwd, env=env, output=output)
    except OSError as exc:
        raise ExecError(command, 127, str(exc)) from exc
    if not result.ok:
        raise ExecError(command, result.exit_code)
    return result


def time_command(
    command: str | Sequence[str],
    *,
    cwd: str | Path | None = None,
    env: dict[str, str] | None = None,
    output: str = "discard",
) -> float:
    """Run the command under test and return its duration in milliseconds.

    Raises:
        ExecError: If the command exits non-zero or cannot be spawned.
    """
    try:
        result = run_command(command, cwd=cwd, env=env, output=output)
    except OSError as exc:
        raise ExecError(command, 127, str(exc)) from exc
    if not result.ok:
        raise ExecError(command, result.exit_code)
    log.debug("%s took %.1f ms", _describe(command), result.elapsed_ms)
    return result.elapsed_ms
