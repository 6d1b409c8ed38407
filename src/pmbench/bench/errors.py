"""Exceptions raised by the benchmark engine.

``PrepError`` and ``ExecError`` are caught at the per-case boundary of
the runner and recorded as ``status="error"``.  Failures writing the
partial artifact are left as ``OSError`` and end the invocation.
"""

from __future__ import annotations

from typing import Sequence


class BenchError(Exception):
    """Base class for benchmark engine errors."""


class ExecError(BenchError):
    """A package-manager command exited non-zero or could not be spawned."""

    def __init__(
        self,
        command: str | Sequence[str],
        exit_code: int,
        detail: str = "",
    ) -> None:
        self.command = command if isinstance(command, str) else " ".join(command)
        self.exit_code = exit_code
        self.detail = detail
        message = f"Command failed (exit {exit_code}): {self.command}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class PrepError(BenchError):
    """Workspace or cache state could not be brought to the case's preconditions."""
