"""Benchmark result data structures and serialization.

Hierarchy::

    PartialArtifact (one per invocation: runtime major x scope)
      -> versions: tool version strings
      -> results: list[ResultRecord] (one per BenchCase)

Files produced::

    <results_dir>/partial/<runtime>-<scope>.json

The file name is the shard key.  Invocations with different keys never
share a path; an invocation with the same key replaces the earlier file.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from pmbench.bench.cases import BenchCase
from pmbench.bench.stats import summarize

log = logging.getLogger("pmbench")

PARTIAL_DIRNAME = "partial"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._,+-]")


# ---------------------------------------------------------------------------
# Case-level result
# ---------------------------------------------------------------------------


@dataclass
class ResultRecord:
    """Outcome of one BenchCase.

    ``node_modules`` and ``pnp_artifacts`` are tri-state: the one that
    does not apply to the linking mode is None.
    """

    manager: str
    link_mode: str
    action: str
    cache: bool
    lockfile: bool
    node_modules: bool | None
    pnp_artifacts: bool | None
    run_count: int  # trials planned
    runs: int = 0  # trials that succeeded
    samples_ms: list[float] = field(default_factory=list)
    p50_ms: float | None = None
    p90_ms: float | None = None
    mean_ms: float | None = None
    min_ms: float | None = None
    max_ms: float | None = None
    status: str = "ok"  # "ok" or "error"
    error: str | None = None

    @classmethod
    def from_samples(
        cls,
        case: BenchCase,
        samples: Sequence[float],
        error: str | None = None,
    ) -> ResultRecord:
        """Summarize *samples* for *case*.  Any *error* marks the record failed."""
        summary = summarize(samples)
        pnp = case.artifact_kind == "pnp_artifacts"
        return cls(
            manager=case.manager,
            link_mode=case.link_mode,
            action=case.action,
            cache=case.cache,
            lockfile=case.lockfile,
            node_modules=None if pnp else case.artifacts,
            pnp_artifacts=case.artifacts if pnp else None,
            run_count=case.run_count,
            runs=summary.n,
            samples_ms=[round(s, 3) for s in samples],
            p50_ms=summary.p50,
            p90_ms=summary.p90,
            mean_ms=summary.mean,
            min_ms=summary.min,
            max_ms=summary.max,
            status="error" if error is not None else "ok",
            error=error,
        )

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def artifacts(self) -> bool:
        """Presence of whichever artifact kind applies to the mode."""
        if self.pnp_artifacts is not None:
            return self.pnp_artifacts
        return bool(self.node_modules)

    @property
    def group_key(self) -> tuple[str, str, str, bool, bool, bool]:
        """Grouping key shared with :attr:`BenchCase.sort_key`."""
        return (
            self.manager,
            self.link_mode,
            self.action,
            self.cache,
            self.lockfile,
            self.artifacts,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "manager": self.manager,
            "link_mode": self.link_mode,
            "action": self.action,
            "cache": self.cache,
            "lockfile": self.lockfile,
            "node_modules": self.node_modules,
            "pnp_artifacts": self.pnp_artifacts,
            "run_count": self.run_count,
            "runs": self.runs,
            "samples_ms": self.samples_ms,
            "p50_ms": _round(self.p50_ms),
            "p90_ms": _round(self.p90_ms),
            "mean_ms": _round(self.mean_ms),
            "min_ms": _round(self.min_ms),
            "max_ms": _round(self.max_ms),
            "status": self.status,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResultRecord:
        """Deserialize from a dict, ignoring unknown fields."""
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        return cls(**filtered)


def _round(value: float | None) -> float | None:
    return None if value is None else round(value, 3)


# ---------------------------------------------------------------------------
# Invocation-level artifact
# ---------------------------------------------------------------------------


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class PartialArtifact:
    """Everything one invocation produced."""

    runtime_major: int
    scope: str
    versions: dict[str, str | None] = field(default_factory=dict)
    generated_at: str = field(default_factory=utc_timestamp)
    cli_args: list[str] = field(default_factory=list)
    runs_cached: int = 0
    runs_nocache: int = 0
    host: dict[str, Any] = field(default_factory=dict)
    results: list[ResultRecord] = field(default_factory=list)

    @property
    def key(self) -> str:
        """Shard key, e.g. ``"22-all"``."""
        return f"{self.runtime_major}-{self.scope}"

    @property
    def failed(self) -> list[ResultRecord]:
        return [r for r in self.results if not r.ok]

    def to_dict(self) -> dict[str, Any]:
        return {
            "runtime_major": self.runtime_major,
            "scope": self.scope,
            "versions": self.versions,
            "generated_at": self.generated_at,
            "cli_args": self.cli_args,
            "runs_cached": self.runs_cached,
            "runs_nocache": self.runs_nocache,
            "host": self.host,
            "results": [r.to_dict() for r in self.results],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PartialArtifact:
        """Deserialize from a dict.

        Raises:
            ValueError: If required fields are missing or malformed.
        """
        try:
            artifact = cls(
                runtime_major=int(data["runtime_major"]),
                scope=str(data["scope"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Not a partial artifact: {exc}") from exc
        artifact.versions = data.get("versions", {})
        artifact.generated_at = data.get("generated_at", "")
        artifact.cli_args = [str(a) for a in data.get("cli_args") or []]
        artifact.runs_cached = data.get("runs_cached", 0)
        artifact.runs_nocache = data.get("runs_nocache", 0)
        artifact.host = data.get("host", {})
        records = data.get("results", [])
        if not isinstance(records, list):
            raise ValueError(f"results must be a list (got {type(records).__name__})")
        for record in records:
            if not isinstance(record, dict):
                raise ValueError(f"Malformed result record: {record!r}")
        try:
            artifact.results = [ResultRecord.from_dict(r) for r in records]
        except TypeError as exc:
            raise ValueError(f"Malformed result record: {exc}") from exc
        return artifact


# ---------------------------------------------------------------------------
# I/O functions
# ---------------------------------------------------------------------------


def partial_path(results_dir: Path, runtime_major: int, scope: str) -> Path:
    """Path of the partial artifact for a shard key."""
    safe_scope = _UNSAFE_CHARS.sub("_", scope) or "_"
    return results_dir / PARTIAL_DIRNAME / f"{runtime_major}-{safe_scope}.json"


def write_partial(results_dir: Path, artifact: PartialArtifact) -> Path:
    """Write *artifact* under *results_dir* and return its path.

    The document is written to a temporary file next to the target and
    moved into place, so a reader never sees a half-written artifact.

    Raises:
        OSError: If the directory or file cannot be written.
    """
    path = partial_path(results_dir, artifact.runtime_major, artifact.scope)
    path.parent.mkdir(parents=True, exist_ok=True)

    text = json.dumps(artifact.to_dict(), indent=2) + "\n"
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}-", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    log.info("Wrote %d results to %s", len(artifact.results), path)
    return path


def load_partial(path: Path) -> PartialArtifact:
    """Load a partial artifact.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the file is not a valid artifact.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return PartialArtifact.from_dict(data)
