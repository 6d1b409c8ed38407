"""Merging partial artifacts from several shards.

Each shard (runtime major x scope) writes its own file under
``results/partial/``.  Merging keys them by shard and writes
``results/results.json``, which the report renderer reads.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator

from pmbench.bench.results import (
    PARTIAL_DIRNAME,
    PartialArtifact,
    ResultRecord,
    load_partial,
    utc_timestamp,
)

log = logging.getLogger("pmbench")

MERGED_FILENAME = "results.json"


@dataclass
class MergedResults:
    """All shards of a benchmark, keyed by ``"<runtime>-<scope>"``."""

    generated_at: str = field(default_factory=utc_timestamp)
    partials: dict[str, PartialArtifact] = field(default_factory=dict)

    def sorted_partials(self) -> list[PartialArtifact]:
        """Shards ordered by runtime major, then scope."""
        return sorted(self.partials.values(), key=lambda p: (p.runtime_major, p.scope))

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": self.generated_at,
            "partials": {key: p.to_dict() for key, p in sorted(self.partials.items())},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MergedResults:
        """Deserialize from a dict.

        Raises:
            ValueError: If the document or one of its partials is malformed.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Merged results must be an object (got {type(data).__name__})")
        partials = data.get("partials", {})
        if not isinstance(partials, dict):
            raise ValueError(f"partials must be an object (got {type(partials).__name__})")
        merged = cls(generated_at=data.get("generated_at", ""))
        for key, partial in partials.items():
            merged.partials[key] = PartialArtifact.from_dict(partial)
        return merged


def find_partials(results_dir: Path) -> list[Path]:
    """Partial artifact files under *results_dir*, in name order."""
    partial_dir = results_dir / PARTIAL_DIRNAME
    if not partial_dir.is_dir():
        return []
    return sorted(partial_dir.glob("*.json"))


def merge_partials(results_dir: Path) -> MergedResults:
    """Read every partial artifact under *results_dir*.

    Files are read in name order; a later file with the same shard key
    replaces an earlier one.

    Raises:
        ValueError: If a partial file is malformed.
    """
    merged = MergedResults()
    for path in find_partials(results_dir):
        artifact = load_partial(path)
        if artifact.key in merged.partials:
            log.warning("Shard %s appears twice; using %s", artifact.key, path.name)
        merged.partials[artifact.key] = artifact
        log.debug("Merged %s (%d results)", path.name, len(artifact.results))
    return merged


def write_merged(results_dir: Path, merged: MergedResults) -> Path:
    """Write ``results.json`` and return its path."""
    results_dir.mkdir(parents=True, exist_ok=True)
    path = results_dir / MERGED_FILENAME
    path.write_text(json.dumps(merged.to_dict(), indent=2) + "\n", encoding="utf-8")
    log.info("Wrote %d shards to %s", len(merged.partials), path)
    return path


def load_merged(path: Path) -> MergedResults:
    """Load a ``results.json`` written by :func:`write_merged`.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the file is not valid JSON or not a merged document.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc
    return MergedResults.from_dict(data)


def iter_records(merged: MergedResults) -> Iterator[tuple[str, ResultRecord]]:
    """Yield ``(shard_key, record)`` for every record of every shard."""
    for partial in merged.sorted_partials():
        for record in partial.results:
            yield partial.key, record


def dedupe_records(merged: MergedResults) -> list[tuple[str, ResultRecord]]:
    """Flatten records, keeping the last one per shard and case."""
    latest: dict[tuple[Any, ...], tuple[str, ResultRecord]] = {}
    for key, record in iter_records(merged):
        latest[(key, *record.group_key)] = (key, record)
    return list(latest.values())
