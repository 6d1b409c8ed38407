"""Report rendering for merged benchmark results.

Markdown format: one row per benchmark setting (action, cache,
lockfile, node_modules) and one column per shard x manager, showing the
p90 install time.  The table is spliced into a README between marker
comments.

CSV format: one row per ResultRecord of a partial artifact, for
spreadsheets and pandas.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass

from pmbench.bench.managers import MANAGERS
from pmbench.bench.merge import MergedResults
from pmbench.bench.results import PartialArtifact, ResultRecord

START_MARKER = "<!-- BENCH:START -->"
END_MARKER = "<!-- BENCH:END -->"

CHECK = "✓"


# ---------------------------------------------------------------------------
# Markdown table
# ---------------------------------------------------------------------------


def format_seconds(ms: float | None) -> str:
    """Format milliseconds as seconds with one decimal, or ``-``."""
    if ms is None or ms != ms:  # None or NaN
        return "-"
    return f"{ms / 1000:.1f}s"


def report_settings() -> list[tuple[str, bool, bool, bool]]:
    """Rows of the report: (action, cache, lockfile, node_modules)."""
    rows = []
    for cache in (True, False):
        for lockfile in (True, False):
            for artifacts in (True, False):
                rows.append(("install", cache, lockfile, artifacts))
    for cache in (True, False):
        for artifacts in (True, False):
            rows.append(("ci", cache, True, artifacts))
    return rows


@dataclass
class Column:
    """One report column: a manager within one shard."""

    partial: PartialArtifact
    manager: str

    @property
    def header(self) -> str:
        spec = MANAGERS.get(self.manager)
        binary = spec.binary if spec else self.manager
        version = self.partial.versions.get(binary) or "-"
        return f"{self.manager} (Node {self.partial.runtime_major}, {version})"

    def find(
        self, action: str, cache: bool, lockfile: bool, artifacts: bool
    ) -> ResultRecord | None:
        for record in self.partial.results:
            if (
                record.manager == self.manager
                and record.action == action
                and record.cache == cache
                and record.lockfile == lockfile
                and record.artifacts == artifacts
            ):
                return record
        return None


def report_columns(merged: MergedResults) -> list[Column]:
    """Columns ordered by runtime, scope, then manager order in the shard."""
    columns: list[Column] = []
    for partial in merged.sorted_partials():
        seen: list[str] = []
        for record in partial.results:
            if record.manager not in seen:
                seen.append(record.manager)
        columns.extend(Column(partial=partial, manager=m) for m in seen)
    return columns


def _cell(record: ResultRecord | None) -> str:
    if record is None:
        return "-"
    if not record.ok:
        return "err"
    return format_seconds(record.p90_ms)


def render_markdown_table(merged: MergedResults) -> str:
    """Render the p90 table for every shard in *merged*."""
    columns = report_columns(merged)
    header = ["action", "cache", "lockfile", "node_modules"] + [c.header for c in columns]

    lines = [
        f"| {' | '.join(header)} |",
        f"| {' | '.join('---' for _ in header)} |",
    ]
    for action, cache, lockfile, artifacts in report_settings():
        row = [
            action,
            CHECK if cache else "",
            CHECK if lockfile else "",
            CHECK if artifacts else "",
        ]
        row.extend(_cell(c.find(action, cache, lockfile, artifacts)) for c in columns)
        lines.append(f"| {' | '.join(row)} |")
    return "\n".join(lines)


def update_readme(readme: str, table: str) -> str:
    """Replace the text between the benchmark markers with *table*.

    Raises:
        ValueError: If the markers are missing or out of order.
    """
    start = readme.find(START_MARKER)
    end = readme.find(END_MARKER)
    if start == -1 or end == -1 or start > end:
        raise ValueError(
            f"README must contain {START_MARKER} followed by {END_MARKER}."
        )
    before = readme[: start + len(START_MARKER)]
    after = readme[end:]
    return f"{before}\n{table}\n{after}"


# ---------------------------------------------------------------------------
# CSV export
# ---------------------------------------------------------------------------


def export_csv(artifact: PartialArtifact) -> str:
    """Export one partial artifact as CSV, one row per case.

    Columns:
        runtime_major, scope, manager, link_mode, action, cache,
        lockfile, node_modules, pnp_artifacts, run_count, runs, p50_ms,
        p90_ms, mean_ms, min_ms, max_ms, status, error
    """
    output = io.StringIO()
    writer = csv.writer(output)

    writer.writerow(
        [
            "runtime_major",
            "scope",
            "manager",
            "link_mode",
            "action",
            "cache",
            "lockfile",
            "node_modules",
            "pnp_artifacts",
            "run_count",
            "runs",
            "p50_ms",
            "p90_ms",
            "mean_ms",
            "min_ms",
            "max_ms",
            "status",
            "error",
        ]
    )

    def num(value: float | None) -> str:
        return "" if value is None else f"{value:.3f}"

    def flag(value: bool | None) -> str:
        return "" if value is None else str(value).lower()

    for r in artifact.results:
        writer.writerow(
            [
                artifact.runtime_major,
                artifact.scope,
                r.manager,
                r.link_mode,
                r.action,
                flag(r.cache),
                flag(r.lockfile),
                flag(r.node_modules),
                flag(r.pnp_artifacts),
                r.run_count,
                r.runs,
                num(r.p50_ms),
                num(r.p90_ms),
                num(r.mean_ms),
                num(r.min_ms),
                num(r.max_ms),
                r.status,
                r.error or "",
            ]
        )

    return output.getvalue()
