"""Case matrix construction.

For every manager the matrix holds eight ``install`` cases (cache,
lockfile and node_modules/artifacts each present or absent) followed by
four ``ci`` cases.  An integrity-checked install needs a committed
lockfile, so ``ci`` cases always have the lockfile present.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from pmbench.bench.managers import ACTIONS, ManagerSpec

_STATES = (True, False)  # present first, matching report row order


@dataclass(frozen=True)
class BenchCase:
    """One point of the benchmark matrix.

    ``artifacts`` tracks ``node_modules`` for ordinary linkers and the
    zero-install artifact set for the pnp linker; only one of them is
    meaningful for a given case.
    """

    manager: str
    link_mode: str
    action: str
    cache: bool
    lockfile: bool
    artifacts: bool
    run_count: int

    def __post_init__(self) -> None:
        if self.action not in ACTIONS:
            raise ValueError(f"Unknown action {self.action!r}")
        if self.action == "ci" and not self.lockfile:
            raise ValueError("A 'ci' case requires the lockfile to be present")
        if self.run_count < 1:
            raise ValueError(f"run_count must be positive (got {self.run_count})")

    @property
    def artifact_kind(self) -> str:
        return "pnp_artifacts" if self.link_mode == "pnp" else "node_modules"

    @property
    def sort_key(self) -> tuple[str, str, str, bool, bool, bool]:
        """Key used to order and group records across shards."""
        return (
            self.manager,
            self.link_mode,
            self.action,
            self.cache,
            self.lockfile,
            self.artifacts,
        )

    @property
    def label(self) -> str:
        def flag(name: str, present: bool) -> str:
            return name if present else f"no-{name}"

        return " ".join(
            [
                f"{self.manager}:{self.action}",
                flag("cache", self.cache),
                flag("lockfile", self.lockfile),
                flag(self.artifact_kind.replace("_", "-"), self.artifacts),
            ]
        )


def build_cases(
    managers: Iterable[ManagerSpec],
    *,
    runs_cached: int,
    runs_nocache: int,
) -> list[BenchCase]:
    """Enumerate the benchmark matrix for *managers*, in execution order.

    Cache-present cases get ``runs_cached`` trials and cache-absent ones
    ``runs_nocache``.
    """
    cases: list[BenchCase] = []
    for spec in managers:

        def make(action: str, cache: bool, lockfile: bool, artifacts: bool) -> BenchCase:
            return BenchCase(
                manager=spec.key,
                link_mode=spec.link_mode,
                action=action,
                cache=cache,
                lockfile=lockfile,
                artifacts=artifacts,
                run_count=runs_cached if cache else runs_nocache,
            )

        for cache in _STATES:
            for lockfile in _STATES:
                for artifacts in _STATES:
                    cases.append(make("install", cache, lockfile, artifacts))
        for cache in _STATES:
            for artifacts in _STATES:
                cases.append(make("ci", cache, True, artifacts))
    return cases
