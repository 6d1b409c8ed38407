"""Workspace and cache state preparation.

Before every timed trial the workspace is rebuilt from the fixture and
driven into the case's preconditions.  The steps run in a fixed order
and each one relies on the state left by the previous one:

1. Recreate the workspace from the fixture.
2. Write the linker configuration (Yarn only).
3. Select the cache: a shared warm cache, or an emptied throwaway one.
   This happens before any install so that a side-effect install of a
   cache-absent case can never populate the shared cache.
4. Ensure or delete the lockfile.  It must exist before node_modules
   are materialized, since that install resolves against it.
5. Ensure or delete node_modules / the zero-install artifacts.
6. Re-apply absences that the installs of steps 4 and 5 may have undone
   (a full install writes a lockfile, and every install fills the cache).

Layout under the work directory::

    workspace/          the project the timed command runs in
    cache/<key>/        shared warm cache, one per manager
    cold-cache/<key>/   emptied before every cache-absent trial
    warmup/<key>/       scratch project used to warm the shared cache
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

import yaml

from pmbench.bench.cases import BenchCase
from pmbench.bench.errors import ExecError, PrepError
from pmbench.bench.managers import ManagerSpec
from pmbench.bench.timing import run_checked

log = logging.getLogger("pmbench")

YARNRC = ".yarnrc.yml"


# ---------------------------------------------------------------------------
# Cache registry
# ---------------------------------------------------------------------------


class CacheRegistry:
    """Tracks which shared caches have been warmed during this run.

    Owned by the runner and handed to its preparer, so two runners (for
    instance in tests) never see each other's warm state.
    """

    def __init__(self) -> None:
        self._warm: dict[str, bool] = {}

    def is_warm(self, key: str) -> bool:
        return self._warm.get(key, False)

    def mark_warm(self, key: str) -> None:
        self._warm[key] = True

    def reset(self, key: str | None = None) -> None:
        """Forget the warm state of one cache, or of all of them."""
        if key is None:
            self._warm.clear()
        else:
            self._warm.pop(key, None)

    @property
    def warmed(self) -> list[str]:
        return sorted(k for k, v in self._warm.items() if v)


# ---------------------------------------------------------------------------
# Observable state
# ---------------------------------------------------------------------------


@dataclass
class PreparedState:
    """Where and with which environment the timed command must run."""

    cwd: Path
    env: dict[str, str]
    cache_dir: Path


@dataclass
class WorkspaceState:
    """What is present in a workspace, as far as a case cares."""

    lockfile: bool
    artifacts: bool
    node_modules: bool
    linker_config: bool
    entries: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


def _remove(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def _reset_dir(path: Path) -> None:
    _remove(path)
    path.mkdir(parents=True)


def _is_populated(path: Path) -> bool:
    return path.is_dir() and any(path.iterdir())


# ---------------------------------------------------------------------------
# StatePreparer
# ---------------------------------------------------------------------------


class StatePreparer:
    """Brings the workspace and cache into a case's preconditions.

    Usage::

        preparer = StatePreparer(fixture_dir, work_dir, CacheRegistry())
        state = preparer.prepare(case, spec)
        time_command(spec.command_for(case.action), cwd=state.cwd, env=state.env)
    """

    def __init__(
        self,
        fixture_dir: Path,
        work_dir: Path,
        registry: CacheRegistry | None = None,
        *,
        output: str = "discard",
    ) -> None:
        self.fixture_dir = Path(fixture_dir)
        self.work_dir = Path(work_dir)
        self.registry = registry if registry is not None else CacheRegistry()
        self.output = output

    @property
    def workspace(self) -> Path:
        return self.work_dir / "workspace"

    def cache_dir(self, spec: ManagerSpec) -> Path:
        return self.work_dir / "cache" / spec.key

    def cold_cache_dir(self, spec: ManagerSpec) -> Path:
        return self.work_dir / "cold-cache" / spec.key

    def warmup_dir(self, spec: ManagerSpec) -> Path:
        return self.work_dir / "warmup" / spec.key

    # -- public API ---------------------------------------------------------

    def prepare(self, case: BenchCase, spec: ManagerSpec) -> PreparedState:
        """Bring the workspace into the preconditions of *case*.

        Raises:
            PrepError: On any filesystem error or failed manager command.
            ValueError: If *spec* does not belong to *case*.
        """
        if case.manager != spec.key:
            raise ValueError(f"Case is for '{case.manager}', got spec '{spec.key}'")
        try:
            return self._prepare(case, spec)
        except ExecError as exc:
            raise PrepError(f"Preparing '{case.label}' failed: {exc}") from exc
        except OSError as exc:
            raise PrepError(f"Preparing '{case.label}' failed: {exc}") from exc

    def ensure_warm(self, spec: ManagerSpec) -> Path:
        """Warm the shared cache of *spec* once per registry.

        A cache directory that already holds content (for instance left
        by an earlier invocation with the same work directory) counts as
        warm without reinstalling.  A failed warm-up removes the cache
        directory and the scratch project again.

        Raises:
            ExecError: If the warm-up install fails.
            PrepError: If the fixture directory is missing.
            OSError: On filesystem errors.
        """
        cache_dir = self.cache_dir(spec)
        if self.registry.is_warm(spec.key):
            return cache_dir

        if _is_populated(cache_dir):
            log.debug("Reusing populated %s cache at %s", spec.key, cache_dir)
        else:
            log.info("Warming %s cache at %s", spec.key, cache_dir)
            cache_dir.mkdir(parents=True, exist_ok=True)
            scratch = self.warmup_dir(spec)
            try:
                self._copy_fixture(scratch)
                self._write_linker_config(scratch, spec)
                run_checked(
                    spec.install,
                    cwd=scratch,
                    env=spec.cache_environment(str(cache_dir)),
                    output=self.output,
                )
            except (ExecError, OSError, PrepError):
                # A half-filled cache would pass as warm on the next case.
                _remove(cache_dir)
                _remove(scratch)
                raise
            _remove(scratch)
        self.registry.mark_warm(spec.key)
        return cache_dir

    def warm_all(self, specs: Iterable[ManagerSpec]) -> None:
        """Warm every shared cache up front.

        Raises:
            PrepError: If any warm-up fails.
        """
        for spec in specs:
            try:
                self.ensure_warm(spec)
            except (ExecError, OSError) as exc:
                raise PrepError(f"Warming the {spec.key} cache failed: {exc}") from exc

    def snapshot(self, spec: ManagerSpec) -> WorkspaceState:
        """Report what is currently present in the workspace."""
        ws = self.workspace
        entries: list[str] = []
        if ws.is_dir():
            entries = sorted(p.relative_to(ws).as_posix() for p in ws.rglob("*"))
        return WorkspaceState(
            lockfile=(ws / spec.lockfile).exists(),
            artifacts=self._artifacts_present(ws, spec),
            node_modules=(ws / "node_modules").exists(),
            linker_config=(ws / YARNRC).exists(),
            entries=entries,
        )

    # -- steps --------------------------------------------------------------

    def _prepare(self, case: BenchCase, spec: ManagerSpec) -> PreparedState:
        ws = self.workspace
        log.debug("Preparing %s", case.label)

        # 1. Fresh copy of the fixture.
        self._copy_fixture(ws)

        # 2. Linker configuration.
        self._write_linker_config(ws, spec)

        # 3. Cache selection.
        if case.cache:
            cache_dir = self.ensure_warm(spec)
        else:
            cache_dir = self.cold_cache_dir(spec)
            _reset_dir(cache_dir)
        env = spec.cache_environment(str(cache_dir))

        # 4. Lockfile.
        lockfile = ws / spec.lockfile
        if case.lockfile:
            if not lockfile.exists():
                log.debug("Generating %s", spec.lockfile)
                run_checked(spec.lockfile_only, cwd=ws, env=env, output=self.output)
                if not lockfile.exists():
                    raise PrepError(
                        f"'{' '.join(spec.lockfile_only)}' did not produce {spec.lockfile}"
                    )
        else:
            _remove(lockfile)

        # 5. node_modules / zero-install artifacts.
        if spec.uses_pnp_artifacts:
            _remove(ws / "node_modules")
        if case.artifacts:
            if not self._artifacts_present(ws, spec):
                log.debug("Materializing %s", case.artifact_kind)
                run_checked(spec.install, cwd=ws, env=env, output=self.output)
                if not self._artifacts_present(ws, spec):
                    raise PrepError(
                        f"'{' '.join(spec.install)}' did not produce {spec.artifacts[0]}"
                    )
        else:
            self._remove_artifacts(ws, spec)

        # 6. Undo what the installs above may have recreated.
        if not case.lockfile:
            _remove(lockfile)
        if not case.cache:
            _reset_dir(cache_dir)

        return PreparedState(cwd=ws, env=env, cache_dir=cache_dir)

    def _copy_fixture(self, target: Path) -> None:
        if not self.fixture_dir.is_dir():
            raise PrepError(f"Fixture directory not found: {self.fixture_dir}")
        _remove(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(self.fixture_dir, target, symlinks=True)

    @staticmethod
    def _write_linker_config(ws: Path, spec: ManagerSpec) -> None:
        if spec.linker is None:
            return
        path = ws / YARNRC
        data: dict[str, object] = {}
        if path.exists():
            loaded = yaml.safe_load(path.read_text())
            if isinstance(loaded, dict):
                data = loaded
        data["nodeLinker"] = spec.linker
        path.write_text(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))

    @staticmethod
    def _artifacts_present(ws: Path, spec: ManagerSpec) -> bool:
        # The first artifact is the marker of a completed install.
        return (ws / spec.artifacts[0]).exists()

    @staticmethod
    def _remove_artifacts(ws: Path, spec: ManagerSpec) -> None:
        _remove(ws / "node_modules")
        for rel in spec.artifacts:
            _remove(ws / rel)
