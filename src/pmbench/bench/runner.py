"""Benchmark execution engine.

Orchestrates:
1. Configuration validation
2. Runtime and tool version capture
3. Case matrix construction
4. Per-case trials: prepare state, then run the timed command
5. Summarizing each case into a ResultRecord
6. Writing the partial artifact for this shard

Everything runs on one thread, one subprocess at a time: the package
managers share the on-disk cache and workspace, so concurrent trials
would corrupt each other's measurements.

Per-case states::

    PENDING -> PREPARING -> RUNNING(i/N) -> ... -> SUMMARIZING -> DONE

The first PrepError or ExecError ends a case.  The samples collected so
far are kept, the case is recorded with ``status="error"``, and the run
moves on to the next case.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from pmbench.bench.cases import BenchCase, build_cases
from pmbench.bench.config import BenchConfig, validate_config
from pmbench.bench.errors import ExecError, PrepError
from pmbench.bench.prepare import CacheRegistry, StatePreparer
from pmbench.bench.results import PartialArtifact, ResultRecord, write_partial
from pmbench.bench.system import capture_host, capture_tool_versions, detect_runtime_major
from pmbench.bench.timing import time_command

log = logging.getLogger("pmbench")


class CaseState(enum.Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    RUNNING = "running"
    SUMMARIZING = "summarizing"
    DONE = "done"


# ---------------------------------------------------------------------------
# Progress callback
# ---------------------------------------------------------------------------


@dataclass
class BenchProgress:
    """Progress info passed to the callback."""

    state: CaseState
    case: BenchCase
    trial: int  # 1-based; 0 before the first trial
    cases_done: int
    cases_total: int
    elapsed_ms: float = 0.0
    status: str = ""
    detail: str = ""


ProgressCallback = Callable[[BenchProgress], None]


# ---------------------------------------------------------------------------
# BenchRunner
# ---------------------------------------------------------------------------


class BenchRunner:
    """Executes one benchmark invocation according to a BenchConfig.

    Usage::

        config = BenchConfig(scope="npm", runtime_major=22)
        runner = BenchRunner(config)
        artifact, path = runner.run()
    """

    def __init__(
        self,
        config: BenchConfig,
        progress_callback: ProgressCallback | None = None,
        preparer: StatePreparer | None = None,
    ) -> None:
        self.config = config
        self.progress: Any = progress_callback or self._default_progress
        self.registry = CacheRegistry()
        self._preparer = preparer

    @property
    def preparer(self) -> StatePreparer:
        if self._preparer is None:
            raise RuntimeError("preparer is only available once run() has resolved the work dir")
        return self._preparer

    def run(self) -> tuple[PartialArtifact, Path]:
        """Execute every case and write the partial artifact.

        Returns:
            Tuple of (PartialArtifact, path it was written to).

        Raises:
            ValueError: If the configuration is invalid or the runtime
                version cannot be determined.
            PrepError: If eager cache warming was requested and failed.
            OSError: If the artifact cannot be written.
        """
        # Phase 1: Validate configuration.
        errors = validate_config(self.config)
        fatal = [e for e in errors if e.severity == "error"]
        for w in (e for e in errors if e.severity == "warning"):
            log.warning("Config warning: %s: %s", w.field, w.message)
        if fatal:
            messages = [f"  {e.field}: {e.message}" for e in fatal]
            raise ValueError("Invalid benchmark configuration:\n" + "\n".join(messages))

        managers = list(self.config.managers.values())

        # Phase 2: Runtime and tool versions.
        runtime_major = self.config.runtime_major
        if runtime_major is None:
            runtime_major = detect_runtime_major()
        versions = capture_tool_versions(managers)
        log.info(
            "Runtime major %d, scope '%s', versions: %s",
            runtime_major,
            self.config.scope,
            ", ".join(f"{k}={v or '?'}" for k, v in versions.items()),
        )

        # Phase 3: Case matrix.
        cases = build_cases(
            managers,
            runs_cached=self.config.runs_cached,
            runs_nocache=self.config.runs_nocache,
        )
        log.info("Benchmarking %d cases across %d managers", len(cases), len(managers))

        if self._preparer is None:
            self._preparer = StatePreparer(
                self.config.fixture_dir,
                self.config.resolved_work_dir(runtime_major),
                self.registry,
                output=self.config.output,
            )
        if self.config.eager_warm:
            cached = {c.manager for c in cases if c.cache}
            self.preparer.warm_all(m for m in managers if m.key in cached)

        # Phase 4: Execute cases in matrix order.
        results = [
            self.run_case(case, cases_done=idx, cases_total=len(cases))
            for idx, case in enumerate(cases)
        ]

        # Phase 5: Write the artifact.  Failure here is fatal.
        artifact = PartialArtifact(
            runtime_major=runtime_major,
            scope=self.config.scope,
            versions=versions,
            runs_cached=self.config.runs_cached,
            runs_nocache=self.config.runs_nocache,
            host=capture_host(),
            results=results,
            cli_args=list(self.config.cli_args),
        )
        path = write_partial(self.config.results_dir, artifact)

        failed = artifact.failed
        if failed:
            log.warning("%d of %d cases failed", len(failed), len(results))
        log.info("Benchmark complete: %s", path)
        return artifact, path

    def run_case(
        self,
        case: BenchCase,
        *,
        cases_done: int = 0,
        cases_total: int = 1,
    ) -> ResultRecord:
        """Run all trials of *case* and summarize them.

        Never raises for preparation or command failures; those end
        the case and are recorded on the returned ResultRecord.
        """
        spec = self.config.managers[case.manager]
        samples: list[float] = []
        error: str | None = None

        def report(state: CaseState, trial: int, **extra: Any) -> None:
            self.progress(
                BenchProgress(
                    state=state,
                    case=case,
                    trial=trial,
                    cases_done=cases_done,
                    cases_total=cases_total,
                    **extra,
                )
            )

        report(CaseState.PENDING, 0)
        command = spec.command_for(case.action)

        for trial in range(1, case.run_count + 1):
            report(CaseState.PREPARING, trial)
            try:
                state = self.preparer.prepare(case, spec)
                report(CaseState.RUNNING, trial)
                elapsed = time_command(
                    command,
                    cwd=state.cwd,
                    env=state.env,
                    output=self.config.output,
                )
            except (PrepError, ExecError) as exc:
                error = str(exc)
                log.warning(
                    "%s: trial %d/%d failed: %s", case.label, trial, case.run_count, exc
                )
                break
            samples.append(elapsed)
            report(CaseState.RUNNING, trial, elapsed_ms=elapsed, status="ok")

        report(CaseState.SUMMARIZING, len(samples))
        record = ResultRecord.from_samples(case, samples, error)
        report(
            CaseState.DONE,
            len(samples),
            status=record.status,
            detail=record.error or "",
        )
        return record

    @staticmethod
    def _default_progress(progress: BenchProgress) -> None:
        """Default progress callback: one log line per finished trial or case."""
        case = progress.case
        position = f"[{progress.cases_done + 1}/{progress.cases_total}]"
        if progress.state is CaseState.RUNNING and progress.status:
            log.info(
                "  %s %-45s %2d/%-2d %9.1f ms",
                position,
                case.label,
                progress.trial,
                case.run_count,
                progress.elapsed_ms,
            )
        elif progress.state is CaseState.DONE and progress.status == "error":
            log.info("  %s %-45s [error] %s", position, case.label, progress.detail)
