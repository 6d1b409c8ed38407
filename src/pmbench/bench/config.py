"""Benchmark configuration and profile loading.

Handles:
- Loading benchmark profiles from YAML files.
- Trial-count overrides from ``RUNS_CACHED`` / ``RUNS_NOCACHE``.
- Merging CLI options with profile values.
- Validating the final configuration before execution.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from pmbench.bench.managers import MANAGERS, ManagerSpec, resolve_scope, with_overrides
from pmbench.bench.timing import OUTPUT_MODES

log = logging.getLogger("pmbench")

# Trial counts.  Cold-cache installs are slow and noisy per trial, so
# they get fewer repetitions than warm-cache ones.
DEFAULT_RUNS_CACHED = 11
DEFAULT_RUNS_NOCACHE = 3


# ---------------------------------------------------------------------------
# BenchConfig
# ---------------------------------------------------------------------------


@dataclass
class BenchConfig:
    """Resolved configuration for one benchmark invocation."""

    # Shard identity
    scope: str = "all"
    runtime_major: int | None = None  # None = detect from `node --version`

    # Trials per case
    runs_cached: int = DEFAULT_RUNS_CACHED
    runs_nocache: int = DEFAULT_RUNS_NOCACHE

    # Managers to benchmark, in order.  Resolved from scope if empty.
    managers: dict[str, ManagerSpec] = field(default_factory=dict)

    # Paths
    fixture_dir: Path = field(default_factory=lambda: Path("fixture"))
    work_root: Path = field(default_factory=lambda: Path(".pmbench-work"))
    work_dir: Path | None = None  # None = work_root / shard key
    results_dir: Path = field(default_factory=lambda: Path("results"))

    # Execution
    output: str = "discard"  # child process output: "discard" or "inherit"
    eager_warm: bool = False

    # CLI provenance
    cli_args: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.managers:
            self.managers = {spec.key: spec for spec in resolve_scope(self.scope)}

    def resolved_work_dir(self, runtime_major: int) -> Path:
        """Work directory for this shard.

        Shards must not share workspaces or caches, so the default is
        keyed the same way as the artifact.
        """
        if self.work_dir is not None:
            return self.work_dir
        return self.work_root / f"{runtime_major}-{self.scope}"


def env_trial_counts(environ: Mapping[str, str] | None = None) -> dict[str, int]:
    """Read trial-count overrides from the environment.

    Raises:
        ValueError: If a variable is set but is not an integer.
    """
    environ = os.environ if environ is None else environ
    counts: dict[str, int] = {}
    for var, key in (("RUNS_CACHED", "runs_cached"), ("RUNS_NOCACHE", "runs_nocache")):
        raw = environ.get(var, "").strip()
        if not raw:
            continue
        try:
            counts[key] = int(raw)
        except ValueError as exc:
            raise ValueError(f"{var} must be an integer (got {raw!r})") from exc
    return counts


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class ValidationError:
    """A single configuration validation error."""

    field: str
    message: str
    severity: str = "error"  # "error" or "warning"


def validate_config(config: BenchConfig) -> list[ValidationError]:
    """Validate a benchmark configuration.

    Returns a list of validation errors.  Empty list means valid.
    """
    errors: list[ValidationError] = []

    if not config.managers:
        errors.append(
            ValidationError(
                field="managers",
                message="No package managers selected. Use --scope to pick some.",
            )
        )

    if not config.fixture_dir.exists():
        errors.append(
            ValidationError(
                field="fixture_dir",
                message=f"Fixture directory does not exist: {config.fixture_dir}",
            )
        )
    elif not config.fixture_dir.is_dir():
        errors.append(
            ValidationError(
                field="fixture_dir",
                message=f"Fixture path is not a directory: {config.fixture_dir}",
            )
        )

    for name in ("runs_cached", "runs_nocache"):
        value = getattr(config, name)
        if value < 1:
            errors.append(
                ValidationError(
                    field=name,
                    message=f"Trial count must be at least 1 (got {value}).",
                )
            )

    if config.runs_nocache > config.runs_cached:
        errors.append(
            ValidationError(
                field="runs_nocache",
                message=(
                    f"Uncached cases get more trials ({config.runs_nocache}) than "
                    f"cached ones ({config.runs_cached}); this is usually a mistake."
                ),
                severity="warning",
            )
        )

    if config.runtime_major is not None and config.runtime_major < 1:
        errors.append(
            ValidationError(
                field="runtime_major",
                message=f"Runtime major version must be positive (got {config.runtime_major}).",
            )
        )

    if config.output not in OUTPUT_MODES or config.output == "capture":
        errors.append(
            ValidationError(
                field="output",
                message=f"Output mode must be 'discard' or 'inherit' (got {config.output!r}).",
            )
        )

    return errors


# ---------------------------------------------------------------------------
# YAML profile loading
# ---------------------------------------------------------------------------


def load_profile(profile_path: Path) -> dict[str, Any]:
    """Load a benchmark profile from a YAML file.

    Profile format::

        scope: all
        runs_cached: 11
        runs_nocache: 3
        fixture_dir: fixture
        results_dir: results

        managers:
          npm: {}
          pnpm:
            install: "pnpm install --prefer-offline"
          yarn:
            env:
              YARN_HTTP_TIMEOUT: "120000"

    ``managers`` may also be a plain list of manager keys.

    Returns:
        The parsed YAML as a dict.
    """
    import yaml

    if not profile_path.exists():
        raise FileNotFoundError(f"Profile not found: {profile_path}")

    data = yaml.safe_load(profile_path.read_text())

    if not isinstance(data, dict):
        raise ValueError(f"Profile must be a YAML mapping, got {type(data).__name__}")

    return data


def config_from_profile(
    profile_data: dict[str, Any],
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> BenchConfig:
    """Build a BenchConfig from a parsed YAML profile.

    Precedence for trial counts: CLI, then ``RUNS_CACHED`` /
    ``RUNS_NOCACHE``, then the profile, then the defaults.  For
    everything else CLI values win over the profile.

    Args:
        profile_data: Parsed YAML profile dict.
        cli_overrides: CLI option values.  Keys match BenchConfig field
            names; None means "not given".

    Returns:
        BenchConfig with managers and settings populated.
    """
    cli = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    env_counts = env_trial_counts()

    def pick(key: str, default: Any) -> Any:
        if key in cli:
            return cli[key]
        if key in env_counts:
            return env_counts[key]
        return profile_data.get(key, default)

    scope = str(cli.get("scope") or profile_data.get("scope", "all"))

    config = BenchConfig(
        scope=scope,
        runtime_major=cli.get("runtime_major", profile_data.get("runtime_major")),
        runs_cached=_as_int("runs_cached", pick("runs_cached", DEFAULT_RUNS_CACHED)),
        runs_nocache=_as_int("runs_nocache", pick("runs_nocache", DEFAULT_RUNS_NOCACHE)),
        managers=_managers_from_profile(profile_data.get("managers"), scope),
        output=cli.get("output", profile_data.get("output", "discard")),
        eager_warm=bool(cli.get("eager_warm") or profile_data.get("eager_warm", False)),
    )

    for key in ("fixture_dir", "work_root", "work_dir", "results_dir"):
        value = cli.get(key) or profile_data.get(key)
        if value:
            setattr(config, key, Path(value))

    if cli.get("cli_args"):
        config.cli_args = list(cli["cli_args"])

    return config


def _as_int(key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key} must be an integer (got {value!r})") from exc

def _managers_from_profile(data: Any, scope: str) -> dict[str, ManagerSpec]:
    """Resolve the ``managers`` section, restricted to *scope*.

    Raises:
        ValueError: For unknown manager keys or malformed overrides.
    """
    selected = {spec.key: spec for spec in resolve_scope(scope)}
    if data is None:
        return selected

    if isinstance(data, list):
        data = {str(key): {} for key in data}
    if not isinstance(data, dict):
        raise ValueError("Profile 'managers' must be a list of keys or a mapping")

    managers: dict[str, ManagerSpec] = {}
    for key, overrides in data.items():
        if key not in MANAGERS:
            raise ValueError(
                f"Unknown package manager '{key}' in profile. Valid: {', '.join(MANAGERS)}"
            )
        if key not in selected:
            log.debug("Skipping manager '%s': not in scope '%s'", key, scope)
            continue
        if overrides is None:
            overrides = {}
        if not isinstance(overrides, dict):
            raise ValueError(f"Manager '{key}' must be a mapping, got {type(overrides).__name__}")
        managers[key] = with_overrides(MANAGERS[key], overrides)
    return managers
