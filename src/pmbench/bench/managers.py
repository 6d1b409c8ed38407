"""Package manager definitions.

Each supported manager x linking mode is one :class:`ManagerSpec`
record.  The preparer, the runner and the version probes read commands,
lockfile names, artifact paths and cache variables from the record
instead of branching on the manager name.

The on-disk paths are constants; they are never discovered at runtime.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

ACTIONS = ("install", "ci")

_PNP_ARTIFACTS = (
    ".pnp.cjs",
    ".pnp.loader.mjs",
    ".yarn/install-state.gz",
    ".yarn/unplugged",
    ".yarn/build-state.yml",
)

_YARN_ENV = {
    "YARN_ENABLE_HARDENED_MODE": "0",
    "YARN_ENABLE_GLOBAL_CACHE": "false",
    "YARN_ENABLE_TELEMETRY": "0",
}


@dataclass(frozen=True)
class ManagerSpec:
    """How to drive one package manager in one linking mode."""

    key: str  # "npm", "pnpm", "yarn", "yarn-pnp"
    binary: str
    link_mode: str  # "node-modules", "isolated", "pnp"
    install: tuple[str, ...]
    ci: tuple[str, ...]
    lockfile_only: tuple[str, ...]
    version: tuple[str, ...]
    lockfile: str
    artifacts: tuple[str, ...] = ("node_modules",)
    cache_env: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    linker: str | None = None  # nodeLinker value for .yarnrc.yml

    @property
    def uses_pnp_artifacts(self) -> bool:
        """True when the artifact set replaces a ``node_modules`` tree."""
        return self.link_mode == "pnp"

    def command_for(self, action: str) -> tuple[str, ...]:
        """Return the argv of the timed command for *action*."""
        if action == "install":
            return self.install
        if action == "ci":
            return self.ci
        raise ValueError(f"Unknown action {action!r}; expected one of {ACTIONS}")

    def cache_environment(self, cache_dir: str) -> dict[str, str]:
        """Environment pointing this manager at *cache_dir*."""
        env = dict(self.env)
        for var in self.cache_env:
            env[var] = cache_dir
        return env


# ---------------------------------------------------------------------------
# Built-in managers
# ---------------------------------------------------------------------------


NPM = ManagerSpec(
    key="npm",
    binary="npm",
    link_mode="node-modules",
    install=("npm", "install"),
    ci=("npm", "ci"),
    lockfile_only=("npm", "install", "--package-lock-only"),
    version=("npm", "--version"),
    lockfile="package-lock.json",
    cache_env=("npm_config_cache",),
)

PNPM = ManagerSpec(
    key="pnpm",
    binary="pnpm",
    link_mode="isolated",
    install=("pnpm", "install"),
    ci=("pnpm", "install", "--frozen-lockfile"),
    lockfile_only=("pnpm", "install", "--lockfile-only"),
    version=("pnpm", "--version"),
    lockfile="pnpm-lock.yaml",
    cache_env=("npm_config_store_dir", "pnpm_config_store_dir"),
)

YARN = ManagerSpec(
    key="yarn",
    binary="yarn",
    link_mode="node-modules",
    install=("yarn", "install", "--no-immutable"),
    ci=("yarn", "install", "--immutable"),
    lockfile_only=("yarn", "install", "--mode=update-lockfile"),
    version=("yarn", "--version"),
    lockfile="yarn.lock",
    cache_env=("YARN_CACHE_FOLDER",),
    env=_YARN_ENV,
    linker="node-modules",
)

YARN_PNP = replace(
    YARN,
    key="yarn-pnp",
    link_mode="pnp",
    artifacts=_PNP_ARTIFACTS,
    linker="pnp",
)

MANAGERS: dict[str, ManagerSpec] = {
    spec.key: spec for spec in (NPM, PNPM, YARN, YARN_PNP)
}


def resolve_scope(scope: str) -> list[ManagerSpec]:
    """Map a scope label to the managers it benchmarks.

    ``"all"`` selects every built-in manager; anything else is a
    comma-separated list of manager keys (``"npm"``, ``"pnpm,yarn"``).

    Raises:
        ValueError: For an empty scope or an unknown manager key.
    """
    scope = scope.strip()
    if scope == "all":
        return list(MANAGERS.values())

    keys = [k.strip() for k in scope.split(",") if k.strip()]
    if not keys:
        raise ValueError("Scope must name at least one package manager.")
    unknown = [k for k in keys if k not in MANAGERS]
    if unknown:
        raise ValueError(
            f"Unknown package manager(s) in scope: {', '.join(unknown)}. "
            f"Valid: all, {', '.join(MANAGERS)}"
        )
    seen: set[str] = set()
    specs = []
    for key in keys:
        if key not in seen:
            seen.add(key)
            specs.append(MANAGERS[key])
    return specs


def with_overrides(spec: ManagerSpec, data: Mapping[str, Any]) -> ManagerSpec:
    """Return *spec* with command or environment overrides applied.

    Supported keys: ``install``, ``ci``, ``lockfile_only`` (shell-style
    command strings or lists) and ``env`` (a mapping merged over the
    spec's own environment).

    Raises:
        ValueError: For unknown keys or malformed values.
    """
    changes: dict[str, Any] = {}
    for name, value in data.items():
        if name in ("install", "ci", "lockfile_only"):
            changes[name] = _parse_command(spec.key, name, value)
        elif name == "env":
            if not isinstance(value, Mapping):
                raise ValueError(f"Manager '{spec.key}': 'env' must be a mapping")
            merged = dict(spec.env)
            merged.update({str(k): str(v) for k, v in value.items()})
            changes["env"] = merged
        else:
            raise ValueError(
                f"Unknown override '{name}' for manager '{spec.key}'. "
                f"Valid keys: install, ci, lockfile_only, env"
            )
    return replace(spec, **changes)


def _parse_command(key: str, name: str, value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        argv = tuple(shlex.split(value))
    elif isinstance(value, (list, tuple)):
        argv = tuple(str(v) for v in value)
    else:
        raise ValueError(f"Manager '{key}': '{name}' must be a string or list")
    if not argv:
        raise ValueError(f"Manager '{key}': '{name}' must not be empty")
    return argv
