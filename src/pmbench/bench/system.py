"""Runtime and tool version probes.

Partial artifacts record which Node.js and package-manager versions
produced them, so that shards from different runtimes can be told apart
and reported side by side.  A probe that fails records ``None`` rather
than aborting the run: a missing ``pnpm`` only matters if pnpm cases
are benchmarked, and those will fail on their own.
"""

from __future__ import annotations

import logging
import os
import platform
import re
from typing import Any, Iterable

from pmbench.bench.managers import ManagerSpec
from pmbench.bench.timing import run_command

log = logging.getLogger("pmbench")

NODE_VERSION_COMMAND = ("node", "--version")

_VERSION_RE = re.compile(r"v?(\d+)(?:\.\d+)*")


def probe_version(command: Iterable[str], env: dict[str, str] | None = None) -> str | None:
    """Run a ``--version`` style command and return its first output line."""
    argv = tuple(command)
    try:
        result = run_command(argv, env=env, output="capture")
    except OSError as exc:
        log.debug("Version probe %s failed: %s", " ".join(argv), exc)
        return None
    if not result.ok:
        log.debug("Version probe %s exited %d", " ".join(argv), result.exit_code)
        return None
    lines = result.stdout.strip().splitlines()
    return lines[0].strip() if lines else None


def capture_tool_versions(
    managers: Iterable[ManagerSpec],
    env: dict[str, str] | None = None,
) -> dict[str, str | None]:
    """Probe the runtime and each distinct manager binary.

    Returns a mapping such as ``{"node": "v22.3.0", "npm": "10.8.1",
    "yarn": "4.5.0"}``.  Yarn's two linking modes share one entry.
    """
    versions: dict[str, str | None] = {"node": probe_version(NODE_VERSION_COMMAND, env)}
    for spec in managers:
        if spec.binary in versions:
            continue
        probe_env = dict(spec.env)
        if env:
            probe_env.update(env)
        versions[spec.binary] = probe_version(spec.version, probe_env)
    return versions


def parse_major_version(text: str) -> int:
    """Extract the major version from strings like ``v20.11.1``.

    Raises:
        ValueError: If *text* does not start with a version number.
    """
    match = _VERSION_RE.match(text.strip())
    if not match:
        raise ValueError(f"Cannot parse a version from {text!r}")
    return int(match.group(1))


def detect_runtime_major(env: dict[str, str] | None = None) -> int:
    """Return the major version of the ``node`` on ``PATH``.

    Raises:
        ValueError: If node is missing or prints something unexpected.
    """
    version = probe_version(NODE_VERSION_COMMAND, env)
    if version is None:
        raise ValueError(
            "Could not run 'node --version'. Install Node.js or pass --node explicitly."
        )
    return parse_major_version(version)


def capture_host() -> dict[str, Any]:
    """Describe the machine the benchmark ran on."""
    return {
        "os": platform.system(),
        "release": platform.release(),
        "machine": platform.machine(),
        "cpu_count": os.cpu_count() or 0,
        "hostname": platform.node(),
    }
