"""Command-line interface for pmbench.

Subcommands:
    pmbench run      Benchmark installs for one shard (runtime x scope)
    pmbench cases    List the case matrix
    pmbench merge    Merge partial results into results/results.json
    pmbench render   Render the p90 table into a README
    pmbench export   Export a partial artifact as CSV
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from pmbench import __version__
from pmbench.logging import setup_logging


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """pmbench: benchmark npm, pnpm and Yarn installs across cache states."""


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@main.command()
@click.option(
    "--profile",
    "profile_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML profile with trial counts and manager overrides.",
)
@click.option(
    "--fixture",
    "fixture_dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Project copied into the workspace before every trial (default: fixture).",
)
@click.option(
    "--scope",
    type=str,
    default=None,
    help="'all' or comma-separated managers: npm, pnpm, yarn, yarn-pnp (default: all).",
)
@click.option(
    "--node",
    "runtime_major",
    type=int,
    default=None,
    help="Node.js major version label (default: detected from `node --version`).",
)
@click.option(
    "--runs-cached",
    type=int,
    default=None,
    help="Trials per cache-present case (default: 11, env RUNS_CACHED).",
)
@click.option(
    "--runs-nocache",
    type=int,
    default=None,
    help="Trials per cache-absent case (default: 3, env RUNS_NOCACHE).",
)
@click.option(
    "--work-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Workspace and cache root (default: .pmbench-work/<node>-<scope>).",
)
@click.option(
    "--results-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Results directory; the artifact goes to <dir>/partial/ (default: results).",
)
@click.option(
    "--show-output",
    is_flag=True,
    default=False,
    help="Show package manager output instead of discarding it.",
)
@click.option(
    "--eager-warm",
    is_flag=True,
    default=False,
    help="Warm all caches before the first case instead of on first use.",
)
@click.option("-v", "--verbose", is_flag=True, help="Show preparation steps.")
@click.option("-q", "--quiet", is_flag=True, help="Only show warnings and errors.")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write a DEBUG log to this file.",
)
def run(  # noqa: PLR0913
    profile_path: Path | None,
    fixture_dir: Path | None,
    scope: str | None,
    runtime_major: int | None,
    runs_cached: int | None,
    runs_nocache: int | None,
    work_dir: Path | None,
    results_dir: Path | None,
    show_output: bool,
    eager_warm: bool,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Benchmark installs for every case of the matrix.

    \b
    Examples:
        # All managers on the current Node.js
        pmbench run --fixture ./fixture

        # npm only, labelled as the Node 20 shard
        pmbench run --scope npm --node 20 --runs-cached 5
    """
    from pmbench.bench.config import config_from_profile, load_profile
    from pmbench.bench.errors import PrepError
    from pmbench.bench.runner import BenchRunner

    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    cli_overrides: dict[str, object] = {
        "scope": scope,
        "runtime_major": runtime_major,
        "runs_cached": runs_cached,
        "runs_nocache": runs_nocache,
        "fixture_dir": fixture_dir,
        "work_dir": work_dir,
        "results_dir": results_dir,
        "output": "inherit" if show_output else None,
        "eager_warm": eager_warm or None,
        "cli_args": sys.argv[1:],
    }

    try:
        profile_data = load_profile(profile_path) if profile_path else {}
        config = config_from_profile(profile_data, cli_overrides=cli_overrides)
        runner = BenchRunner(config)
        artifact, path = runner.run()
    except (ValueError, PrepError) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
    except OSError as exc:
        click.echo(f"Error writing results: {exc}", err=True)
        raise SystemExit(2) from exc
    except KeyboardInterrupt:
        click.echo("\nBenchmark interrupted.", err=True)
        raise SystemExit(130)  # noqa: B904

    ok = len(artifact.results) - len(artifact.failed)
    click.echo(f"{ok}/{len(artifact.results)} cases ok. Results saved to: {path}")


# ---------------------------------------------------------------------------
# cases
# ---------------------------------------------------------------------------


@main.command()
@click.option("--scope", type=str, default="all", show_default=True)
@click.option("--runs-cached", type=int, default=None)
@click.option("--runs-nocache", type=int, default=None)
def cases(scope: str, runs_cached: int | None, runs_nocache: int | None) -> None:
    """Print the case matrix for SCOPE without running anything."""
    from pmbench.bench.cases import build_cases
    from pmbench.bench.config import config_from_profile

    try:
        config = config_from_profile(
            {},
            cli_overrides={
                "scope": scope,
                "runs_cached": runs_cached,
                "runs_nocache": runs_nocache,
            },
        )
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    matrix = build_cases(
        config.managers.values(),
        runs_cached=config.runs_cached,
        runs_nocache=config.runs_nocache,
    )
    for case in matrix:
        click.echo(f"{case.label:50s} runs={case.run_count}")
    click.echo(f"{len(matrix)} cases")


# ---------------------------------------------------------------------------
# merge
# ---------------------------------------------------------------------------


@main.command()
@click.option(
    "--results-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("results"),
    show_default=True,
)
def merge(results_dir: Path) -> None:
    """Merge results/partial/*.json into results/results.json."""
    from pmbench.bench.merge import dedupe_records, merge_partials, write_merged

    try:
        merged = merge_partials(results_dir)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
    if not merged.partials:
        click.echo(f"Error: no partial results under {results_dir}", err=True)
        raise SystemExit(1)
    path = write_merged(results_dir, merged)
    records = dedupe_records(merged)
    click.echo(f"Merged {len(merged.partials)} shards ({len(records)} results) into {path}")


# ---------------------------------------------------------------------------
# render
# ---------------------------------------------------------------------------


@main.command()
@click.option(
    "--results",
    "results_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=Path("results/results.json"),
    show_default=True,
)
@click.option(
    "--readme",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("README.md"),
    show_default=True,
)
@click.option("--stdout", "to_stdout", is_flag=True, help="Print the table instead.")
def render(results_path: Path, readme: Path, to_stdout: bool) -> None:
    """Render the p90 table into README between the BENCH markers."""
    from pmbench.bench.export import render_markdown_table, update_readme
    from pmbench.bench.merge import load_merged

    try:
        table = render_markdown_table(load_merged(results_path))
        if to_stdout:
            click.echo(table)
            return
        updated = update_readme(readme.read_text(encoding="utf-8"), table)
        readme.write_text(updated, encoding="utf-8")
    except (ValueError, OSError) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
    click.echo(f"Updated {readme}")


# ---------------------------------------------------------------------------
# export
# ---------------------------------------------------------------------------


@main.command("export")
@click.argument("partial", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write to a file instead of stdout.",
)
def export_cmd(partial: Path, output: Path | None) -> None:
    """Export a PARTIAL artifact as CSV."""
    from pmbench.bench.export import export_csv
    from pmbench.bench.results import load_partial

    try:
        text = export_csv(load_partial(partial))
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
    if output is None:
        click.echo(text, nl=False)
    else:
        output.write_text(text, encoding="utf-8")
        click.echo(f"Wrote {output}")


if __name__ == "__main__":
    main()
