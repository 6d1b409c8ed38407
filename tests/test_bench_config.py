"""Tests for pmbench.bench.config — configuration, profiles and validation."""

from __future__ import annotations

import os
import tempfile
import textwrap
import unittest
from pathlib import Path
from unittest.mock import patch

from pmbench.bench.config import (
    DEFAULT_RUNS_CACHED,
    DEFAULT_RUNS_NOCACHE,
    BenchConfig,
    config_from_profile,
    env_trial_counts,
    load_profile,
    validate_config,
)
from pmbench.bench.managers import MANAGERS, NPM


def _clean_env():
    """Patch os.environ without the trial-count variables."""
    env = {k: v for k, v in os.environ.items() if k not in ("RUNS_CACHED", "RUNS_NOCACHE")}
    return patch.dict(os.environ, env, clear=True)


class TestBenchConfig(unittest.TestCase):
    """Tests for BenchConfig defaults."""

    def test_defaults(self) -> None:
        config = BenchConfig()
        self.assertEqual(config.scope, "all")
        self.assertIsNone(config.runtime_major)
        self.assertEqual(config.runs_cached, 11)
        self.assertEqual(config.runs_nocache, 3)
        self.assertEqual(config.fixture_dir, Path("fixture"))
        self.assertEqual(config.results_dir, Path("results"))
        self.assertEqual(config.output, "discard")
        self.assertFalse(config.eager_warm)

    def test_managers_resolved_from_scope(self) -> None:
        self.assertEqual(list(BenchConfig().managers), list(MANAGERS))
        self.assertEqual(list(BenchConfig(scope="yarn,npm").managers), ["yarn", "npm"])

    def test_unknown_scope(self) -> None:
        with self.assertRaises(ValueError):
            BenchConfig(scope="bun")

    def test_work_dir_keyed_by_shard(self) -> None:
        a = BenchConfig(scope="npm").resolved_work_dir(20)
        b = BenchConfig(scope="npm").resolved_work_dir(22)
        c = BenchConfig(scope="pnpm").resolved_work_dir(22)
        self.assertEqual(a, Path(".pmbench-work") / "20-npm")
        self.assertEqual(len({a, b, c}), 3)

    def test_explicit_work_dir(self) -> None:
        config = BenchConfig(work_dir=Path("/tmp/pm"))
        self.assertEqual(config.resolved_work_dir(20), Path("/tmp/pm"))


class TestEnvTrialCounts(unittest.TestCase):
    """Tests for env_trial_counts()."""

    def test_unset(self) -> None:
        self.assertEqual(env_trial_counts({}), {})

    def test_set(self) -> None:
        counts = env_trial_counts({"RUNS_CACHED": "5", "RUNS_NOCACHE": " 2 "})
        self.assertEqual(counts, {"runs_cached": 5, "runs_nocache": 2})

    def test_blank_ignored(self) -> None:
        self.assertEqual(env_trial_counts({"RUNS_CACHED": ""}), {})

    def test_not_an_integer(self) -> None:
        with self.assertRaises(ValueError) as cm:
            env_trial_counts({"RUNS_NOCACHE": "three"})
        self.assertIn("RUNS_NOCACHE", str(cm.exception))


class TestValidateConfig(unittest.TestCase):
    """Tests for validate_config()."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.fixture = Path(self._tmp.name) / "fixture"
        self.fixture.mkdir()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _fields(self, config: BenchConfig, severity: str = "error") -> list[str]:
        return [e.field for e in validate_config(config) if e.severity == severity]

    def test_valid(self) -> None:
        self.assertEqual(validate_config(BenchConfig(fixture_dir=self.fixture)), [])

    def test_missing_fixture(self) -> None:
        config = BenchConfig(fixture_dir=self.fixture / "nope")
        self.assertEqual(self._fields(config), ["fixture_dir"])

    def test_fixture_is_file(self) -> None:
        path = self.fixture / "package.json"
        path.write_text("{}")
        self.assertEqual(self._fields(BenchConfig(fixture_dir=path)), ["fixture_dir"])

    def test_trial_counts(self) -> None:
        config = BenchConfig(fixture_dir=self.fixture, runs_cached=0, runs_nocache=0)
        self.assertEqual(self._fields(config), ["runs_cached", "runs_nocache"])

    def test_no_managers(self) -> None:
        config = BenchConfig(fixture_dir=self.fixture)
        config.managers = {}
        self.assertIn("managers", self._fields(config))

    def test_bad_runtime(self) -> None:
        config = BenchConfig(fixture_dir=self.fixture, runtime_major=0)
        self.assertEqual(self._fields(config), ["runtime_major"])

    def test_bad_output_mode(self) -> None:
        config = BenchConfig(fixture_dir=self.fixture, output="capture")
        self.assertEqual(self._fields(config), ["output"])

    def test_more_uncached_than_cached_warns(self) -> None:
        config = BenchConfig(fixture_dir=self.fixture, runs_cached=2, runs_nocache=5)
        self.assertEqual(self._fields(config), [])
        self.assertEqual(self._fields(config, "warning"), ["runs_nocache"])


class TestLoadProfile(unittest.TestCase):
    """Tests for load_profile()."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_load(self) -> None:
        path = self.root / "bench.yaml"
        path.write_text(
            textwrap.dedent(
                """\
                scope: npm,pnpm
                runs_cached: 7
                managers:
                  pnpm:
                    install: pnpm install --prefer-offline
                """
            )
        )
        data = load_profile(path)
        self.assertEqual(data["scope"], "npm,pnpm")
        self.assertEqual(data["runs_cached"], 7)
        self.assertIn("pnpm", data["managers"])

    def test_missing(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_profile(self.root / "missing.yaml")

    def test_not_a_mapping(self) -> None:
        path = self.root / "list.yaml"
        path.write_text("- npm\n- pnpm\n")
        with self.assertRaises(ValueError):
            load_profile(path)


class TestConfigFromProfile(unittest.TestCase):
    """Tests for config_from_profile()."""

    def test_empty_profile_defaults(self) -> None:
        with _clean_env():
            config = config_from_profile({})
        self.assertEqual(config.runs_cached, DEFAULT_RUNS_CACHED)
        self.assertEqual(config.runs_nocache, DEFAULT_RUNS_NOCACHE)
        self.assertEqual(list(config.managers), list(MANAGERS))

    def test_profile_values(self) -> None:
        profile = {
            "scope": "npm",
            "runs_cached": 5,
            "runs_nocache": 2,
            "runtime_major": 20,
            "fixture_dir": "fx",
            "results_dir": "out",
            "eager_warm": True,
        }
        with _clean_env():
            config = config_from_profile(profile)
        self.assertEqual(config.scope, "npm")
        self.assertEqual(config.runs_cached, 5)
        self.assertEqual(config.runs_nocache, 2)
        self.assertEqual(config.runtime_major, 20)
        self.assertEqual(config.fixture_dir, Path("fx"))
        self.assertEqual(config.results_dir, Path("out"))
        self.assertTrue(config.eager_warm)

    def test_env_overrides_profile(self) -> None:
        with _clean_env(), patch.dict(os.environ, {"RUNS_CACHED": "4"}):
            config = config_from_profile({"runs_cached": 9, "runs_nocache": 2})
        self.assertEqual(config.runs_cached, 4)
        self.assertEqual(config.runs_nocache, 2)

    def test_cli_overrides_env(self) -> None:
        with _clean_env(), patch.dict(os.environ, {"RUNS_CACHED": "4", "RUNS_NOCACHE": "2"}):
            config = config_from_profile(
                {}, cli_overrides={"runs_cached": 6, "runs_nocache": None}
            )
        self.assertEqual(config.runs_cached, 6)
        self.assertEqual(config.runs_nocache, 2)

    def test_cli_overrides_profile(self) -> None:
        with _clean_env():
            config = config_from_profile(
                {"scope": "npm", "fixture_dir": "a", "runtime_major": 18},
                cli_overrides={"scope": "pnpm", "fixture_dir": Path("b"), "runtime_major": 22},
            )
        self.assertEqual(list(config.managers), ["pnpm"])
        self.assertEqual(config.fixture_dir, Path("b"))
        self.assertEqual(config.runtime_major, 22)

    def test_manager_overrides(self) -> None:
        profile = {
            "scope": "npm,yarn",
            "managers": {
                "npm": {"ci": "npm ci --no-audit"},
                "yarn": {"env": {"YARN_HTTP_TIMEOUT": "120000"}},
            },
        }
        with _clean_env():
            config = config_from_profile(profile)
        self.assertEqual(config.managers["npm"].ci, ("npm", "ci", "--no-audit"))
        self.assertEqual(config.managers["npm"].install, NPM.install)
        self.assertEqual(config.managers["yarn"].env["YARN_HTTP_TIMEOUT"], "120000")

    def test_managers_as_list(self) -> None:
        with _clean_env():
            config = config_from_profile({"managers": ["pnpm", "npm"]})
        self.assertEqual(list(config.managers), ["pnpm", "npm"])
        self.assertEqual(config.managers["npm"], NPM)

    def test_managers_outside_scope_skipped(self) -> None:
        with _clean_env():
            config = config_from_profile(
                {"managers": {"npm": None, "pnpm": {}}}, cli_overrides={"scope": "npm"}
            )
        self.assertEqual(list(config.managers), ["npm"])

    def test_unknown_manager(self) -> None:
        with _clean_env(), self.assertRaises(ValueError):
            config_from_profile({"managers": {"bun": {}}})

    def test_malformed_manager(self) -> None:
        with _clean_env(), self.assertRaises(ValueError):
            config_from_profile({"managers": {"npm": "fast"}})

    def test_malformed_managers_section(self) -> None:
        with _clean_env(), self.assertRaises(ValueError):
            config_from_profile({"managers": "npm"})

    def test_cli_args_recorded(self) -> None:
        with _clean_env():
            config = config_from_profile({}, cli_overrides={"cli_args": ["run", "--scope", "npm"]})
        self.assertEqual(config.cli_args, ["run", "--scope", "npm"])

    def test_null_trial_count_in_profile(self) -> None:
        with _clean_env(), self.assertRaises(ValueError) as cm:
            config_from_profile({"runs_cached": None})
        self.assertIn("runs_cached", str(cm.exception))

    def test_list_trial_count_in_profile(self) -> None:
        with _clean_env(), self.assertRaises(ValueError) as cm:
            config_from_profile({"runs_nocache": [1, 2]})
        self.assertIn("runs_nocache", str(cm.exception))

    def test_non_numeric_trial_count_in_profile(self) -> None:
        with _clean_env(), self.assertRaises(ValueError) as cm:
            config_from_profile({"runs_cached": "many"})
        self.assertIn("runs_cached", str(cm.exception))


if __name__ == "__main__":
    unittest.main()
