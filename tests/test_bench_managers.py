"""Tests for pmbench.bench.managers — per-manager configuration records."""

from __future__ import annotations

import unittest

from pmbench.bench.managers import (
    MANAGERS,
    NPM,
    PNPM,
    YARN,
    YARN_PNP,
    resolve_scope,
    with_overrides,
)


class TestManagerSpec(unittest.TestCase):
    """Tests for the built-in ManagerSpec records."""

    def test_builtin_keys(self) -> None:
        self.assertEqual(list(MANAGERS), ["npm", "pnpm", "yarn", "yarn-pnp"])

    def test_command_for(self) -> None:
        self.assertEqual(NPM.command_for("install"), ("npm", "install"))
        self.assertEqual(NPM.command_for("ci"), ("npm", "ci"))
        self.assertEqual(PNPM.command_for("ci"), ("pnpm", "install", "--frozen-lockfile"))
        self.assertEqual(YARN.command_for("ci"), ("yarn", "install", "--immutable"))

    def test_command_for_unknown_action(self) -> None:
        with self.assertRaises(ValueError):
            NPM.command_for("update")

    def test_lockfiles(self) -> None:
        self.assertEqual(NPM.lockfile, "package-lock.json")
        self.assertEqual(PNPM.lockfile, "pnpm-lock.yaml")
        self.assertEqual(YARN.lockfile, "yarn.lock")
        self.assertEqual(YARN_PNP.lockfile, "yarn.lock")

    def test_pnp_artifacts(self) -> None:
        self.assertTrue(YARN_PNP.uses_pnp_artifacts)
        self.assertFalse(YARN.uses_pnp_artifacts)
        self.assertEqual(YARN_PNP.artifacts[0], ".pnp.cjs")
        self.assertIn(".yarn/unplugged", YARN_PNP.artifacts)
        self.assertEqual(NPM.artifacts, ("node_modules",))

    def test_yarn_linkers(self) -> None:
        self.assertEqual(YARN.linker, "node-modules")
        self.assertEqual(YARN_PNP.linker, "pnp")
        self.assertIsNone(NPM.linker)

    def test_cache_environment(self) -> None:
        env = YARN.cache_environment("/tmp/cache")
        self.assertEqual(env["YARN_CACHE_FOLDER"], "/tmp/cache")
        self.assertEqual(env["YARN_ENABLE_HARDENED_MODE"], "0")
        pnpm_env = PNPM.cache_environment("/tmp/store")
        self.assertEqual(pnpm_env["npm_config_store_dir"], "/tmp/store")

    def test_cache_environment_does_not_mutate_spec(self) -> None:
        YARN.cache_environment("/tmp/cache")
        self.assertNotIn("YARN_CACHE_FOLDER", YARN.env)


class TestResolveScope(unittest.TestCase):
    """Tests for resolve_scope()."""

    def test_all(self) -> None:
        self.assertEqual([s.key for s in resolve_scope("all")], list(MANAGERS))

    def test_single(self) -> None:
        self.assertEqual(resolve_scope("npm"), [NPM])

    def test_list_keeps_order_and_dedupes(self) -> None:
        specs = resolve_scope("yarn-pnp, npm,yarn-pnp")
        self.assertEqual([s.key for s in specs], ["yarn-pnp", "npm"])

    def test_unknown_manager(self) -> None:
        with self.assertRaises(ValueError) as cm:
            resolve_scope("npm,bun")
        self.assertIn("bun", str(cm.exception))

    def test_empty_scope(self) -> None:
        with self.assertRaises(ValueError):
            resolve_scope(" , ")


class TestWithOverrides(unittest.TestCase):
    """Tests for with_overrides()."""

    def test_command_string_is_split(self) -> None:
        spec = with_overrides(PNPM, {"install": "pnpm install --prefer-offline"})
        self.assertEqual(spec.install, ("pnpm", "install", "--prefer-offline"))
        self.assertEqual(spec.ci, PNPM.ci)

    def test_command_list(self) -> None:
        spec = with_overrides(NPM, {"ci": ["npm", "ci", "--no-audit"]})
        self.assertEqual(spec.ci, ("npm", "ci", "--no-audit"))

    def test_env_is_merged(self) -> None:
        spec = with_overrides(YARN, {"env": {"YARN_HTTP_TIMEOUT": 120000}})
        self.assertEqual(spec.env["YARN_HTTP_TIMEOUT"], "120000")
        self.assertEqual(spec.env["YARN_ENABLE_HARDENED_MODE"], "0")

    def test_unknown_key(self) -> None:
        with self.assertRaises(ValueError):
            with_overrides(NPM, {"lockfile": "npm-shrinkwrap.json"})

    def test_empty_command(self) -> None:
        with self.assertRaises(ValueError):
            with_overrides(NPM, {"install": ""})

    def test_bad_env(self) -> None:
        with self.assertRaises(ValueError):
            with_overrides(NPM, {"env": ["A=1"]})


if __name__ == "__main__":
    unittest.main()
