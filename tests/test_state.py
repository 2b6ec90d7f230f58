"""
Tests for daemon/state.py - the generation-versioned variable store.
"""

import random
import shutil
import tempfile
import unittest
from pathlib import Path

from envctl.daemon.scope import GLOBAL, Scope
from envctl.daemon.state import ChangeEvent, EnvState


class TestSetUnset(unittest.TestCase):
    """Test cases for the two writers and their generation accounting."""

    def setUp(self):
        self.state = EnvState()

    def test_new_state_is_empty(self):
        status = self.state.status()
        self.assertEqual(status.generation, 0)
        self.assertEqual(status.global_count, 0)
        self.assertEqual(status.scope_count, 0)
        self.assertEqual(self.state.history, [])

    def test_set_bumps_generation_and_records_event(self):
        self.assertTrue(self.state.set(GLOBAL, "FOO", "bar"))
        self.assertEqual(self.state.generation, 1)
        self.assertEqual(self.state.history, [ChangeEvent(1, "FOO", GLOBAL)])

    def test_set_same_value_is_noop(self):
        self.state.set(GLOBAL, "FOO", "bar")
        self.assertFalse(self.state.set(GLOBAL, "FOO", "bar"))
        self.assertEqual(self.state.generation, 1)
        self.assertEqual(len(self.state.history), 1)

    def test_set_empty_value_on_absent_key_is_a_change(self):
        self.assertTrue(self.state.set(GLOBAL, "EMPTY", ""))
        self.assertEqual(self.state.globals, {"EMPTY": ""})
        self.assertEqual(self.state.generation, 1)

    def test_unset_existing_key(self):
        self.state.set(GLOBAL, "FOO", "bar")
        self.assertTrue(self.state.unset(GLOBAL, "FOO"))
        self.assertEqual(self.state.generation, 2)
        self.assertNotIn("FOO", self.state.globals)
        self.assertEqual(self.state.history[-1], ChangeEvent(2, "FOO", GLOBAL))

    def test_unset_absent_key_is_noop(self):
        self.assertFalse(self.state.unset(GLOBAL, "NOPE"))
        self.assertEqual(self.state.generation, 0)

    def test_unset_in_unknown_directory_does_not_create_scope(self):
        self.assertFalse(self.state.unset(Scope.directory("/nowhere/envctl"), "FOO"))
        self.assertEqual(self.state.scoped, {})

    def test_directory_scope_survives_being_emptied(self):
        scope = Scope.directory("/proj/envctl-test")
        self.state.set(scope, "A", "1")
        self.state.unset(scope, "A")
        self.assertEqual(self.state.status().scope_count, 1)
        self.assertEqual(self.state.scoped[Path("/proj/envctl-test")], {})

    def test_generation_is_exactly_one_more_per_change(self):
        rng = random.Random(7)
        scopes = [GLOBAL, Scope.directory("/p1"), Scope.directory("/p1/p2")]
        for _ in range(300):
            scope = rng.choice(scopes)
            key = rng.choice(["A", "B", "C"])
            before = self.state.generation
            if rng.random() < 0.6:
                changed = self.state.set(scope, key, rng.choice(["x", "y"]))
            else:
                changed = self.state.unset(scope, key)
            self.assertEqual(self.state.generation, before + (1 if changed else 0))

        generations = [event.generation for event in self.state.history]
        self.assertEqual(generations, list(range(1, self.state.generation + 1)))

    def test_load_applies_entries_in_order(self):
        self.state.set(GLOBAL, "KEEP", "same")
        self.state.load(GLOBAL, [("A", "1"), ("KEEP", "same"), ("A", "2")])
        self.assertEqual(self.state.globals, {"KEEP": "same", "A": "2"})
        # KEEP unchanged -> no event; A twice -> two events
        self.assertEqual(self.state.generation, 3)
        self.assertEqual([e.key for e in self.state.history], ["KEEP", "A", "A"])


class TestResolution(unittest.TestCase):
    """Test cases for effective values and scope precedence."""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp()).resolve()
        self.proj = self.temp_dir / "proj"
        self.sub = self.proj / "sub"
        self.other = self.temp_dir / "other"
        for path in (self.sub, self.other):
            path.mkdir(parents=True)
        self.state = EnvState()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_scope_overlay(self):
        self.state.set(GLOBAL, "VAR", "global")
        self.state.set(Scope.directory(self.proj), "VAR", "local")
        self.assertEqual(self.state.get_effective("VAR", self.sub), "local")
        self.assertEqual(self.state.get_effective("VAR", self.other), "global")

    def test_deepest_scope_defining_key_wins(self):
        self.state.set(GLOBAL, "VAR", "global")
        self.state.set(Scope.directory(self.proj), "VAR", "proj")
        self.state.set(Scope.directory(self.sub), "VAR", "sub")
        self.assertEqual(self.state.get_effective("VAR", self.sub / "x"), "sub")
        self.assertEqual(self.state.get_effective("VAR", self.proj), "proj")

    def test_deepest_scope_without_key_falls_back_to_global(self):
        # Only the best scope is consulted, then global
        self.state.set(GLOBAL, "VAR", "global")
        self.state.set(Scope.directory(self.proj), "VAR", "proj")
        self.state.set(Scope.directory(self.sub), "OTHER", "x")
        self.assertEqual(self.state.get_effective("VAR", self.sub), "global")
        self.assertEqual(self.state.effective_for(self.sub)["VAR"], "global")

    def test_absent_everywhere(self):
        self.assertIsNone(self.state.get_effective("NOPE", self.sub))

    def test_effective_for_overlays_directory_on_global(self):
        self.state.set(GLOBAL, "A", "g")
        self.state.set(GLOBAL, "B", "g")
        self.state.set(Scope.directory(self.proj), "B", "d")
        self.state.set(Scope.directory(self.proj), "C", "d")
        self.assertEqual(
            self.state.effective_for(self.sub),
            {"A": "g", "B": "d", "C": "d"},
        )
        self.assertEqual(self.state.effective_for(self.other), {"A": "g", "B": "g"})

    def test_effective_for_returns_a_copy(self):
        self.state.set(GLOBAL, "A", "g")
        result = self.state.effective_for(self.other)
        result["A"] = "changed"
        self.assertEqual(self.state.globals["A"], "g")

    def test_get_effective_agrees_with_effective_for(self):
        self.state.set(GLOBAL, "A", "1")
        self.state.set(GLOBAL, "B", "2")
        self.state.set(Scope.directory(self.proj), "A", "3")
        self.state.set(Scope.directory(self.sub), "C", "4")
        for pwd in (self.proj, self.sub, self.other, self.sub / "deep"):
            effective = self.state.effective_for(pwd)
            for key in ("A", "B", "C", "D"):
                self.assertEqual(self.state.get_effective(key, pwd), effective.get(key))

    def test_symlinked_pwd_sees_directory_scope(self):
        import os

        link = self.temp_dir / "link"
        os.symlink(self.proj, link)
        self.state.set(Scope.directory(self.proj), "VAR", "local")
        self.assertEqual(self.state.get_effective("VAR", link / "sub"), "local")


if __name__ == "__main__":
    unittest.main()
