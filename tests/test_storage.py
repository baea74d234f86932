"""
Unit tests for the persisted run state.

Storage contract:
- Missing file -> empty state
- Invalid JSON / non-object -> StateFileError (never silently reset)
- Missing fields -> GroupState defaults
- JSON schema: {key: {"groupCode", "hashes", "updatedAt"}}
"""

import json
import tempfile
import unittest
from pathlib import Path

from mptnotify.model import GroupState
from mptnotify.storage import StateFileError, load_state, save_state


class TestStorage(unittest.TestCase):
    def test_load_missing_file_returns_empty(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            self.assertEqual(load_state(Path(d) / "missing.json"), {})

    def test_save_and_load_roundtrip(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "nested" / "state.json"
            state = {"ИС-21": GroupState("ИС-21", ["a", "a", "b"], "2026-10-19T08:00:00+00:00")}
            save_state(state, p)

            self.assertEqual(load_state(p), state)

            data = json.loads(p.read_text(encoding="utf-8"))
            self.assertEqual(
                data, {"ИС-21": {"groupCode": "ИС-21", "hashes": ["a", "a", "b"], "updatedAt": "2026-10-19T08:00:00+00:00"}}
            )
            # no temp files left behind
            self.assertEqual([x.name for x in p.parent.iterdir()], ["state.json"])

    def test_missing_fields_get_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "state.json"
            p.write_text(json.dumps({"A": {}, "B": {"hashes": "nope", "groupCode": 5}, "C": []}), encoding="utf-8")
            state = load_state(p)

            self.assertEqual(state["A"], GroupState())
            self.assertEqual(state["B"].hashes, [])
            self.assertEqual(state["B"].group_code, "")
            self.assertNotIn("C", state)

    def test_invalid_json_is_fatal(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "state.json"
            p.write_text("{not json", encoding="utf-8")
            with self.assertRaises(StateFileError):
                load_state(p)

    def test_non_object_is_fatal(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "state.json"
            p.write_text("[1, 2]", encoding="utf-8")
            with self.assertRaises(StateFileError):
                load_state(p)


if __name__ == "__main__":
    unittest.main()
