"""
Persistent storage for the run state.

This module manages the file (default location):

    data/last_replacements.json

Layout:

    {
      "ИС-21": {"groupCode": "ИС-21", "hashes": ["..."], "updatedAt": "2026-10-19T08:00:00+00:00"},
      ...
    }

The whole mapping is read once at the start of a run and written back once
at the end. Unlike user-facing caches, a broken state file is NOT silently
replaced: only a missing file means "empty state".
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from mptnotify.model import GroupState, RunState


logger = logging.getLogger(__name__)


class StateFileError(ValueError):
    """Raised when the state file exists but does not hold a JSON object."""


def load_state(path: str | Path) -> RunState:
    """
    Load the run state.

    Missing file -> {}. Any other read or decode problem is raised.
    Entries that are not JSON objects are dropped, missing fields get the
    GroupState defaults.
    """
    state_path = Path(path)

    # First run: file does not exist yet
    try:
        raw = state_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise StateFileError(f"{state_path}: invalid JSON ({e})") from e

    if not isinstance(data, dict):
        raise StateFileError(f"{state_path}: expected a JSON object, got {type(data).__name__}")

    state: RunState = {}
    for key, entry in data.items():
        if not isinstance(entry, dict):
            logger.warning("Dropping malformed state entry %r", key)
            continue
        state[str(key)] = GroupState.from_dict(entry)
    return state


def save_state(state: RunState, path: str | Path) -> None:
    """
    Overwrite the state file with the full mapping.

    Creates parent directories if needed. The file is written to a temporary
    sibling first and then renamed over the old one, so readers never see a
    half-written file.
    """
    state_path = Path(path)
    state_path.parent.mkdir(parents=True, exist_ok=True)

    payload = {key: entry.to_dict() for key, entry in state.items()}
    text = json.dumps(payload, indent=2, ensure_ascii=False)

    fd, tmp_name = tempfile.mkstemp(prefix=state_path.name, suffix=".tmp", dir=state_path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, state_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
