"""
Central data model definitions used across the project.

This module defines the canonical structure of the records that flow through
one run so that:
- the extractor, matcher, detector and dispatcher share the same field names
- persisted state and directory documents are validated in one place
  (absent fields get documented defaults instead of ad hoc None checks)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional


@dataclass(frozen=True)
class ReplacementRecord:
    """
    One timetable change entry, exactly one 4-cell row of a caption table.

    change_date is always today or tomorrow (DD.MM.YYYY) relative to the run.
    """

    lesson_number: str
    replace_from: str
    replace_to: str
    updated_at: str
    change_date: str


@dataclass
class Subscription:
    """
    One device subscribed to one (raw) group code.

    ref is an opaque handle owned by the token directory and is only passed
    back to it when the subscription has to be deleted.
    """

    token: str
    group_code: str
    ref: Any = None

    @classmethod
    def from_document(cls, data: Any, ref: Any = None) -> Optional["Subscription"]:
        """
        Build a Subscription from a directory document.

        Returns None when the document lacks a usable token or group code.
        """
        if not isinstance(data, dict):
            return None
        token = data.get("token")
        group_code = data.get("groupCode")
        if not isinstance(token, str) or not token:
            return None
        if not isinstance(group_code, str) or not group_code.strip():
            return None
        return cls(token=token, group_code=group_code.strip(), ref=ref)


@dataclass
class GroupState:
    """
    Persisted per-group entry of the run state.

    Defaults when a field is missing from the file:
    - groupCode -> ""
    - hashes    -> []
    - updatedAt -> ""
    """

    group_code: str = ""
    hashes: List[str] = field(default_factory=list)
    updated_at: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GroupState":
        group_code = data.get("groupCode", "")
        hashes = data.get("hashes", [])
        updated_at = data.get("updatedAt", "")

        return cls(
            group_code=group_code if isinstance(group_code, str) else "",
            hashes=[h for h in hashes if isinstance(h, str)] if isinstance(hashes, list) else [],
            updated_at=updated_at if isinstance(updated_at, str) else "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "groupCode": self.group_code,
            "hashes": list(self.hashes),
            "updatedAt": self.updated_at,
        }


# group key -> GroupState, the whole persisted artifact
RunState = dict[str, GroupState]
