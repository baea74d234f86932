"""
Group codes: normalization, caption matching and state keys.

Captions on the replacements page are free text ("Группа ИС-21, ИС-22"),
while subscribers store whatever their client sent ("ис-22", "ИС-20/ИС-22").
Both sides are normalized and compared by substring containment.
"""

from __future__ import annotations

import re
from typing import Any, Iterable

from mptnotify.model import ReplacementRecord


# em dash, en dash, minus sign, hyphen
_DASHES_RE = re.compile("[—–−‐-]")
_SPACES_RE = re.compile(r"\s+")
_SPACED_HYPHEN_RE = re.compile(r"\s*-\s*")
_SPLIT_RE = re.compile(r"[,/;\n]")

EMPTY_GROUP_KEY = "_empty"


def normalize_group_code(raw: Any) -> str:
    """
    Canonical form of a group identifier.

    Dash variants become "-", the text is trimmed and upper-cased, inner
    whitespace runs collapse to one space and spaces around hyphens are
    removed. Non-string input yields "".
    """
    if not isinstance(raw, str) or not raw:
        return ""
    s = _DASHES_RE.sub("-", raw).strip().upper()
    s = _SPACES_RE.sub(" ", s)
    return _SPACED_HYPHEN_RE.sub("-", s)


def split_group_codes(raw: Any) -> list[str]:
    """
    Split a stored group field that may list several codes.

    Separators: comma, slash, semicolon, newline. Order of first appearance
    is kept, empty fragments and duplicates are dropped.
    """
    if not isinstance(raw, str) or not raw:
        return []

    out: list[str] = []
    seen: set[str] = set()
    for part in _SPLIT_RE.split(raw):
        code = normalize_group_code(part)
        if not code or code in seen:
            continue
        seen.add(code)
        out.append(code)
    return out


def caption_matches_group(caption: str, group_code: str) -> bool:
    """
    True if the normalized caption contains the normalized group code,
    or any single code of a multi-code subscriber value.
    """
    normalized_caption = normalize_group_code(caption)
    normalized_group = normalize_group_code(group_code)
    if not normalized_group:
        return False

    if normalized_group in normalized_caption:
        return True

    return any(code in normalized_caption for code in split_group_codes(group_code))


def records_for_group(
    buckets: dict[str, list[ReplacementRecord]], group_code: str
) -> list[ReplacementRecord]:
    """
    Concatenate the records of every caption bucket matching group_code.

    Buckets are visited in mapping order and keep their own order. Rows that
    appear under several matching captions are kept twice.
    """
    out: list[ReplacementRecord] = []
    for caption, records in buckets.items():
        if caption_matches_group(caption, group_code):
            out.extend(records)
    return out


def group_key(group_code: str) -> str:
    """
    State key for a raw group code: path separators become "_".
    """
    key = str(group_code).replace("/", "_").replace("\\", "_").strip()
    return key or EMPTY_GROUP_KEY


def group_subscriptions(subscriptions: Iterable[Any]) -> dict[str, list[Any]]:
    """
    Bucket subscriptions by their raw group code, keeping first-seen order.
    """
    by_group: dict[str, list[Any]] = {}
    for sub in subscriptions:
        by_group.setdefault(sub.group_code, []).append(sub)
    return by_group
