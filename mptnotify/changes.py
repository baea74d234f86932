"""
Change detection.

Given the replacements currently matched for a group and the fingerprints
stored after its last notification, decide whether there is anything new.

Rule (superset-or-growth):
    new  <=>  some current fingerprint is not stored
              OR there are more current records than stored fingerprints

Replacements that disappeared from the page never count as new; they are
simply absent from the fingerprints written after the next notification.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from mptnotify.model import ReplacementRecord


# Best-effort separator: it does not occur in lesson numbers, subject,
# room or staff names and timestamps shown on the page.
FINGERPRINT_SEPARATOR = "_"


def fingerprint(record: ReplacementRecord) -> str:
    """
    Deterministic identity string of one replacement (not a cryptographic hash).
    """
    return FINGERPRINT_SEPARATOR.join(
        [
            record.lesson_number,
            record.replace_from,
            record.replace_to,
            record.change_date,
            record.updated_at,
        ]
    )


def fingerprints(records: Iterable[ReplacementRecord]) -> list[str]:
    """
    Fingerprints in record order, duplicates kept.
    """
    return [fingerprint(r) for r in records]


def has_new_replacements(current: Sequence[ReplacementRecord], last_hashes: Sequence[str]) -> bool:
    """
    True if current holds information not covered by last_hashes.
    """
    if not last_hashes:
        return len(current) > 0

    known = set(last_hashes)
    if any(h not in known for h in fingerprints(current)):
        return True

    # Only reachable when duplicates were collapsed differently on each side
    return len(current) > len(last_hashes)
