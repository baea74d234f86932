"""
Parsing (replacements HTML -> caption buckets).

The page is a sequence of sections:

    <h4>Замены на 19.10.2026 (понедельник)</h4>
    <div class="table-responsive">
      <table class="table">
        <caption>ИС-21, ИС-22</caption>
        <tr><th>Пара</th><th>Что заменяют</th><th>На что заменяют</th><th>Добавлена</th></tr>
        <tr><td>2</td><td>Физика</td><td>Химия</td><td>18.10.2026 15:10</td></tr>
      </table>
    </div>
    ...
    <h4>Замены на 20.10.2026 ...</h4>

Important rules (DO NOT CHANGE):
- Only sections dated today or tomorrow are read
- 1 row with exactly 4 cells = 1 ReplacementRecord, anything else is skipped
- A section ends at the next "Замены на" heading (direct siblings only)
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from mptnotify.model import ReplacementRecord


HEADING_MARKER = "Замены на"
HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
DATE_FORMAT = "%d.%m.%Y"

_DATE_RE = re.compile(r"(\d{2}\.\d{2}\.\d{4})")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def date_strings(reference: date | datetime) -> Tuple[str, str]:
    """
    Return (today, tomorrow) as DD.MM.YYYY for the host's local calendar day.
    """
    if isinstance(reference, datetime):
        reference = reference.date()
    tomorrow = reference + timedelta(days=1)
    return reference.strftime(DATE_FORMAT), tomorrow.strftime(DATE_FORMAT)


def _text(el: Tag) -> str:
    return el.get_text().strip()


def _is_section_heading(el: Tag) -> bool:
    return el.name in HEADING_TAGS and _text(el).startswith(HEADING_MARKER)


def _heading_date(el: Tag) -> Optional[str]:
    match = _DATE_RE.search(_text(el))
    return match.group(1) if match else None


def _section_table(el: Tag) -> Optional[Tag]:
    """
    Return the replacements table carried by a section sibling, if any.

    Accepted shapes: a responsive wrapper div holding a table.table
    (the first one wins) or a bare table.table.
    """
    classes = el.get("class") or []
    if el.name == "div" and "table-responsive" in classes:
        return el.select_one("table.table")
    if el.name == "table" and "table" in classes:
        return el
    return None


def parse_table_rows(table: Tag, change_date: str) -> List[ReplacementRecord]:
    """
    Extract ReplacementRecords from one captioned table.

    Header rows (th only) and rows with any cell count other than four
    are skipped.
    """
    records: List[ReplacementRecord] = []

    for row in table.find_all("tr"):
        cells = row.find_all("td")

        # Only rows with exactly four cells are replacements
        if len(cells) != 4:
            continue

        lesson_number, replace_from, replace_to, updated_at = (_text(c) for c in cells)
        records.append(
            ReplacementRecord(
                lesson_number=lesson_number,
                replace_from=replace_from,
                replace_to=replace_to,
                updated_at=updated_at,
                change_date=change_date,
            )
        )

    return records


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_replacements(html: str, reference: date | datetime) -> Dict[str, List[ReplacementRecord]]:
    """
    Parse the replacements page into caption -> records.

    Buckets keep document order and accumulate across the today and
    tomorrow sections. Returns {} when no section qualifies.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    today, tomorrow = date_strings(reference)

    buckets: Dict[str, List[ReplacementRecord]] = {}

    for heading in soup.find_all(HEADING_TAGS):
        if not _is_section_heading(heading):
            continue

        change_date = _heading_date(heading)
        if change_date not in (today, tomorrow):
            continue

        # Walk direct following siblings until the next section heading
        for sibling in heading.find_next_siblings():
            if _is_section_heading(sibling):
                break

            table = _section_table(sibling)
            if table is None:
                continue

            caption = table.find("caption")
            if caption is None:
                continue

            rows = parse_table_rows(table, change_date)
            buckets.setdefault(_text(caption), []).extend(rows)

    return buckets
