from __future__ import annotations

import logging
from pathlib import Path

import requests


# ---------------------------------------------------------------------------
# URLs & defaults
# ---------------------------------------------------------------------------

REPLACEMENTS_URL = "https://mpt.ru/izmeneniya-v-raspisanii/"
DEFAULT_TIMEOUT = 15.0
DEFAULT_USER_AGENT = "MymptReplacementService/1.0"

logger = logging.getLogger(__name__)


class FetchError(RuntimeError):
    """Raised when the replacements page could not be downloaded."""


# ---------------------------------------------------------------------------
# Core logic
# ---------------------------------------------------------------------------


def fetch_page(
    url: str = REPLACEMENTS_URL,
    timeout: float = DEFAULT_TIMEOUT,
    user_agent: str = DEFAULT_USER_AGENT,
) -> str:
    """
    Download the replacements page and return its HTML.

    One attempt, no retries. Network errors, timeouts and non-2xx
    statuses are raised as FetchError.
    """
    logger.debug("GET %s (timeout=%ss)", url, timeout)
    try:
        resp = requests.get(url, headers={"User-Agent": user_agent}, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise FetchError(f"fetch {url} failed: {e}") from e

    # The site does not always declare its charset
    if not resp.encoding or resp.encoding.lower() == "iso-8859-1":
        resp.encoding = resp.apparent_encoding

    return resp.text


def read_page(path: str | Path) -> str:
    """
    Read a saved copy of the page (used by the `show` command).
    """
    return Path(path).read_text(encoding="utf-8")
