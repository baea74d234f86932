"""
One run: load state -> fetch -> extract -> per group (match, detect,
dispatch) -> persist state.

Everything a run needs from the outside world is carried by RunContext, so
the orchestrator itself holds no globals and tests can pass fakes.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from mptnotify.changes import fingerprints, has_new_replacements
from mptnotify.config import Settings
from mptnotify.groups import group_key, group_subscriptions, records_for_group
from mptnotify.model import GroupState
from mptnotify.notify import SENT, DeliveryOutcome, PushTransport, TokenDirectory, dispatch
from mptnotify.parse import parse_replacements
from mptnotify.scrape import FetchError, fetch_page
from mptnotify.storage import load_state, save_state


logger = logging.getLogger(__name__)

FETCH_FAILED = "fetch_failed"
NO_REPLACEMENTS = "no_replacements"
COMPLETED = "completed"


def _fetch_with_settings(settings: Settings) -> str:
    return fetch_page(settings.replacements_url, timeout=settings.fetch_timeout, user_agent=settings.user_agent)


@dataclass
class RunContext:
    """
    Collaborators of a run.

    fetch takes the settings and returns the page HTML or raises FetchError.
    now returns the run's reference time (local clock by default).
    """

    settings: Settings
    directory: TokenDirectory
    transport: PushTransport
    fetch: Callable[[Settings], str] = _fetch_with_settings
    now: Callable[[], datetime] = datetime.now


@dataclass
class RunReport:
    status: str
    notified_groups: List[str] = field(default_factory=list)
    outcomes: List[DeliveryOutcome] = field(default_factory=list)

    def summary(self) -> str:
        sent = sum(1 for o in self.outcomes if o.status == SENT)
        return (
            f"{self.status}: {len(self.notified_groups)} group(s) notified, "
            f"{sent}/{len(self.outcomes)} push(es) delivered"
        )


def run_check(ctx: RunContext) -> RunReport:
    """
    Execute one complete run.

    Fetch errors and an empty extraction end the run early without writing
    state. State read/write errors propagate to the caller.
    """
    state = load_state(ctx.settings.state_file)

    try:
        html = ctx.fetch(ctx.settings)
    except FetchError as e:
        logger.error("Fetch failed: %s", e)
        return RunReport(status=FETCH_FAILED)

    buckets = parse_replacements(html, ctx.now())
    if not buckets:
        logger.info("No replacement blocks for today/tomorrow.")
        return RunReport(status=NO_REPLACEMENTS)

    report = RunReport(status=COMPLETED)
    subscriptions = ctx.directory.snapshot()

    for group_code, subs in group_subscriptions(subscriptions).items():
        records = records_for_group(buckets, group_code)
        key = group_key(group_code)
        last_hashes = state[key].hashes if key in state else []

        if not has_new_replacements(records, last_hashes):
            logger.debug("%s: nothing new (%d record(s))", group_code, len(records))
            continue

        logger.info("%s: %d replacement(s), notifying %d device(s)", group_code, len(records), len(subs))
        report.outcomes.extend(dispatch(group_code, records, subs, ctx.transport, ctx.directory))
        report.notified_groups.append(group_code)

        state[key] = GroupState(
            group_code=group_code,
            hashes=fingerprints(records),
            updated_at=ctx.now().astimezone(timezone.utc).isoformat(),
        )

    save_state(state, ctx.settings.state_file)
    logger.info("Done. %s", report.summary())
    return report


class SingleFlight:
    """
    Guard that skips a run while the previous one is still in progress.
    """

    def __init__(self, fn: Callable[[], RunReport]) -> None:
        self._fn = fn
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def __call__(self) -> Optional[RunReport]:
        if not self._lock.acquire(blocking=False):
            logger.warning("Previous run still in progress, skipping this tick")
            return None
        try:
            return self._fn()
        finally:
            self._lock.release()
