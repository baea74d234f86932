"""
Notification dispatch.

For one group with new replacements, build the push message and deliver it
to every subscribed device. Each device is handled on its own:

- sent    -> nothing else to do
- pruned  -> the token is permanently invalid, its directory entry is deleted
             (best effort, a failing delete is only logged)
- failed  -> any other delivery error, logged and left alone
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Sequence

from mptnotify.model import ReplacementRecord, Subscription


logger = logging.getLogger(__name__)

TOKEN_INVALID = "messaging/invalid-registration-token"
TOKEN_NOT_REGISTERED = "messaging/registration-token-not-registered"
PERMANENT_TOKEN_ERRORS = frozenset({TOKEN_INVALID, TOKEN_NOT_REGISTERED})

SENT = "sent"
PRUNED = "pruned"
FAILED = "failed"


class DeliveryError(Exception):
    """Raised by a push transport when one message could not be delivered."""

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code


class PushTransport(Protocol):
    def send(self, token: str, title: str, body: str) -> None:
        """Deliver one message or raise DeliveryError."""


class TokenDirectory(Protocol):
    def snapshot(self) -> List[Subscription]:
        """Return every usable subscription."""

    def delete(self, subscription: Subscription) -> None:
        """Remove one subscription from the directory."""


@dataclass
class Notification:
    title: str
    body: str


@dataclass
class DeliveryOutcome:
    subscription: Subscription
    status: str
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Message composition
# ---------------------------------------------------------------------------


def format_replacement(r: ReplacementRecord) -> str:
    return f"{r.change_date}: Пара {r.lesson_number}: {r.replace_from} → {r.replace_to}"


def build_notification(records: Sequence[ReplacementRecord]) -> Notification:
    """
    One record -> the record itself, several -> a count summary.
    """
    if len(records) == 1:
        return Notification(title="Новая замена в расписании", body=format_replacement(records[0]))
    return Notification(title="Новые замены в расписании", body=f"Обнаружено новых замен: {len(records)}")


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


def _prune(directory: TokenDirectory, sub: Subscription) -> None:
    try:
        directory.delete(sub)
    except Exception as e:
        logger.warning("Could not delete stale token for %s: %s", sub.group_code, e)


def dispatch(
    group_code: str,
    records: Sequence[ReplacementRecord],
    subscriptions: Iterable[Subscription],
    transport: PushTransport,
    directory: TokenDirectory,
) -> List[DeliveryOutcome]:
    """
    Send the notification for group_code to each subscription.

    A failure for one token never stops the remaining ones.
    """
    notification = build_notification(records)
    outcomes: List[DeliveryOutcome] = []

    for sub in subscriptions:
        try:
            transport.send(sub.token, notification.title, notification.body)
        except DeliveryError as e:
            if e.code in PERMANENT_TOKEN_ERRORS:
                logger.info("Token for %s is no longer valid (%s), removing it", group_code, e.code)
                _prune(directory, sub)
                outcomes.append(DeliveryOutcome(sub, PRUNED, e.code))
            else:
                logger.warning("Push to %s failed: %s", group_code, e)
                outcomes.append(DeliveryOutcome(sub, FAILED, e.code))
            continue
        except Exception as e:
            logger.warning("Push to %s failed: %s", group_code, e)
            outcomes.append(DeliveryOutcome(sub, FAILED, str(e)))
            continue

        outcomes.append(DeliveryOutcome(sub, SENT))

    return outcomes
