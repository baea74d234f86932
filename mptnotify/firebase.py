"""
Firebase adapters: Firestore as the token directory, FCM as the push transport.

Both wrap an explicitly initialized firebase_admin.App so that nothing in the
run depends on the SDK's default-app singleton.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

import firebase_admin
from firebase_admin import credentials, exceptions, firestore, messaging

from mptnotify.config import FCM_TOKENS_COLLECTION
from mptnotify.model import Subscription
from mptnotify.notify import TOKEN_INVALID, TOKEN_NOT_REGISTERED, DeliveryError


logger = logging.getLogger(__name__)

APP_NAME = "mptnotify"


def init_app(credentials_path: str | Path) -> firebase_admin.App:
    """
    Initialize (or reuse) the named app from a service-account JSON file.
    """
    try:
        return firebase_admin.get_app(APP_NAME)
    except ValueError:
        cred = credentials.Certificate(str(credentials_path))
        return firebase_admin.initialize_app(cred, name=APP_NAME)


class FirestoreTokenDirectory:
    """
    Subscriptions stored as documents {token, groupCode} in one collection.
    """

    def __init__(self, app: firebase_admin.App, collection: str = FCM_TOKENS_COLLECTION) -> None:
        self._db = firestore.client(app=app)
        self._collection = collection

    def snapshot(self) -> List[Subscription]:
        subs: List[Subscription] = []
        skipped = 0
        for doc in self._db.collection(self._collection).stream():
            sub = Subscription.from_document(doc.to_dict(), ref=doc.reference)
            if sub is None:
                skipped += 1
                continue
            subs.append(sub)
        if skipped:
            logger.debug("Skipped %d token documents without token/groupCode", skipped)
        return subs

    def delete(self, subscription: Subscription) -> None:
        subscription.ref.delete()


class FcmTransport:
    """
    FCM sender mapping SDK exceptions to DeliveryError codes.
    """

    def __init__(self, app: firebase_admin.App) -> None:
        self._app = app

    def send(self, token: str, title: str, body: str) -> None:
        message = messaging.Message(
            token=token,
            notification=messaging.Notification(title=title, body=body),
            android=messaging.AndroidConfig(priority="high"),
        )
        try:
            messaging.send(message, app=self._app)
        except messaging.UnregisteredError as e:
            raise DeliveryError(TOKEN_NOT_REGISTERED, str(e)) from e
        except exceptions.InvalidArgumentError as e:
            # INVALID_ARGUMENT also covers bad payloads; only a rejected token is permanent
            code = TOKEN_INVALID if "registration token" in str(e).lower() else "messaging/invalid-argument"
            raise DeliveryError(code, str(e)) from e
        except exceptions.FirebaseError as e:
            raise DeliveryError(f"messaging/{str(e.code).lower()}", str(e)) from e
