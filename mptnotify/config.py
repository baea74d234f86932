"""
Runtime configuration.

Everything comes from the environment (optionally a .env file in the working
directory, real environment variables win). CLI flags may override single
values afterwards via dataclasses.replace().
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from mptnotify.scrape import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT, REPLACEMENTS_URL


DEFAULT_CRON = "0 * * * *"
FCM_TOKENS_COLLECTION = "fcm_tokens"
DEFAULT_CREDENTIALS = "firebase-service-account.json"


class MissingCredentialsError(RuntimeError):
    """Raised when the service-account file cannot be found."""


@dataclass(frozen=True)
class Settings:
    replacements_url: str = REPLACEMENTS_URL
    fetch_timeout: float = DEFAULT_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    state_file: Path = Path("data") / "last_replacements.json"
    credentials_path: Path = Path(DEFAULT_CREDENTIALS)
    tokens_collection: str = FCM_TOKENS_COLLECTION
    cron_schedule: str = DEFAULT_CRON
    run_once: bool = False
    log_level: str = "INFO"

    def require_credentials(self) -> Path:
        if not self.credentials_path.is_file():
            raise MissingCredentialsError(
                f"Firebase service account not found at {self.credentials_path}. "
                "Set GOOGLE_APPLICATION_CREDENTIALS or place "
                f"{DEFAULT_CREDENTIALS} in the working directory."
            )
        return self.credentials_path


def _is_truthy(value: Optional[str]) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"} if value else False


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environ (defaults to os.environ after loading .env).
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    data_dir = Path(environ.get("DATA_DIR") or "./data")
    state_file = environ.get("STATE_FILE") or str(data_dir / "last_replacements.json")

    raw_timeout = environ.get("FETCH_TIMEOUT") or DEFAULT_TIMEOUT
    try:
        fetch_timeout = float(raw_timeout)
    except ValueError:
        raise ValueError(f"FETCH_TIMEOUT must be a number of seconds, got {raw_timeout!r}") from None

    return Settings(
        replacements_url=environ.get("REPLACEMENTS_URL") or REPLACEMENTS_URL,
        fetch_timeout=fetch_timeout,
        user_agent=environ.get("USER_AGENT") or DEFAULT_USER_AGENT,
        state_file=Path(state_file),
        credentials_path=Path(environ.get("GOOGLE_APPLICATION_CREDENTIALS") or DEFAULT_CREDENTIALS),
        tokens_collection=environ.get("FCM_TOKENS_COLLECTION") or FCM_TOKENS_COLLECTION,
        cron_schedule=environ.get("CRON_SCHEDULE") or DEFAULT_CRON,
        run_once=_is_truthy(environ.get("RUN_ONCE")),
        log_level=(environ.get("LOG_LEVEL") or "INFO").upper(),
    )
