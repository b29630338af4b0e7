"""Telegram client factory and session files for reportwatch.

Every managed account has its own StringSession stored under
``<data dir>/sessions/<account id>.session``. The account id is the md5 of
the phone number, so logging in with the same phone reuses the same file.
"""

from __future__ import annotations

import hashlib
import logging
import os

from telethon import TelegramClient
from telethon.sessions import StringSession

LOGGER = logging.getLogger(__name__)


def account_id_for_phone(phone: str) -> str:
    return hashlib.md5(phone.strip().encode("utf-8")).hexdigest()


def session_path(sessions_dir: str, account_id: str) -> str:
    return os.path.join(sessions_dir, f"{account_id}.session")


def load_session(sessions_dir: str, account_id: str) -> StringSession:
    """Load a stored session, falling back to an empty one."""

    path = session_path(sessions_dir, account_id)
    if not os.path.exists(path):
        return StringSession()
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return StringSession(handle.read().strip())
    except (OSError, ValueError):
        LOGGER.exception("Failed to load session %s", account_id)
        return StringSession()


def save_session(sessions_dir: str, account_id: str, client: TelegramClient) -> str:
    os.makedirs(sessions_dir, exist_ok=True)
    path = session_path(sessions_dir, account_id)
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(StringSession.save(client.session))
    LOGGER.info("Session %s saved", account_id)
    return path


def build_client(session: StringSession, api_id: int, api_hash: str) -> TelegramClient:
    """Create a Telethon client for one account session.

    Telethon's own retry settings cover short blips; longer outages are left
    to the reconnect supervisor.
    """

    return TelegramClient(
        session,
        api_id,
        api_hash,
        connection_retries=5,
        retry_delay=2,
        request_retries=5,
        flood_sleep_threshold=60,
        timeout=60,
    )
