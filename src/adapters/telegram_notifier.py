"""Telegram notification adapter for Saved Messages.

Formats a Markdown message and sends it to the Saved Messages of the first
connected account.
"""

from __future__ import annotations

import logging

from adapters.notification_formatting import format_notification
from core.session_pool import SessionPool

LOGGER = logging.getLogger(__name__)


class TelegramSavedMessagesNotifier:
    """Notifier adapter that sends messages to an account's Saved Messages."""

    def __init__(self, pool: SessionPool) -> None:
        self._pool = pool

    async def notify(self, text: str) -> None:
        """Send the formatted alert to Saved Messages."""

        for account_id in self._pool.connected_accounts():
            client = self._pool.get(account_id)
            if client is None:
                continue
            message = format_notification(text, mode="markdown")
            await client.send_message("me", message, parse_mode="md")
            return
        LOGGER.debug("No connected account to deliver notification")
