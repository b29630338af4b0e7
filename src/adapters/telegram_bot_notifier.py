"""Telegram Bot API notification adapter.

Uses the Bot API for delivery so operator alerts can be routed via a bot chat.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request
from typing import Iterable

from adapters.notification_formatting import format_notification

LOGGER = logging.getLogger(__name__)


class TelegramBotNotifier:
    """Notifier adapter that sends messages via the Telegram Bot API."""

    def __init__(self, bot_token: str, chat_ids: Iterable[str]) -> None:
        self._bot_token = bot_token
        self._chat_ids = [str(chat_id) for chat_id in chat_ids if str(chat_id).strip()]

    def _endpoint(self) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/sendMessage"

    def _post(self, chat_id: str, message: str) -> None:
        payload = {
            "chat_id": chat_id,
            "text": message,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._endpoint(), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(request, timeout=10):
                pass
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise RuntimeError(f"Bot API error {e.code}: {body}") from e

    async def notify(self, text: str) -> None:
        """Send the formatted alert to every admin chat via the Bot API."""

        message = format_notification(text, mode="html")
        for chat_id in self._chat_ids:
            # The blocking HTTP call runs in a worker thread to keep the
            # event loop responsive for listeners and the report queue.
            try:
                await asyncio.to_thread(self._post, chat_id, message)
            except (RuntimeError, OSError):
                LOGGER.exception("Failed to notify admin chat %s", chat_id)
