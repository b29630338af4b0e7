"""Core message processing pipeline.

This module is integration-agnostic. It only relies on ports for storage and
notifications, enabling future frontends or adapters without changes here.
"""

from __future__ import annotations

import logging
from typing import Optional

from core.action_queue import ActionQueue
from core.matcher import TermSet, match_message
from core.models import Hit, InboundMessage
from core.notify import Notifications
from core.ports import AuditLogPort, ConfigStorePort
from core.stats import StatsCollector

LOGGER = logging.getLogger(__name__)

MODE_TEST = "test"
MODE_RUN = "run"


def _snippet(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class MessageProcessor:
    """Orchestrates matching, stats, audit logging, notifications and queueing."""

    def __init__(
        self,
        store: ConfigStorePort,
        stats: StatsCollector,
        queue: ActionQueue,
        notifications: Notifications,
        *,
        audit_log: Optional[AuditLogPort] = None,
        snippet_chars: int = 100,
    ) -> None:
        self._store = store
        self._stats = stats
        self._queue = queue
        self._notifications = notifications
        self._audit_log = audit_log
        self._snippet_chars = snippet_chars

    async def handle(self, account_id: str, message: InboundMessage) -> Optional[Hit]:
        """Process one message; returns the Hit when a term matched."""

        # Media-only messages without captions are ignored
        if not message.text.strip():
            return None

        # Each message sees a fresh snapshot so operator edits apply immediately.
        snapshot = self._store.read()
        hit = match_message(message, TermSet(snapshot.get("terms", [])), snapshot.get("channels", []))
        if hit is None:
            return None

        LOGGER.info("Term '%s' found in %s (message %s)", hit.term, hit.channel, hit.message_id)
        try:
            self._stats.record_hit(hit)
        except Exception:
            LOGGER.exception("Failed to record stats for %s/%s", hit.channel, hit.term)
        if self._audit_log is not None:
            try:
                self._audit_log.save_hit(account_id, hit)
            except Exception:
                LOGGER.exception("Failed to write hit audit row for message %s", hit.message_id)

        lines = [
            f"Term found: \"{hit.term}\"",
            f"Channel: {hit.channel}",
            f"Text: {_snippet(hit.text, self._snippet_chars)}",
        ]
        if snapshot.get("mode") == MODE_RUN:
            self._notifications.send("\n".join(lines))
            self._queue.enqueue(account_id, hit)
        else:
            LOGGER.info("Test mode: report not sent for '%s' in %s", hit.term, hit.channel)
            lines.append("Test mode: report not sent")
            self._notifications.send("\n".join(lines))
        return hit
