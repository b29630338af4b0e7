"""Fire-and-forget wrapper around a notifier port."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from core.ports import NotifierPort

LOGGER = logging.getLogger(__name__)


class Notifications:
    """Schedule operator alerts without blocking the caller.

    Delivery failures are logged and never surfaced. ``flush`` waits for the
    alerts that are still in flight, which keeps shutdown and tests
    deterministic.
    """

    def __init__(self, notifier: Optional[NotifierPort]) -> None:
        self._notifier = notifier
        self._pending: set[asyncio.Task] = set()

    def send(self, text: str) -> None:
        if self._notifier is None:
            LOGGER.debug("No notifier configured, dropping alert: %s", text)
            return
        task = asyncio.get_running_loop().create_task(self._deliver(text))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, text: str) -> None:
        try:
            await self._notifier.notify(text)
        except Exception:
            LOGGER.exception("Failed to deliver operator notification")

    async def flush(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
