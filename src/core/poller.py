"""Polling fallback for messages missed by push delivery.

Every tick pulls, per connected account and tracked channel, the messages
newer than that channel's cursor. Messages are processed oldest first and
the cursor only moves forward. A tick that fires while the previous cycle is
still running is skipped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from core.config import PollConfig
from core.errors import TRANSIENT_ERRORS
from core.models import InboundMessage
from core.notify import Notifications
from core.ports import ConfigStorePort, SessionTransport
from core.session_pool import SessionPool

LOGGER = logging.getLogger(__name__)

MessageHandler = Callable[[str, InboundMessage], Awaitable[Any]]
DisconnectCallback = Callable[[str], None]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class PollSummary:
    channels: int = 0
    messages: int = 0
    hits: int = 0


class PollFallback:
    def __init__(
        self,
        pool: SessionPool,
        transport: SessionTransport,
        store: ConfigStorePort,
        handler: MessageHandler,
        on_disconnect: DisconnectCallback,
        notifications: Notifications,
        config: PollConfig,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._pool = pool
        self._transport = transport
        self._store = store
        self._handler = handler
        self._on_disconnect = on_disconnect
        self._notifications = notifications
        self._config = config
        self._sleep = sleep
        self._timer: Optional[asyncio.Task] = None
        self._cycle: Optional[asyncio.Task] = None
        self.skipped_ticks = 0

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle is not None and not self._cycle.done()

    def tick(self) -> bool:
        """Start a cycle unless one is already running."""

        if self.cycle_in_progress:
            self.skipped_ticks += 1
            LOGGER.debug("Poll cycle still running; skipping tick")
            return False
        self._cycle = asyncio.get_running_loop().create_task(self._guarded_cycle())
        return True

    async def _guarded_cycle(self) -> None:
        try:
            await self.run_cycle()
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("Poll cycle failed")

    async def _run(self) -> None:
        await self._sleep(self._config.initial_delay)
        while True:
            self.tick()
            await self._sleep(self._config.interval)

    def start(self) -> None:
        if self.is_running:
            return
        LOGGER.info("Starting poll fallback (every %ss)", self._config.interval)
        self._timer = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        for task in (self._timer, self._cycle):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._timer = None
        self._cycle = None

    async def run_cycle(self) -> PollSummary:
        summary = PollSummary()
        snapshot = self._store.read()
        channels = list(snapshot.get("channels", []))
        if not channels or not snapshot.get("terms"):
            LOGGER.debug("Nothing to poll: no channels or no terms configured")
            return summary

        for account_id in self._pool.connected_accounts():
            await self._poll_account(account_id, channels, summary)

        if summary.messages:
            LOGGER.info(
                "Poll cycle complete: channels=%s, messages=%s, hits=%s",
                summary.channels,
                summary.messages,
                summary.hits,
            )
        if summary.hits:
            self._notifications.send(
                f"Periodic check: {summary.messages} new message(s), {summary.hits} hit(s)"
            )
        return summary

    async def _poll_account(self, account_id: str, channels: list[str], summary: PollSummary) -> None:
        for channel in channels:
            handle = self._pool.get(account_id)
            session = self._pool.session(account_id)
            if handle is None or session is None:
                return
            cursor = session.cursors.get(channel, 0)
            try:
                messages = await self._transport.fetch_messages(
                    handle, channel, min_id=cursor, limit=self._config.page_size
                )
            except TRANSIENT_ERRORS:
                LOGGER.warning("Transport error polling %s for account %s", channel, account_id, exc_info=True)
                self._on_disconnect(account_id)
                return
            except Exception:
                LOGGER.exception("Failed to poll %s for account %s", channel, account_id)
                continue

            summary.channels += 1
            fresh = sorted(
                (message for message in messages if message.message_id > cursor),
                key=lambda message: message.message_id,
            )
            if not fresh:
                continue
            session.cursors[channel] = fresh[-1].message_id
            for message in fresh:
                summary.messages += 1
                try:
                    hit = await self._handler(account_id, message)
                except Exception:
                    LOGGER.exception("Error while processing polled message %s", message.message_id)
                    continue
                if hit is not None:
                    summary.hits += 1
