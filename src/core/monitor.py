"""Monitoring service wiring sessions, ingestion, polling and the report queue.

Everything lives on one explicitly constructed object with a start/stop
lifecycle; there are no module-level registries.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, Optional

from core.action_queue import ActionQueue
from core.config import MonitorConfig
from core.errors import ReportFailed
from core.ingest import EventIngest
from core.models import ConnectResult, ConnectStatus, PendingAction
from core.notify import Notifications
from core.poller import PollFallback
from core.ports import AuditLogPort, ConfigStorePort, NotifierPort, SessionTransport
from core.processor import MessageProcessor
from core.reconnect import ReconnectSupervisor
from core.session_pool import SessionPool
from core.stats import StatsCollector

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class MonitorService:
    def __init__(
        self,
        store: ConfigStorePort,
        transport: SessionTransport,
        notifier: Optional[NotifierPort],
        config: Optional[MonitorConfig] = None,
        *,
        audit_log: Optional[AuditLogPort] = None,
        pool: Optional[SessionPool] = None,
        clock: Callable[[], float] = time.time,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._config = config or MonitorConfig()
        self._store = store
        self._transport = transport
        self.notifications = Notifications(notifier)
        self.pool = pool or SessionPool(transport, store)
        self.stats = StatsCollector(store)
        self.queue = ActionQueue(
            self._config.queue,
            self._report,
            self.notifications,
            audit_log=audit_log,
            clock=clock,
            sleep=sleep,
            rng=rng,
        )
        self.processor = MessageProcessor(
            store, self.stats, self.queue, self.notifications, audit_log=audit_log
        )
        self.supervisor = ReconnectSupervisor(
            self.pool,
            self._config.reconnect,
            self.notifications,
            on_recovered=self._on_recovered,
            sleep=sleep,
        )
        self.ingest = EventIngest(self.pool, transport, self.processor.handle, self._on_disconnect)
        self.poller = PollFallback(
            self.pool,
            transport,
            store,
            self.processor.handle,
            self._on_disconnect,
            self.notifications,
            self._config.poll,
            sleep=sleep,
        )
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    async def start(self) -> dict:
        if self._active:
            LOGGER.warning("Monitoring is already running")
            return {"success": False, "message": "Monitoring is already running"}

        results: list[ConnectResult] = await self.pool.connect_all()
        connected = [result for result in results if result.status is ConnectStatus.CONNECTED]
        if not connected:
            LOGGER.warning("No connected accounts; monitoring not started")
            return {"success": False, "message": "No connected accounts", "results": results}

        for result in connected:
            self.ingest.attach(result.account_id)
        self._active = True
        self.poller.start()
        self.queue.start()

        LOGGER.info("Monitoring started with %s account(s)", len(connected))
        self.notifications.send(f"Monitoring started\nConnected accounts: {len(connected)}")
        return {"success": True, "connected_accounts": len(connected), "results": results}

    async def stop(self) -> dict:
        if not self._active:
            LOGGER.warning("Monitoring is already stopped")
            return {"success": False, "message": "Monitoring is already stopped"}

        self._active = False
        self.ingest.detach_all()
        await self.poller.stop()
        await self.supervisor.cancel_all()
        discarded = await self.queue.stop()

        LOGGER.info("Monitoring stopped")
        self.notifications.send("Monitoring stopped")
        return {"success": True, "discarded_reports": discarded}

    async def shutdown(self) -> None:
        """Stop monitoring (if active), flush alerts and release sessions."""

        if self._active:
            await self.stop()
        await self.notifications.flush()
        await self.pool.disconnect_all()

    def _on_disconnect(self, account_id: str) -> None:
        if not self._active:
            return
        self.supervisor.schedule(account_id)

    async def _on_recovered(self, account_id: str) -> None:
        if self._active:
            self.ingest.attach(account_id)

    async def _report(self, action: PendingAction) -> None:
        handle = self.pool.get(action.account_id)
        if handle is None:
            raise ReportFailed(f"No live session for account {action.account_id}")
        await self._transport.report(handle, action.peer, action.message_id)

    def retry_account(self, account_id: str) -> bool:
        """Operator action: restart recovery of an account that gave up."""

        return self.supervisor.retry(account_id)

    def get_status(self) -> dict:
        snapshot = self._store.read()
        return {
            "active": self._active,
            "connected_accounts": len(self.pool.connected_accounts()),
            "total_accounts": len(snapshot.get("accounts", [])),
            "tracked_channel_count": len(snapshot.get("channels", [])),
            "term_count": len(snapshot.get("terms", [])),
            "mode": snapshot.get("mode"),
        }

    def get_queue_status(self) -> dict:
        account_ids = [account["id"] for account in self._store.read().get("accounts", [])]
        return self.queue.status(account_ids)
