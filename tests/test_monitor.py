from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional

from core.config import MonitorConfig, ReconnectConfig
from core.models import ChannelRef, InboundMessage
from core.monitor import MonitorService


class FakeStore:
    def __init__(self, accounts: list[str], mode: str = "run") -> None:
        self.accounts = [{"id": account_id} for account_id in accounts]
        self.channels = ["@channel1"]
        self.terms = ["spam"]
        self.mode = mode
        self.stats: dict[str, dict[str, int]] = {}

    def read(self) -> dict:
        return {
            "accounts": list(self.accounts),
            "channels": list(self.channels),
            "terms": list(self.terms),
            "mode": self.mode,
            "stats": {channel: dict(words) for channel, words in self.stats.items()},
        }

    def increment_stat(self, channel: str, term: str) -> None:
        words = self.stats.setdefault(channel, {})
        words[term] = words.get(term, 0) + 1

    def clear_stats(self) -> None:
        self.stats = {}


class FakeHandle:
    def __init__(self, account_id: str, generation: int) -> None:
        self.account_id = account_id
        self.generation = generation
        self.listener = None
        self.dropped: Optional[asyncio.Future] = None


class FakeTransport:
    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []
        self.reports: list[tuple[str, str, int]] = []

    async def connect(self, account: dict) -> FakeHandle:
        handle = FakeHandle(account["id"], len(self.handles) + 1)
        self.handles.append(handle)
        return handle

    async def disconnect(self, handle: FakeHandle) -> None:
        pass

    def add_listener(self, handle: FakeHandle, callback) -> Any:
        handle.listener = callback
        return callback

    def remove_listener(self, handle: FakeHandle, token: Any) -> None:
        handle.listener = None

    async def wait_disconnected(self, handle: FakeHandle) -> None:
        if handle.dropped is None:
            handle.dropped = asyncio.get_running_loop().create_future()
        await handle.dropped

    async def to_inbound(self, event: Any) -> Optional[InboundMessage]:
        return event

    async def fetch_messages(self, handle: Any, channel: str, min_id: int, limit: int) -> list[InboundMessage]:
        return []

    async def report(self, handle: FakeHandle, peer: str, message_id: int) -> None:
        self.reports.append((handle.account_id, peer, message_id))


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[str] = []

    async def notify(self, text: str) -> None:
        self.sent.append(text)


def _message(message_id: int, text: str) -> InboundMessage:
    return InboundMessage(
        channel=ChannelRef(chat_id="-1001234567890", username="channel1"),
        message_id=message_id,
        text=text,
        sender_id="1",
        date=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_start_without_accounts_fails() -> None:
    monitor = MonitorService(FakeStore([]), FakeTransport(), FakeNotifier())

    result = asyncio.run(monitor.start())

    assert result["success"] is False
    assert not monitor.is_active


def test_pushed_hit_is_queued_and_discarded_on_stop() -> None:
    store = FakeStore(["acc"])
    transport = FakeTransport()
    notifier = FakeNotifier()
    monitor = MonitorService(store, transport, notifier)

    async def scenario() -> tuple[dict, dict, dict, dict]:
        started = await monitor.start()
        await transport.handles[0].listener(_message(1, "buy spam now"))
        await transport.handles[0].listener(_message(1, "buy spam now"))
        status = monitor.get_status()
        queue_status = monitor.get_queue_status()
        stopped = await monitor.stop()
        await monitor.shutdown()
        return started, status, queue_status, stopped

    started, status, queue_status, stopped = asyncio.run(scenario())

    assert started["success"] is True
    assert started["connected_accounts"] == 1
    assert status == {
        "active": True,
        "connected_accounts": 1,
        "total_accounts": 1,
        "tracked_channel_count": 1,
        "term_count": 1,
        "mode": "run",
    }
    assert queue_status["queue_length"] == 1
    assert queue_status["per_account"]["acc"]["can_send_more"] is True
    assert stopped == {"success": True, "discarded_reports": 1}
    assert store.stats == {"@channel1": {"spam": 2}}
    assert transport.reports == []
    assert notifier.sent[0].startswith("Monitoring started")
    assert notifier.sent[-1] == "Monitoring stopped"


def test_dropped_session_is_reconnected_and_listener_rearmed() -> None:
    store = FakeStore(["acc"], mode="test")
    transport = FakeTransport()
    notifier = FakeNotifier()
    config = MonitorConfig(reconnect=ReconnectConfig(base_delay=0.0))
    monitor = MonitorService(store, transport, notifier, config)

    async def scenario() -> None:
        await monitor.start()
        await asyncio.sleep(0)
        transport.handles[0].dropped.set_result(None)
        for _ in range(50):
            if len(transport.handles) == 2 and monitor.ingest.is_attached("acc"):
                break
            await asyncio.sleep(0)
        await transport.handles[1].listener(_message(2, "spam again"))
        await monitor.shutdown()

    asyncio.run(scenario())

    assert len(transport.handles) == 2
    assert transport.handles[0].listener is None
    assert store.stats == {"@channel1": {"spam": 1}}
    assert "Account acc reconnected" in notifier.sent
    assert any(text.endswith("Test mode: report not sent") for text in notifier.sent)
