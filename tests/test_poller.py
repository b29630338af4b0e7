from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional

from core.config import PollConfig
from core.models import ChannelRef, InboundMessage
from core.notify import Notifications
from core.poller import PollFallback
from core.session_pool import SessionPool


class FakeStore:
    def __init__(self, channels: list[str], terms: list[str]) -> None:
        self.channels = channels
        self.terms = terms

    def read(self) -> dict:
        return {
            "accounts": [{"id": "acc"}],
            "channels": list(self.channels),
            "terms": list(self.terms),
            "mode": "test",
            "stats": {},
        }


class FakeTransport:
    def __init__(self) -> None:
        self.pages: dict[str, list[InboundMessage]] = {}
        self.requests: list[tuple[str, int, int]] = []
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    async def connect(self, account: dict) -> Any:
        return "handle"

    async def disconnect(self, handle: Any) -> None:
        pass

    async def fetch_messages(self, handle: Any, channel: str, min_id: int, limit: int) -> list[InboundMessage]:
        self.requests.append((channel, min_id, limit))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.pages.get(channel, []))


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[str] = []

    async def notify(self, text: str) -> None:
        self.sent.append(text)


class RecordingHandler:
    def __init__(self, hit_ids: set[int]) -> None:
        self.hit_ids = hit_ids
        self.seen: list[tuple[str, int]] = []

    async def __call__(self, account_id: str, message: InboundMessage) -> Optional[str]:
        self.seen.append((account_id, message.message_id))
        return "hit" if message.message_id in self.hit_ids else None


def _message(message_id: int) -> InboundMessage:
    return InboundMessage(
        channel=ChannelRef(chat_id="-1001234567890"),
        message_id=message_id,
        text=f"message {message_id}",
        sender_id=None,
        date=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def _build(store: FakeStore, transport: FakeTransport, handler: RecordingHandler):
    notifier = FakeNotifier()
    notifications = Notifications(notifier)
    disconnects: list[str] = []
    pool = SessionPool(transport, store)
    poller = PollFallback(
        pool,
        transport,
        store,
        handler,
        disconnects.append,
        notifications,
        PollConfig(page_size=20),
    )
    return poller, pool, notifications, notifier, disconnects


def test_cycle_processes_new_messages_oldest_first() -> None:
    store = FakeStore(["-1001234567890"], ["spam"])
    transport = FakeTransport()
    transport.pages["-1001234567890"] = [_message(13), _message(9), _message(11), _message(12)]
    handler = RecordingHandler(hit_ids={12})
    poller, pool, notifications, notifier, _ = _build(store, transport, handler)

    async def scenario():
        await pool.connect_all()
        pool.session("acc").cursors["-1001234567890"] = 10
        summary = await poller.run_cycle()
        await notifications.flush()
        return summary

    summary = asyncio.run(scenario())

    assert handler.seen == [("acc", 11), ("acc", 12), ("acc", 13)]
    assert transport.requests == [("-1001234567890", 10, 20)]
    assert pool.session("acc").cursors["-1001234567890"] == 13
    assert (summary.channels, summary.messages, summary.hits) == (1, 3, 1)
    assert notifier.sent == ["Periodic check: 3 new message(s), 1 hit(s)"]


def test_cursor_only_moves_forward() -> None:
    store = FakeStore(["@chan"], ["spam"])
    transport = FakeTransport()
    transport.pages["@chan"] = [_message(5), _message(6)]
    handler = RecordingHandler(hit_ids=set())
    poller, pool, notifications, notifier, _ = _build(store, transport, handler)

    async def scenario() -> None:
        await pool.connect_all()
        await poller.run_cycle()
        await poller.run_cycle()
        await notifications.flush()

    asyncio.run(scenario())

    assert handler.seen == [("acc", 5), ("acc", 6)]
    assert [request[1] for request in transport.requests] == [0, 6]
    assert notifier.sent == []


def test_nothing_polled_without_channels_or_terms() -> None:
    transport = FakeTransport()
    handler = RecordingHandler(hit_ids=set())
    poller, pool, _, _, _ = _build(FakeStore(["@chan"], []), transport, handler)

    async def scenario():
        await pool.connect_all()
        return await poller.run_cycle()

    summary = asyncio.run(scenario())

    assert summary.channels == 0
    assert transport.requests == []


def test_transport_error_reports_disconnect() -> None:
    store = FakeStore(["@chan", "@other"], ["spam"])
    transport = FakeTransport()
    transport.error = ConnectionError("socket closed")
    handler = RecordingHandler(hit_ids=set())
    poller, pool, _, _, disconnects = _build(store, transport, handler)

    async def scenario() -> None:
        await pool.connect_all()
        await poller.run_cycle()

    asyncio.run(scenario())

    assert disconnects == ["acc"]
    assert len(transport.requests) == 1


def test_other_errors_skip_only_that_channel() -> None:
    store = FakeStore(["@missing", "@chan"], ["spam"])
    transport = FakeTransport()
    handler = RecordingHandler(hit_ids=set())
    poller, pool, _, _, disconnects = _build(store, transport, handler)

    async def fetch(handle: Any, channel: str, min_id: int, limit: int) -> list[InboundMessage]:
        transport.requests.append((channel, min_id, limit))
        if channel == "@missing":
            raise ValueError("Cannot find any entity")
        return [_message(1)]

    transport.fetch_messages = fetch

    async def scenario() -> None:
        await pool.connect_all()
        await poller.run_cycle()

    asyncio.run(scenario())

    assert disconnects == []
    assert [request[0] for request in transport.requests] == ["@missing", "@chan"]
    assert handler.seen == [("acc", 1)]


def test_tick_is_skipped_while_cycle_runs() -> None:
    store = FakeStore(["@chan"], ["spam"])
    transport = FakeTransport()
    handler = RecordingHandler(hit_ids=set())
    poller, pool, _, _, _ = _build(store, transport, handler)

    async def scenario() -> tuple[bool, bool]:
        await pool.connect_all()
        transport.gate = asyncio.Event()
        first = poller.tick()
        await asyncio.sleep(0)
        second = poller.tick()
        transport.gate.set()
        await poller.stop()
        return first, second

    first, second = asyncio.run(scenario())

    assert (first, second) == (True, False)
    assert poller.skipped_ticks == 1
    assert len(transport.requests) == 1
