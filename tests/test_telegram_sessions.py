from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest
from telethon import functions, types

from adapters.telegram_sessions import REPORT_COMMENT, TelethonTransport, entity_key
from core.errors import ReportFailed


class FakeClient:
    def __init__(self, results: list[Any]) -> None:
        self.results = list(results)
        self.requests: list[functions.messages.ReportRequest] = []
        self.resolved: list[Any] = []

    async def get_input_entity(self, key: Any) -> Any:
        self.resolved.append(key)
        return "input-peer"

    async def __call__(self, request: functions.messages.ReportRequest) -> Any:
        self.requests.append(request)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _transport() -> TelethonTransport:
    return TelethonTransport(1, "hash", "/tmp/sessions")


def test_entity_key_forms() -> None:
    assert entity_key("@channel1") == "@channel1"
    assert entity_key("-1001234567890") == -1001234567890
    peer = entity_key("1234567890")
    assert isinstance(peer, types.PeerChannel)
    assert peer.channel_id == 1234567890


def test_report_negotiates_option_and_comment() -> None:
    client = FakeClient(
        [
            types.ReportResultChooseOption(
                title="Why?",
                options=[
                    types.MessageReportOption(text="Violence", option=b"v"),
                    types.MessageReportOption(text="Spam", option=b"s"),
                ],
            ),
            types.ReportResultAddComment(option=b"s1"),
            types.ReportResultReported(),
        ]
    )

    asyncio.run(_transport().report(client, "-1001234567890", 42))

    assert client.resolved == [-1001234567890]
    assert [request.option for request in client.requests] == [b"", b"s", b"s1"]
    assert client.requests[-1].message == REPORT_COMMENT
    assert all(request.id == [42] for request in client.requests)


def test_report_errors_become_report_failed() -> None:
    client = FakeClient([ValueError("Could not find the input entity")])
    with pytest.raises(ReportFailed):
        asyncio.run(_transport().report(client, "@gone", 1))


def test_report_gives_up_after_endless_options() -> None:
    choose = types.ReportResultChooseOption(
        title="Why?", options=[types.MessageReportOption(text="Other", option=b"o")]
    )
    client = FakeClient([choose] * 10)
    with pytest.raises(ReportFailed):
        asyncio.run(_transport().report(client, "@chan", 1))
    assert len(client.requests) == 4


class DummyMessage:
    def __init__(self, message_id: int) -> None:
        self.id = message_id
        self.chat_id = -1001234567890
        self.raw_text = f"message {message_id}"
        self.sender_id = 1
        self.date = datetime(2024, 1, 1, tzinfo=timezone.utc)


class HistoryClient:
    def __init__(self, messages: list[DummyMessage]) -> None:
        self.messages = messages
        self.calls: list[dict] = []

    async def get_entity(self, key: Any) -> Any:
        return types.PeerChannel(1234567890)

    async def get_messages(self, entity: Any, **kwargs: Any) -> list[DummyMessage]:
        self.calls.append(kwargs)
        return list(self.messages)


def test_fetch_pages_forward_from_cursor() -> None:
    client = HistoryClient([DummyMessage(11), DummyMessage(12)])

    inbound = asyncio.run(_transport().fetch_messages(client, "1234567890", min_id=10, limit=20))

    assert client.calls == [{"limit": 20, "min_id": 10, "reverse": True}]
    assert [message.message_id for message in inbound] == [11, 12]
    assert inbound[0].channel.chat_id == "-1001234567890"


def test_fetch_without_cursor_takes_latest_page_only() -> None:
    client = HistoryClient([DummyMessage(99)])

    asyncio.run(_transport().fetch_messages(client, "@chan", min_id=0, limit=20))

    assert client.calls == [{"limit": 20}]
