from __future__ import annotations

import asyncio
from typing import Any

import pytest

from core.errors import AuthorizationRequired
from core.models import ConnectStatus, SessionHealth
from core.session_pool import SessionPool


class FakeStore:
    def __init__(self, account_ids: list[str]) -> None:
        self.accounts = [{"id": account_id} for account_id in account_ids]

    def read(self) -> dict:
        return {"accounts": list(self.accounts), "channels": [], "terms": [], "mode": "test", "stats": {}}


class FakeTransport:
    """Connects ``ok*`` accounts, rejects ``auth*`` and errors on anything else."""

    def __init__(self) -> None:
        self.connects: list[str] = []
        self.disconnected: list[Any] = []

    async def connect(self, account: dict) -> Any:
        account_id = account["id"]
        self.connects.append(account_id)
        if account_id.startswith("ok"):
            return f"handle-{account_id}-{len(self.connects)}"
        if account_id.startswith("auth"):
            raise AuthorizationRequired(account_id)
        raise RuntimeError("network unreachable")

    async def disconnect(self, handle: Any) -> None:
        self.disconnected.append(handle)


def test_connect_all_reports_each_account() -> None:
    transport = FakeTransport()
    pool = SessionPool(transport, FakeStore(["ok1", "auth1", "broken"]))

    results = asyncio.run(pool.connect_all())

    statuses = {result.account_id: result.status for result in results}
    assert statuses == {
        "ok1": ConnectStatus.CONNECTED,
        "auth1": ConnectStatus.AUTH_REQUIRED,
        "broken": ConnectStatus.ERROR,
    }
    assert [result.detail for result in results if result.account_id == "broken"] == ["network unreachable"]
    assert pool.connected_accounts() == ["ok1"]
    assert pool.get("ok1") == "handle-ok1-1"
    assert pool.get("auth1") is None


def test_connect_all_skips_live_sessions() -> None:
    transport = FakeTransport()
    pool = SessionPool(transport, FakeStore(["ok1"]))

    async def scenario() -> None:
        await pool.connect_all()
        await pool.connect_all()

    asyncio.run(scenario())
    assert transport.connects == ["ok1"]


def test_mark_disconnected_hides_handle() -> None:
    pool = SessionPool(FakeTransport(), FakeStore(["ok1"]))
    asyncio.run(pool.connect_all())

    assert pool.mark_disconnected("ok1")
    assert not pool.mark_disconnected("ok1")
    assert pool.get("ok1") is None
    assert pool.health("ok1") is SessionHealth.DISCONNECTED
    assert pool.connected_accounts() == []


def test_reconnect_replaces_handle_and_keeps_cursors() -> None:
    transport = FakeTransport()
    pool = SessionPool(transport, FakeStore(["ok1"]))

    async def scenario() -> None:
        await pool.connect_all()
        pool.session("ok1").cursors["@chan"] = 42
        pool.mark_disconnected("ok1")
        await pool.reconnect("ok1")

    asyncio.run(scenario())

    assert transport.disconnected == ["handle-ok1-1"]
    assert pool.get("ok1") == "handle-ok1-2"
    assert pool.session("ok1").cursors == {"@chan": 42}


def test_reconnect_raises_on_failure() -> None:
    pool = SessionPool(FakeTransport(), FakeStore(["auth1", "broken"]))

    with pytest.raises(AuthorizationRequired):
        asyncio.run(pool.reconnect("auth1"))
    with pytest.raises(ConnectionError):
        asyncio.run(pool.reconnect("broken"))
    with pytest.raises(LookupError):
        asyncio.run(pool.reconnect("missing"))


def test_disconnect_all_releases_handles() -> None:
    transport = FakeTransport()
    pool = SessionPool(transport, FakeStore(["ok1", "ok2"]))

    async def scenario() -> None:
        await pool.connect_all()
        await pool.disconnect_all()

    asyncio.run(scenario())

    assert sorted(transport.disconnected) == ["handle-ok1-1", "handle-ok2-2"]
    assert pool.session("ok1") is None
    assert pool.health("ok2") is SessionHealth.DISCONNECTED


def test_connect_all_releases_stale_handle() -> None:
    transport = FakeTransport()
    pool = SessionPool(transport, FakeStore(["ok1"]))

    async def scenario() -> None:
        await pool.connect_all()
        pool.session("ok1").cursors["@chan"] = 7
        pool.mark_disconnected("ok1")
        await pool.connect_all()
        await pool.disconnect_all()

    asyncio.run(scenario())

    assert transport.disconnected == ["handle-ok1-1", "handle-ok1-2"]
