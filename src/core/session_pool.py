"""Ownership of connected account sessions.

The pool never talks to Telegram itself; it delegates connecting and
disconnecting to a SessionTransport and keeps the health and cursor state of
every account it manages.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from core.errors import AuthorizationRequired
from core.models import ConnectResult, ConnectStatus, Session, SessionHealth
from core.ports import ConfigStorePort, SessionTransport

LOGGER = logging.getLogger(__name__)


class SessionPool:
    def __init__(self, transport: SessionTransport, store: ConfigStorePort) -> None:
        self._transport = transport
        self._store = store
        self._sessions: dict[str, Session] = {}

    def _account(self, account_id: str) -> Optional[dict]:
        for account in self._store.read().get("accounts", []):
            if account.get("id") == account_id:
                return account
        return None

    async def _open(self, account: dict) -> ConnectResult:
        account_id = account["id"]
        # A session marked disconnected may still hold a live client.
        await self._release(account_id)
        try:
            handle = await self._transport.connect(account)
        except AuthorizationRequired:
            LOGGER.warning("Account %s requires a new login", account_id)
            return ConnectResult(account_id, ConnectStatus.AUTH_REQUIRED)
        except Exception as exc:
            LOGGER.exception("Failed to connect account %s", account_id)
            return ConnectResult(account_id, ConnectStatus.ERROR, str(exc) or exc.__class__.__name__)

        previous = self._sessions.get(account_id)
        cursors = previous.cursors if previous else {}
        self._sessions[account_id] = Session(account_id=account_id, handle=handle, cursors=cursors)
        LOGGER.info("Account %s connected", account_id)
        return ConnectResult(account_id, ConnectStatus.CONNECTED)

    async def connect_all(self) -> list[ConnectResult]:
        """Connect every stored account; one failure never blocks the rest."""

        results = []
        for account in self._store.read().get("accounts", []):
            if self.get(account["id"]) is not None:
                results.append(ConnectResult(account["id"], ConnectStatus.CONNECTED))
                continue
            results.append(await self._open(account))
        return results

    async def reconnect(self, account_id: str) -> None:
        """Replace the handle of one account; raises when it cannot connect."""

        account = self._account(account_id)
        if account is None:
            raise LookupError(f"Account {account_id} is no longer configured")
        await self._release(account_id)
        result = await self._open(account)
        if result.status is ConnectStatus.AUTH_REQUIRED:
            raise AuthorizationRequired(f"Account {account_id} requires a new login")
        if result.status is ConnectStatus.ERROR:
            raise ConnectionError(result.detail or f"Account {account_id} failed to connect")

    def get(self, account_id: str) -> Any:
        session = self._sessions.get(account_id)
        if session is None or session.health is not SessionHealth.CONNECTED:
            return None
        return session.handle

    def session(self, account_id: str) -> Optional[Session]:
        return self._sessions.get(account_id)

    def health(self, account_id: str) -> SessionHealth:
        session = self._sessions.get(account_id)
        return session.health if session else SessionHealth.DISCONNECTED

    def connected_accounts(self) -> list[str]:
        return [
            account_id
            for account_id, session in self._sessions.items()
            if session.health is SessionHealth.CONNECTED
        ]

    def mark_disconnected(self, account_id: str) -> bool:
        """Flag a session as dropped; returns False if it already was."""

        session = self._sessions.get(account_id)
        if session is None or session.health is SessionHealth.DISCONNECTED:
            return False
        session.health = SessionHealth.DISCONNECTED
        LOGGER.warning("Account %s marked disconnected", account_id)
        return True

    async def _release(self, account_id: str) -> None:
        session = self._sessions.get(account_id)
        if session is None or session.handle is None:
            return
        handle, session.handle = session.handle, None
        session.health = SessionHealth.DISCONNECTED
        try:
            await self._transport.disconnect(handle)
        except Exception:
            LOGGER.exception("Error while disconnecting account %s", account_id)

    async def disconnect(self, account_id: str) -> None:
        await self._release(account_id)
        self._sessions.pop(account_id, None)

    async def disconnect_all(self) -> None:
        for account_id in list(self._sessions):
            await self.disconnect(account_id)
