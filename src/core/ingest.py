"""Push ingestion: one listener per live session."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from core.errors import TRANSIENT_ERRORS
from core.models import InboundMessage
from core.ports import SessionTransport
from core.session_pool import SessionPool

LOGGER = logging.getLogger(__name__)

MessageHandler = Callable[[str, InboundMessage], Awaitable[Any]]
DisconnectCallback = Callable[[str], None]


@dataclass
class _Attachment:
    handle: Any
    token: Any
    watcher: Optional[asyncio.Task]


class EventIngest:
    """Attach exactly one push listener per session and forward its messages.

    Each delivered event is normalized by the transport and handed to the
    message handler immediately. Transport failures inside the listener and
    the session's own disconnect signal are reported through ``on_disconnect``.
    """

    def __init__(
        self,
        pool: SessionPool,
        transport: SessionTransport,
        handler: MessageHandler,
        on_disconnect: DisconnectCallback,
    ) -> None:
        self._pool = pool
        self._transport = transport
        self._handler = handler
        self._on_disconnect = on_disconnect
        self._attached: dict[str, _Attachment] = {}

    def is_attached(self, account_id: str) -> bool:
        return account_id in self._attached

    def attach(self, account_id: str) -> bool:
        handle = self._pool.get(account_id)
        if handle is None:
            LOGGER.error("No live session for account %s; listener not attached", account_id)
            return False
        self.detach(account_id)

        async def listener(event: Any) -> None:
            await self._on_event(account_id, event)

        token = self._transport.add_listener(handle, listener)
        watcher = asyncio.get_running_loop().create_task(self._watch(account_id, handle))
        self._attached[account_id] = _Attachment(handle=handle, token=token, watcher=watcher)
        LOGGER.info("Listener attached for account %s", account_id)
        return True

    def detach(self, account_id: str) -> None:
        attachment = self._attached.pop(account_id, None)
        if attachment is None:
            return
        if attachment.watcher is not None:
            attachment.watcher.cancel()
        self._remove_listener(account_id, attachment)

    def _remove_listener(self, account_id: str, attachment: _Attachment) -> None:
        try:
            self._transport.remove_listener(attachment.handle, attachment.token)
        except Exception:
            LOGGER.exception("Failed to remove listener for account %s", account_id)

    def detach_all(self) -> None:
        for account_id in list(self._attached):
            self.detach(account_id)

    async def _watch(self, account_id: str, handle: Any) -> None:
        try:
            await self._transport.wait_disconnected(handle)
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("Disconnect watcher failed for account %s", account_id)
        attachment = self._attached.get(account_id)
        if attachment is None or attachment.handle is not handle:
            return
        LOGGER.warning("Session for account %s disconnected", account_id)
        del self._attached[account_id]
        self._remove_listener(account_id, attachment)
        self._on_disconnect(account_id)

    async def _on_event(self, account_id: str, event: Any) -> None:
        try:
            message = await self._transport.to_inbound(event)
            if message is None:
                return
            await self._handler(account_id, message)
        except TRANSIENT_ERRORS:
            LOGGER.warning("Transport error while handling event for account %s", account_id, exc_info=True)
            self._on_disconnect(account_id)
        except Exception:
            LOGGER.exception("Error while processing message for account %s", account_id)
