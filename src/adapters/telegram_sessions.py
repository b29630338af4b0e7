"""Telethon implementation of the core SessionTransport port."""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from telethon import TelegramClient, errors, events, functions, types
from telethon.sessions import StringSession

from adapters.telegram_mapper import build_inbound, build_inbound_from_event, channel_ref_from_entity
from client import build_client, load_session
from core.errors import AuthorizationRequired, ReportFailed
from core.models import InboundMessage
from core.ports import EventCallback

LOGGER = logging.getLogger(__name__)

REPORT_COMMENT = "Automatic spam report"
# Option selection can branch a few times before the server accepts a report.
_MAX_REPORT_STEPS = 4


def entity_key(channel: str) -> Union[str, int, types.PeerChannel]:
    """Translate a tracked channel key into something get_entity accepts."""

    key = channel.strip()
    if key.startswith("@"):
        return key
    value = int(key)
    if value > 0:
        # Bare internal ids only exist for channels and supergroups.
        return types.PeerChannel(value)
    return value


def _choose_option(result: types.ReportResultChooseOption) -> bytes:
    for choice in result.options:
        if "spam" in (choice.text or "").lower():
            return choice.option
    return result.options[0].option


class TelethonTransport:
    def __init__(self, api_id: int, api_hash: str, sessions_dir: str) -> None:
        self._api_id = api_id
        self._api_hash = api_hash
        self._sessions_dir = sessions_dir

    def _session_for(self, account: dict) -> StringSession:
        return load_session(self._sessions_dir, account["id"])

    async def connect(self, account: dict) -> TelegramClient:
        client = build_client(self._session_for(account), self._api_id, self._api_hash)
        await client.connect()
        if not await client.is_user_authorized():
            await client.disconnect()
            raise AuthorizationRequired(f"Account {account['id']} is not authorized")
        # Touch the dialog list once so the entity cache can resolve chats.
        await client.get_dialogs(limit=1)
        return client

    async def disconnect(self, handle: TelegramClient) -> None:
        await handle.disconnect()

    def add_listener(self, handle: TelegramClient, callback: EventCallback) -> Any:
        handle.add_event_handler(callback, events.NewMessage(incoming=True))
        return callback

    def remove_listener(self, handle: TelegramClient, token: Any) -> None:
        handle.remove_event_handler(token)

    async def wait_disconnected(self, handle: TelegramClient) -> None:
        await handle.disconnected

    async def to_inbound(self, event: Any) -> Optional[InboundMessage]:
        return await build_inbound_from_event(getattr(event, "message", None))

    async def fetch_messages(
        self, handle: TelegramClient, channel: str, min_id: int, limit: int
    ) -> list[InboundMessage]:
        try:
            entity = await handle.get_entity(entity_key(channel))
        except ValueError:
            LOGGER.warning("Channel %s could not be resolved; skipping", channel)
            return []
        ref = channel_ref_from_entity(entity)
        if min_id > 0:
            # Oldest first from the cursor, so a backlog larger than one page
            # is drained over the following ticks instead of skipped.
            messages = await handle.get_messages(entity, limit=limit, min_id=min_id, reverse=True)
        else:
            # No cursor yet: only the latest page, never the channel history.
            messages = await handle.get_messages(entity, limit=limit)
        inbound = []
        for message in messages:
            mapped = build_inbound(message, ref)
            if mapped is not None:
                inbound.append(mapped)
        return inbound

    async def report(self, handle: TelegramClient, peer: str, message_id: int) -> None:
        try:
            entity = await handle.get_input_entity(entity_key(peer))
            option = b""
            comment = ""
            for _ in range(_MAX_REPORT_STEPS):
                result = await handle(
                    functions.messages.ReportRequest(
                        peer=entity, id=[message_id], option=option, message=comment
                    )
                )
                if isinstance(result, types.ReportResultReported):
                    return
                if isinstance(result, types.ReportResultChooseOption):
                    option = _choose_option(result)
                elif isinstance(result, types.ReportResultAddComment):
                    option = result.option
                    comment = REPORT_COMMENT
                else:
                    return
        except (errors.RPCError, ValueError) as exc:
            raise ReportFailed(str(exc)) from exc
        raise ReportFailed(f"Report for message {message_id} was not accepted")
