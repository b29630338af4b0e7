"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the core pipeline.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from telethon import utils
from telethon.tl.custom import Message

from core.channel_keys import normalize_username
from core.models import ChannelRef, InboundMessage

LOGGER = logging.getLogger(__name__)


def channel_ref_from_entity(entity: Any) -> ChannelRef:
    """Build the observed identity of a resolved chat entity."""

    chat_id = None
    try:
        chat_id = str(utils.get_peer_id(entity))
    except (TypeError, ValueError):
        entity_id = getattr(entity, "id", None)
        if entity_id is not None:
            chat_id = str(entity_id)
    return ChannelRef(chat_id=chat_id, username=normalize_username(getattr(entity, "username", None)))


def channel_ref_from_message(message: Message, chat: Any = None) -> ChannelRef:
    chat = chat if chat is not None else getattr(message, "chat", None)
    username = getattr(chat, "username", None)
    chat_id = getattr(message, "chat_id", None)
    return ChannelRef(
        chat_id=str(chat_id) if chat_id is not None else None,
        username=normalize_username(username if isinstance(username, str) else None),
    )


def _sender_id(message: Message) -> Optional[str]:
    sender_id = getattr(message, "sender_id", None)
    return str(sender_id) if sender_id is not None else None


def build_inbound(message: Message, channel: Optional[ChannelRef] = None) -> Optional[InboundMessage]:
    """Build a core InboundMessage from a Telethon Message.

    Returns None when the chat cannot be identified at all; such messages are
    skipped rather than guessed at.
    """

    ref = channel or channel_ref_from_message(message)
    if ref.chat_id is None and ref.username is None:
        LOGGER.warning("Skipping message %s with unresolvable chat", getattr(message, "id", "?"))
        return None
    return InboundMessage(
        channel=ref,
        message_id=int(message.id),
        text=getattr(message, "raw_text", None) or "",
        sender_id=_sender_id(message),
        date=getattr(message, "date", None) or datetime.now(timezone.utc),
    )


async def build_inbound_from_event(message: Optional[Message]) -> Optional[InboundMessage]:
    """Resolve the chat of a pushed message (for its username) and map it."""

    if message is None:
        return None
    chat = getattr(message, "chat", None)
    if chat is None and hasattr(message, "get_chat"):
        try:
            chat = await message.get_chat()
        except ValueError:
            # Entity not in the session cache; the numeric id still matches.
            LOGGER.debug("Could not resolve chat for message %s", getattr(message, "id", "?"))
    return build_inbound(message, channel_ref_from_message(message, chat))
