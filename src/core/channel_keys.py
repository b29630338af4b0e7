"""Helpers for working with tracked channel keys.

A tracked channel is stored exactly as the operator entered it, in one of
three surface forms: a bare internal id (``1234567890``), a broadcast peer id
(``-1001234567890``) or a public username (``@channel``). Matching never
rewrites the stored value; it compares identities instead.
"""

from __future__ import annotations

from typing import Iterable, Optional

from core.errors import InvalidChannelKey
from core.models import ChannelRef

BROADCAST_PREFIX = "-100"


def _is_int(value: str) -> bool:
    digits = value[1:] if value.startswith("-") else value
    return digits.isdigit()


def bare_chat_id(chat_id: str) -> str:
    """Strip the broadcast prefix from a peer id, if it has one."""

    if chat_id.startswith(BROADCAST_PREFIX) and chat_id[len(BROADCAST_PREFIX):].isdigit():
        return chat_id[len(BROADCAST_PREFIX):]
    return chat_id


def normalize_username(username: Optional[str]) -> Optional[str]:
    if not username:
        return None
    username = username.strip().lstrip("@").lower()
    return username or None


def parse_channel_key(value: str) -> ChannelRef:
    """Parse operator input into a ChannelRef, rejecting unknown forms."""

    key = (value or "").strip()
    if key.startswith("@"):
        username = normalize_username(key)
        if not username:
            raise InvalidChannelKey(f"Empty username in channel key: {value!r}")
        return ChannelRef(chat_id=None, username=username)
    if _is_int(key):
        return ChannelRef(chat_id=key, username=None)
    raise InvalidChannelKey(f"Channel key must be a numeric id or @username: {value!r}")


def same_channel(left: ChannelRef, right: ChannelRef) -> bool:
    """Return True when two references identify the same chat.

    Ids are compared after stripping the broadcast prefix, usernames are
    compared case-insensitively. Either agreement is sufficient.
    """

    if left.chat_id and right.chat_id:
        if left.chat_id == right.chat_id or bare_chat_id(left.chat_id) == bare_chat_id(right.chat_id):
            return True
    left_username = normalize_username(left.username)
    right_username = normalize_username(right.username)
    return bool(left_username) and left_username == right_username


def channel_matches(tracked: str, observed: ChannelRef) -> bool:
    """Return True when the configured key refers to the observed chat."""

    if observed.chat_id is not None and tracked == observed.chat_id:
        return True
    try:
        configured = parse_channel_key(tracked)
    except InvalidChannelKey:
        return False
    return same_channel(configured, observed)


def find_tracked(tracked_channels: Iterable[str], observed: ChannelRef) -> Optional[str]:
    """Return the first configured key that matches the observed chat."""

    for tracked in tracked_channels:
        if channel_matches(tracked, observed):
            return tracked
    return None
