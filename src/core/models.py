"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


class SessionHealth(str, enum.Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class ConnectStatus(str, enum.Enum):
    CONNECTED = "connected"
    AUTH_REQUIRED = "auth_required"
    ERROR = "error"


class ActionState(str, enum.Enum):
    """Lifecycle of a PendingAction inside the ActionQueue."""

    QUEUED = "queued"
    DELAYING = "delaying"
    DISPATCHED = "dispatched"
    DROPPED = "dropped"
    EXPIRED = "expired"
    FAILED = "failed"


@dataclass(frozen=True)
class ChannelRef:
    """Observed identity of the chat a message was posted in."""

    chat_id: Optional[str] = None
    username: Optional[str] = None

    def label(self) -> str:
        if self.username:
            return f"@{self.username}"
        return self.chat_id or "unknown"


@dataclass(frozen=True)
class InboundMessage:
    """Canonical form of a message, whichever path delivered it."""

    channel: ChannelRef
    message_id: int
    text: str
    sender_id: Optional[str]
    date: datetime


@dataclass(frozen=True)
class Hit:
    """A single detected term occurrence in one message."""

    channel: str
    term: str
    message_id: int
    date: datetime
    peer: Optional[str]
    text: str = ""


@dataclass
class PendingAction:
    """A queued, not-yet-decided report derived from a Hit."""

    id: str
    account_id: str
    channel: str
    peer: str
    message_id: int
    term: str
    enqueued_at: float
    state: ActionState = ActionState.QUEUED


@dataclass(frozen=True)
class ConnectResult:
    account_id: str
    status: ConnectStatus
    detail: Optional[str] = None


@dataclass
class Session:
    """One connected account. Cursors map tracked channel keys to message ids."""

    account_id: str
    handle: Any
    health: SessionHealth = SessionHealth.CONNECTED
    cursors: dict[str, int] = field(default_factory=dict)


@dataclass
class ReconnectState:
    attempt: int = 0
    next_delay: float = 0.0
    given_up: bool = False
