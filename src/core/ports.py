"""Ports (interfaces) used by the core.

Ports define the minimal contracts for storage, session transport and
notification adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol

from core.models import Hit, InboundMessage, PendingAction

EventCallback = Callable[[Any], Awaitable[None]]


class ConfigStorePort(Protocol):
    """Persistent configuration document used by the monitor.

    ``read`` returns a full snapshot with the keys ``accounts``, ``channels``,
    ``terms``, ``mode`` and ``stats``. Each mutating call is atomic on its own;
    nothing is isolated across a snapshot and later writes.
    """

    def read(self) -> dict:
        ...

    def add_account(self, account: dict) -> None:
        ...

    def remove_account(self, account_id: str) -> None:
        ...

    def add_channel(self, channel: str) -> bool:
        ...

    def remove_channel(self, channel: str) -> bool:
        ...

    def add_terms(self, terms: Iterable[str]) -> list[str]:
        ...

    def remove_terms(self, terms: Iterable[str]) -> list[str]:
        ...

    def clear_terms(self) -> None:
        ...

    def set_mode(self, mode: str) -> None:
        ...

    def increment_stat(self, channel: str, term: str) -> None:
        ...

    def clear_stats(self) -> None:
        ...


class AuditLogPort(Protocol):
    """Optional append-only log of hits and report outcomes."""

    def save_hit(self, account_id: str, hit: Hit) -> None:
        ...

    def save_report(self, action: PendingAction, error: Optional[str] = None) -> None:
        ...


class SessionTransport(Protocol):
    """Connection-level operations performed against one account session."""

    async def connect(self, account: dict) -> Any:
        """Return a connected handle or raise AuthorizationRequired."""
        ...

    async def disconnect(self, handle: Any) -> None:
        ...

    def add_listener(self, handle: Any, callback: EventCallback) -> Any:
        ...

    def remove_listener(self, handle: Any, token: Any) -> None:
        ...

    async def wait_disconnected(self, handle: Any) -> None:
        ...

    async def to_inbound(self, event: Any) -> Optional[InboundMessage]:
        ...

    async def fetch_messages(
        self, handle: Any, channel: str, min_id: int, limit: int
    ) -> list[InboundMessage]:
        ...

    async def report(self, handle: Any, peer: str, message_id: int) -> None:
        """Flag one message; raise ReportFailed on error."""
        ...


class NotifierPort(Protocol):
    """Operator notification channel."""

    async def notify(self, text: str) -> None:
        ...
