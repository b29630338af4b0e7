"""Deduplication helpers (core domain)."""

from __future__ import annotations

from typing import Callable


def build_action_id(account_id: str, peer: str, message_id: int, term: str) -> str:
    """Return the deterministic id of the report for one hit.

    Push and poll paths produce the same id for the same message, which is
    what lets the queue dispatch each hit at most once.
    """

    return f"{account_id}:{peer}:{message_id}:{term.lower()}"


class RecentIds:
    """In-memory seen-set with time-based cleanup."""

    def __init__(self, ttl: float, clock: Callable[[], float]) -> None:
        self._ttl = ttl
        self._clock = clock
        self._seen: dict[str, float] = {}

    def is_seen(self, key: str) -> bool:
        self.cleanup()
        return key in self._seen

    def mark_seen(self, key: str) -> None:
        self._seen.setdefault(key, self._clock())

    def forget(self, key: str) -> None:
        self._seen.pop(key, None)

    def cleanup(self) -> int:
        """Delete expired ids and return the number removed."""

        cutoff = self._clock() - self._ttl
        expired = [key for key, first_seen in self._seen.items() if first_seen < cutoff]
        for key in expired:
            del self._seen[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._seen)
