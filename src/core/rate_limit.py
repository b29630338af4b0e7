"""Per-account sliding-window report budgets."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

HOUR = 60 * 60
DAY = 24 * HOUR


@dataclass(frozen=True)
class WindowCounts:
    hourly: int
    daily: int


class RateLimiter:
    """Track dispatch timestamps per account and answer admission questions.

    Only the single queue consumer records dispatches, so the history needs
    no locking.
    """

    def __init__(self, max_per_hour: int, max_per_day: int, clock: Callable[[], float]) -> None:
        self._max_per_hour = max_per_hour
        self._max_per_day = max_per_day
        self._clock = clock
        self._history: dict[str, list[float]] = {}

    def _prune(self, account_id: str) -> list[float]:
        history = self._history.get(account_id)
        if history is None:
            return []
        day_ago = self._clock() - DAY
        recent = [stamp for stamp in history if stamp > day_ago]
        if recent:
            self._history[account_id] = recent
        else:
            del self._history[account_id]
        return recent

    def counts(self, account_id: str) -> WindowCounts:
        recent = self._prune(account_id)
        hour_ago = self._clock() - HOUR
        hourly = sum(1 for stamp in recent if stamp > hour_ago)
        return WindowCounts(hourly=hourly, daily=len(recent))

    def can_send(self, account_id: str) -> bool:
        counts = self.counts(account_id)
        return counts.hourly < self._max_per_hour and counts.daily < self._max_per_day

    def record(self, account_id: str) -> None:
        recent = self._prune(account_id)
        recent.append(self._clock())
        self._history[account_id] = recent

    def accounts(self) -> list[str]:
        return list(self._history)
