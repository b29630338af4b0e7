"""Exponential-backoff recovery of dropped sessions."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from core.config import ReconnectConfig
from core.models import ReconnectState
from core.notify import Notifications
from core.session_pool import SessionPool

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
RecoveredCallback = Callable[[str], Awaitable[None]]


class ReconnectSupervisor:
    """Re-establish dropped sessions, one recovery task per account.

    Attempt ``n`` waits ``base_delay * 2 ** (n - 1)`` seconds before trying.
    After ``max_attempts`` failures the account is given up and only
    ``retry`` (an operator action) starts a new cycle.
    """

    def __init__(
        self,
        pool: SessionPool,
        config: ReconnectConfig,
        notifications: Notifications,
        on_recovered: Optional[RecoveredCallback] = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._pool = pool
        self._config = config
        self._notifications = notifications
        self._on_recovered = on_recovered
        self._sleep = sleep
        self._states: dict[str, ReconnectState] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def state(self, account_id: str) -> ReconnectState:
        return self._states.get(account_id, ReconnectState())

    def is_reconnecting(self, account_id: str) -> bool:
        task = self._tasks.get(account_id)
        return task is not None and not task.done()

    def schedule(self, account_id: str) -> bool:
        """Start recovering ``account_id``; returns False when nothing was started."""

        if self.is_reconnecting(account_id):
            return False
        state = self._states.setdefault(account_id, ReconnectState())
        if state.given_up:
            LOGGER.warning("Account %s gave up reconnecting; operator retry required", account_id)
            return False
        self._pool.mark_disconnected(account_id)
        self._tasks[account_id] = asyncio.get_running_loop().create_task(self._recover(account_id))
        return True

    def retry(self, account_id: str) -> bool:
        """Operator action: clear a give-up and start a fresh cycle.

        Does nothing while a cycle is still running for the account.
        """

        if self.is_reconnecting(account_id):
            return False
        self._states[account_id] = ReconnectState()
        return self.schedule(account_id)

    async def _recover(self, account_id: str) -> None:
        state = self._states[account_id]
        while state.attempt < self._config.max_attempts:
            state.attempt += 1
            state.next_delay = self._config.delay_for(state.attempt)
            LOGGER.info(
                "Reconnect attempt %s/%s for account %s in %.1fs",
                state.attempt,
                self._config.max_attempts,
                account_id,
                state.next_delay,
            )
            await self._sleep(state.next_delay)
            try:
                await self._pool.reconnect(account_id)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                LOGGER.warning("Reconnect attempt %s for account %s failed: %s", state.attempt, account_id, exc)
                continue

            self._states[account_id] = ReconnectState()
            LOGGER.info("Account %s reconnected", account_id)
            self._notifications.send(f"Account {account_id} reconnected")
            if self._on_recovered is not None:
                try:
                    await self._on_recovered(account_id)
                except Exception:
                    LOGGER.exception("Failed to re-arm account %s after reconnect", account_id)
            return

        state.given_up = True
        state.next_delay = 0.0
        LOGGER.error("Giving up on account %s after %s reconnect attempts", account_id, state.attempt)
        self._notifications.send(
            f"Account {account_id} could not reconnect after {state.attempt} attempts; manual retry required"
        )

    async def cancel_all(self) -> None:
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._states.clear()
