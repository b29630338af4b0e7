"""Admission-controlled, rate-limited report dispatcher.

The queue has exactly one consumer. It pops one action per tick, re-checks
admission and age, waits a random delay and only then calls the report
operation. Because a single task both checks and records the rate window, the
"never exceed the cap" invariant holds without locks.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections import deque
from typing import Awaitable, Callable, Optional

from core.config import QueueConfig
from core.dedup import RecentIds, build_action_id
from core.models import ActionState, Hit, PendingAction
from core.notify import Notifications
from core.ports import AuditLogPort
from core.rate_limit import DAY, RateLimiter

LOGGER = logging.getLogger(__name__)

ReportCall = Callable[[PendingAction], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


class ActionQueue:
    """FIFO of PendingActions drained by a single timer-driven consumer."""

    def __init__(
        self,
        config: QueueConfig,
        report: ReportCall,
        notifications: Notifications,
        *,
        audit_log: Optional[AuditLogPort] = None,
        clock: Callable[[], float] = time.time,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._config = config
        self._report = report
        self._notifications = notifications
        self._audit_log = audit_log
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._limiter = RateLimiter(config.max_reports_per_hour, config.max_reports_per_day, clock)
        self._queue: deque[PendingAction] = deque()
        # Ids stay known for a day so late duplicates from the poll path are ignored.
        self._known_ids = RecentIds(ttl=DAY, clock=clock)
        self._dispatched_ids = RecentIds(ttl=DAY, clock=clock)
        self._processing = False
        self._loop_task: Optional[asyncio.Task] = None
        self._in_flight: Optional[asyncio.Task] = None
        self.last_delay: Optional[float] = None

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def __len__(self) -> int:
        return len(self._queue)

    def enqueue(self, account_id: str, hit: Hit) -> Optional[PendingAction]:
        """Admit a report for ``hit`` or drop it; returns the queued action."""

        peer = hit.peer or hit.channel
        action_id = build_action_id(account_id, peer, hit.message_id, hit.term)
        if self._known_ids.is_seen(action_id):
            LOGGER.debug("Duplicate hit ignored for action %s", action_id)
            return None

        action = PendingAction(
            id=action_id,
            account_id=account_id,
            channel=hit.channel,
            peer=peer,
            message_id=hit.message_id,
            term=hit.term,
            enqueued_at=self._clock(),
        )
        if not self._limiter.can_send(account_id):
            action.state = ActionState.DROPPED
            LOGGER.warning(
                "Report budget exhausted for account %s; dropping '%s' in %s",
                account_id,
                hit.term,
                hit.channel,
            )
            self._notifications.send(
                f"Report limit reached for account {account_id}. "
                f"Report for \"{hit.term}\" in {hit.channel} was dropped."
            )
            return None

        self._known_ids.mark_seen(action_id)
        self._queue.append(action)
        LOGGER.info(
            "Report queued: '%s' in %s (position %s)", hit.term, hit.channel, len(self._queue)
        )
        return action

    async def process_next(self) -> Optional[PendingAction]:
        """Pop and settle at most one action. Returns it with its final state."""

        if self._processing or not self._queue:
            return None
        self._processing = True
        try:
            action = self._queue.popleft()
            age = self._clock() - action.enqueued_at
            if age > self._config.action_ttl:
                action.state = ActionState.EXPIRED
                LOGGER.info("Report expired after %.0fs: '%s' in %s", age, action.term, action.channel)
                return action

            if not self._limiter.can_send(action.account_id):
                action.state = ActionState.DROPPED
                LOGGER.warning("Report budget exhausted at dispatch for account %s", action.account_id)
                self._notifications.send(
                    f"Report limit reached for account {action.account_id} at dispatch time. "
                    f"Report for \"{action.term}\" in {action.channel} was dropped."
                )
                return action

            action.state = ActionState.DELAYING
            delay = self._rng.uniform(self._config.report_delay_min, self._config.report_delay_max)
            self.last_delay = delay
            LOGGER.info("Waiting %.0fs before reporting message %s", delay, action.message_id)
            try:
                await self._sleep(delay)
            except asyncio.CancelledError:
                action.state = ActionState.DROPPED
                LOGGER.warning("Abandoning delayed report for message %s in %s", action.message_id, action.channel)
                raise

            # Once the call starts it is shielded from cancellation so stop()
            # never abandons a report half-way.
            self._in_flight = asyncio.ensure_future(self._dispatch(action))
            await asyncio.shield(self._in_flight)
            return action
        finally:
            self._processing = False

    async def _dispatch(self, action: PendingAction) -> None:
        if self._dispatched_ids.is_seen(action.id):
            LOGGER.warning("Action %s was already dispatched; skipping", action.id)
            return
        self._dispatched_ids.mark_seen(action.id)
        try:
            await self._report(action)
        except Exception as exc:
            action.state = ActionState.FAILED
            LOGGER.exception("Report failed for message %s in %s", action.message_id, action.channel)
            self._record(action, error=str(exc) or exc.__class__.__name__)
            self._notifications.send(
                f"Report failed for message {action.message_id} in {action.channel}: {exc}"
            )
            return

        self._limiter.record(action.account_id)
        action.state = ActionState.DISPATCHED
        self._record(action)
        LOGGER.info("Report sent: '%s' in %s (message %s)", action.term, action.channel, action.message_id)
        self._notifications.send(f"Report sent for message {action.message_id} in {action.channel}")

    def _record(self, action: PendingAction, error: Optional[str] = None) -> None:
        if self._audit_log is None:
            return
        try:
            self._audit_log.save_report(action, error)
        except Exception:
            LOGGER.exception("Failed to write report audit row for %s", action.id)

    async def _run(self) -> None:
        while True:
            await self._sleep(self._config.tick_interval)
            try:
                await self.process_next()
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Error while processing report queue")

    def start(self) -> None:
        if self.is_running:
            return
        self._loop_task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> int:
        """Stop the consumer and discard queued actions; returns how many."""

        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._in_flight is not None and not self._in_flight.done():
            LOGGER.info("Waiting for in-flight report to complete")
            await self._in_flight
        self._in_flight = None

        discarded = len(self._queue)
        if discarded:
            LOGGER.warning("Discarding %s queued report(s); those hits will not be reported", discarded)
        for action in self._queue:
            action.state = ActionState.DROPPED
        self._queue.clear()
        return discarded

    def status(self, account_ids: Optional[list[str]] = None) -> dict:
        accounts = list(dict.fromkeys([*(account_ids or []), *self._limiter.accounts()]))
        per_account = {}
        for account_id in accounts:
            counts = self._limiter.counts(account_id)
            per_account[account_id] = {
                "reports_this_hour": counts.hourly,
                "reports_today": counts.daily,
                "can_send_more": self._limiter.can_send(account_id),
            }
        return {
            "queue_length": len(self._queue),
            "is_processing": self._processing,
            "per_account": per_account,
        }
