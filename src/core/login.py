"""Login flow as an explicit state machine.

The driver that talks to Telegram never captures a callback waiting for the
operator. Instead it calls ``request(kind)``, which moves the flow into an
``AWAITING_INPUT`` state and waits on a queue; whichever collaborator talks to
the operator reads ``pending`` and delivers the value through ``submit``.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Optional

from core.errors import LoginError

LOGGER = logging.getLogger(__name__)


class LoginState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_INPUT = "awaiting_input"
    COMPLETED = "completed"
    FAILED = "failed"


class InputKind(str, enum.Enum):
    PHONE = "phone"
    CODE = "code"
    PASSWORD = "password"


_CANCELLED = object()


class LoginFlow:
    def __init__(self) -> None:
        self.state = LoginState.IDLE
        self.pending: Optional[InputKind] = None
        self.error: Optional[str] = None
        self.account_id: Optional[str] = None
        self._inputs: asyncio.Queue = asyncio.Queue()

    @property
    def finished(self) -> bool:
        return self.state in (LoginState.COMPLETED, LoginState.FAILED)

    @property
    def needs_input(self) -> bool:
        """True while a request is open and no answer has been queued yet."""

        return self.state is LoginState.AWAITING_INPUT and self._inputs.empty()

    def _transition(self, state: LoginState, pending: Optional[InputKind] = None) -> None:
        self.state = state
        self.pending = pending

    async def request(self, kind: InputKind) -> str:
        """Wait until the operator supplies input of ``kind``."""

        if self.finished:
            raise LoginError(f"Login flow already {self.state.value}")
        self._transition(LoginState.AWAITING_INPUT, kind)
        LOGGER.debug("Login flow awaiting %s", kind.value)
        value = await self._inputs.get()
        if value is _CANCELLED:
            raise LoginError(self.error or "Login cancelled")
        self._transition(LoginState.IDLE)
        return value

    def submit(self, value: str) -> None:
        if not self.needs_input:
            raise LoginError(f"Login flow is not awaiting input (state: {self.state.value})")
        self._inputs.put_nowait(value.strip())

    def complete(self, account_id: str) -> None:
        self.account_id = account_id
        self._transition(LoginState.COMPLETED)

    def fail(self, error: str) -> None:
        self.error = error
        self._transition(LoginState.FAILED)

    def cancel(self, reason: str = "Login cancelled") -> None:
        if self.finished:
            return
        waiting = self.state is LoginState.AWAITING_INPUT
        self.fail(reason)
        if waiting:
            self._inputs.put_nowait(_CANCELLED)

