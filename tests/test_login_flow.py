from __future__ import annotations

import asyncio

import pytest

from core.errors import LoginError
from core.login import InputKind, LoginFlow, LoginState


def test_request_waits_for_submitted_value() -> None:
    async def scenario() -> tuple[str, str]:
        flow = LoginFlow()

        async def driver() -> tuple[str, str]:
            phone = await flow.request(InputKind.PHONE)
            code = await flow.request(InputKind.CODE)
            flow.complete("acc")
            return phone, code

        task = asyncio.ensure_future(driver())
        await asyncio.sleep(0)
        assert flow.needs_input and flow.pending is InputKind.PHONE
        flow.submit(" +100 ")
        assert not flow.needs_input
        await asyncio.sleep(0)
        assert flow.pending is InputKind.CODE
        flow.submit("12345")
        result = await task
        assert flow.state is LoginState.COMPLETED
        assert flow.account_id == "acc"
        return result

    assert asyncio.run(scenario()) == ("+100", "12345")


def test_submit_without_open_request_is_rejected() -> None:
    flow = LoginFlow()
    with pytest.raises(LoginError):
        flow.submit("12345")


def test_cancel_unblocks_pending_request() -> None:
    async def scenario() -> LoginFlow:
        flow = LoginFlow()
        task = asyncio.ensure_future(flow.request(InputKind.PASSWORD))
        await asyncio.sleep(0)
        flow.cancel()
        with pytest.raises(LoginError):
            await task
        return flow

    flow = asyncio.run(scenario())
    assert flow.state is LoginState.FAILED
    assert flow.error == "Login cancelled"


def test_finished_flow_refuses_new_requests() -> None:
    async def scenario() -> None:
        flow = LoginFlow()
        flow.fail("bad code")
        with pytest.raises(LoginError):
            await flow.request(InputKind.CODE)

    asyncio.run(scenario())
