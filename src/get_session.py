"""Account login for reportwatch.

The Telethon driver runs against a LoginFlow and only ever asks the flow for
input; the console collaborator below answers those requests. Another
frontend can drive the same flow by calling ``flow.submit``.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from getpass import getpass
from typing import Optional

import qrcode
from telethon import TelegramClient, errors
from telethon.sessions import StringSession

from client import account_id_for_phone, build_client, save_session
from core.login import InputKind, LoginFlow, LoginState
from core.ports import ConfigStorePort

LOGGER = logging.getLogger(__name__)

QR_TIMEOUT = 120
INPUT_POLL_INTERVAL = 0.2


def _print_qr(url: str) -> None:
    qr = qrcode.QRCode(border=1)
    qr.add_data(url)
    qr.make(fit=True)
    qr.print_ascii(invert=True)


async def _sign_in_with_password(flow: LoginFlow, client: TelegramClient) -> None:
    password = await flow.request(InputKind.PASSWORD)
    await client.sign_in(password=password)


async def _authorize_with_phone(flow: LoginFlow, client: TelegramClient) -> str:
    phone = await flow.request(InputKind.PHONE)
    await client.send_code_request(phone)
    code = await flow.request(InputKind.CODE)
    try:
        await client.sign_in(phone=phone, code=code)
    except errors.SessionPasswordNeededError:
        await _sign_in_with_password(flow, client)
    return phone


async def _authorize_with_qr(flow: LoginFlow, client: TelegramClient) -> None:
    qr = await client.qr_login()
    _print_qr(qr.url)
    try:
        await qr.wait(timeout=QR_TIMEOUT)
    except errors.SessionPasswordNeededError:
        await _sign_in_with_password(flow, client)


async def login_account(
    flow: LoginFlow,
    store: ConfigStorePort,
    *,
    api_id: int,
    api_hash: str,
    sessions_dir: str,
    method: str = "phone",
) -> Optional[str]:
    """Drive one login to completion and register the account.

    Returns the new account id, or None when the flow failed.
    """

    client = build_client(StringSession(), api_id, api_hash)
    try:
        await client.connect()
        phone = None
        if method == "qr":
            await _authorize_with_qr(flow, client)
        else:
            phone = await _authorize_with_phone(flow, client)

        me = await client.get_me()
        phone = phone or (f"+{me.phone}" if getattr(me, "phone", None) else str(me.id))
        account_id = account_id_for_phone(phone)
        path = save_session(sessions_dir, account_id, client)
        store.add_account(
            {
                "id": account_id,
                "phone": phone,
                "user_id": str(me.id),
                "username": me.username,
                "first_name": me.first_name,
                "last_name": me.last_name,
                "session_file": path,
                "added_at": datetime.now(timezone.utc).isoformat(),
            }
        )
        LOGGER.info("Account %s added (%s)", account_id, me.first_name)
        flow.complete(account_id)
        return account_id
    except Exception as exc:
        LOGGER.exception("Login failed")
        flow.fail(str(exc) or exc.__class__.__name__)
        return None
    finally:
        await client.disconnect()


def _console_answer(kind: InputKind) -> str:
    if kind is InputKind.PHONE:
        return os.getenv("PHONE") or input("Phone number (international format): ").strip()
    if kind is InputKind.CODE:
        return input("Login code: ").strip()
    return os.getenv("2FA") or getpass("2FA password: ")


def _pick_login_method() -> str:
    method = (os.getenv("LOGIN_METHOD") or "").strip().lower()
    if method in {"qr", "phone"}:
        return method
    while True:
        print("")
        print("Login methods:")
        print("[1] QR code")
        print("[2] Phone code")
        print("[3] Exit")
        print("Select a login method: \n")
        choice = input("reportwatch > ").strip()
        if choice == "1":
            return "qr"
        elif choice == "2":
            return "phone"
        elif choice == "3":
            raise SystemExit(0)
        else:
            print("Invalid option. Please choose 1, 2, or 3.")


async def console_login(store: ConfigStorePort, *, api_id: int, api_hash: str, sessions_dir: str) -> Optional[str]:
    """Run a login flow answered from the terminal."""

    flow = LoginFlow()
    method = _pick_login_method()
    driver = asyncio.create_task(
        login_account(flow, store, api_id=api_id, api_hash=api_hash, sessions_dir=sessions_dir, method=method)
    )
    try:
        while not flow.finished and not driver.done():
            if flow.needs_input and flow.pending is not None:
                answer = await asyncio.to_thread(_console_answer, flow.pending)
                if flow.needs_input:
                    flow.submit(answer)
            await asyncio.wait({driver}, timeout=INPUT_POLL_INTERVAL)
    except (KeyboardInterrupt, EOFError):
        flow.cancel()
    account_id = await driver
    if flow.state is LoginState.FAILED:
        print(f"Login failed: {flow.error}")
    return account_id
