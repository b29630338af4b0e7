"""Application entry point for the reportwatch monitor."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint

import settings
from adapters.sqlite_storage import SQLiteStorage
from adapters.telegram_bot_notifier import TelegramBotNotifier
from adapters.telegram_notifier import TelegramSavedMessagesNotifier
from adapters.telegram_sessions import TelethonTransport
from client import session_path
from core.channel_keys import parse_channel_key
from core.errors import InvalidChannelKey
from core.monitor import MonitorService
from core.ports import NotifierPort
from core.session_pool import SessionPool
from core.stats import StatsCollector
from get_session import console_login

NAME = "REPORTWATCH"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/reportwatch.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # Telethon is chatty at INFO about every reconnect and update gap.
    logging.getLogger("telethon").setLevel(max(level, logging.WARNING))


def _open_storage() -> SQLiteStorage:
    os.makedirs(settings.DATA_DIR, exist_ok=True)
    storage = SQLiteStorage(settings.DB_PATH, default_mode=settings.DEFAULT_MODE)
    storage.init_db()
    return storage


def _build_transport() -> TelethonTransport:
    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not settings.API_ID or not settings.API_HASH:
        raise RuntimeError("Missing API_ID or API_HASH in environment")
    return TelethonTransport(settings.API_ID, settings.API_HASH, settings.SESSIONS_DIR)


def _build_notifier(pool: SessionPool) -> NotifierPort:
    # Select the notification adapter based on configuration to keep the core
    # independent from delivery details.
    if settings.NOTIFICATION_METHOD == "bot":
        if not settings.BOT_TOKEN:
            raise RuntimeError("BOT_TOKEN is required when NOTIFICATION_METHOD=bot")
        if not settings.ADMIN_CHAT_IDS:
            raise RuntimeError("ADMIN_CHAT_IDS is required for bot notifications")
        return TelegramBotNotifier(settings.BOT_TOKEN, settings.ADMIN_CHAT_IDS)
    if settings.NOTIFICATION_METHOD == "saved_messages":
        return TelegramSavedMessagesNotifier(pool)
    raise RuntimeError("NOTIFICATION_METHOD must be 'bot' or 'saved_messages'")


def _build_monitor(storage: SQLiteStorage) -> MonitorService:
    transport = _build_transport()
    pool = SessionPool(transport, storage)
    notifier = _build_notifier(pool)
    logging.getLogger(__name__).info("Selected notification method - %s", settings.NOTIFICATION_METHOD)
    return MonitorService(storage, transport, notifier, settings.MONITOR, audit_log=storage, pool=pool)


async def _run_monitor(storage: SQLiteStorage) -> int:
    logger = logging.getLogger(__name__)
    monitor = _build_monitor(storage)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Signal handlers are unavailable on Windows event loops.
            pass

    result = await monitor.start()
    for connect in result.get("results", []):
        logger.info("Account %s: %s %s", connect.account_id, connect.status.value, connect.detail or "")
    if not result["success"]:
        logger.error("Monitoring not started: %s", result.get("message"))
        await monitor.shutdown()
        return 1

    logger.info("Monitoring. Press Ctrl+C to stop...")
    await stop_event.wait()
    logger.info("Stopping monitor")
    await monitor.shutdown()
    return 0


def _run() -> int:
    _print_banner()
    _configure_logging()
    logging.getLogger(__name__).info("Starting reportwatch")
    storage = _open_storage()
    return asyncio.run(_run_monitor(storage))


def _login() -> int:
    _print_banner()
    _configure_logging()
    storage = _open_storage()
    if not settings.API_ID or not settings.API_HASH:
        raise RuntimeError("Missing API_ID or API_HASH in environment")
    account_id = asyncio.run(
        console_login(
            storage,
            api_id=settings.API_ID,
            api_hash=settings.API_HASH,
            sessions_dir=settings.SESSIONS_DIR,
        )
    )
    if account_id is None:
        return 1
    print(f"Account added: {account_id}")
    return 0


def _accounts(args: argparse.Namespace) -> int:
    storage = _open_storage()
    if args.action == "remove":
        storage.remove_account(args.account_id)
        path = session_path(settings.SESSIONS_DIR, args.account_id)
        if os.path.exists(path):
            os.remove(path)
        print(f"Account removed: {args.account_id}")
        return 0

    accounts = storage.read()["accounts"]
    if not accounts:
        print("No accounts configured. Use 'reportwatch login' to add one.")
        return 0
    for index, account in enumerate(accounts, start=1):
        name = " ".join(part for part in [account.get("first_name"), account.get("last_name")] if part)
        username = f"@{account['username']}" if account.get("username") else "-"
        print(f"{index}. {account['id']} | {account.get('phone') or '-'} | {name or '-'} | {username}")
    return 0


def _channels(args: argparse.Namespace) -> int:
    storage = _open_storage()
    if args.action == "add":
        try:
            parse_channel_key(args.channel)
        except InvalidChannelKey as exc:
            print(str(exc))
            return 2
        added = storage.add_channel(args.channel)
        print(f"Channel {'added' if added else 'already tracked'}: {args.channel}")
        return 0
    if args.action == "remove":
        removed = storage.remove_channel(args.channel)
        print(f"Channel {'removed' if removed else 'not tracked'}: {args.channel}")
        return 0

    channels = storage.read()["channels"]
    if not channels:
        print("No tracked channels.")
    for index, channel in enumerate(channels, start=1):
        print(f"{index}. {channel}")
    return 0


def _terms(args: argparse.Namespace) -> int:
    storage = _open_storage()
    if args.action == "add":
        added = storage.add_terms(args.terms)
        print(f"Added {len(added)} term(s): {', '.join(added) or '-'}")
        return 0
    if args.action == "remove":
        removed = storage.remove_terms(args.terms)
        print(f"Removed {len(removed)} term(s): {', '.join(removed) or '-'}")
        return 0
    if args.action == "clear":
        storage.clear_terms()
        print("All terms removed.")
        return 0

    terms = storage.read()["terms"]
    if not terms:
        print("No terms configured.")
    for index, term in enumerate(terms, start=1):
        print(f"{index}. {term}")
    return 0


def _mode(args: argparse.Namespace) -> int:
    storage = _open_storage()
    if args.mode:
        storage.set_mode(args.mode)
    print(f"Mode: {storage.read()['mode']}")
    return 0


def _stats(args: argparse.Namespace) -> int:
    storage = _open_storage()
    stats = StatsCollector(storage)
    if args.clear:
        stats.clear_stats()
        print("Statistics cleared.")
        return 0
    if args.export:
        print(json.dumps(stats.export_stats(), ensure_ascii=False, indent=2))
        return 0

    totals = stats.get_total_stats()
    print(f"Channels with hits: {totals['total_groups']}")
    print(f"Distinct terms: {totals['total_words']}")
    print(f"Total hits: {totals['total_hits']}")
    if args.detailed:
        for row in stats.get_formatted_stats():
            print(f"{row['group']} | {row['word']} | {row['count']}")
        return 0
    print("Top terms:")
    for row in stats.get_top_words(5):
        print(f"  {row['word']}: {row['count']}")
    print("Top channels:")
    for row in stats.get_top_groups(5):
        print(f"  {row['group']}: {row['count']}")
    return 0


def _status() -> int:
    storage = _open_storage()
    snapshot = storage.read()
    print(f"Mode: {snapshot['mode']}")
    print(f"Accounts: {len(snapshot['accounts'])}")
    print(f"Tracked channels: {len(snapshot['channels'])}")
    print(f"Terms: {len(snapshot['terms'])}")
    recent = storage.list_reports(limit=10)
    if recent:
        print("Recent reports:")
        for row in recent:
            suffix = f" ({row['error']})" if row.get("error") else ""
            print(f"  {row['created_at']} | {row['channel']} | {row['message_id']} | {row['state']}{suffix}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="reportwatch")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start monitoring")
    subparsers.add_parser("login", help="Add an account (phone or QR login)")
    subparsers.add_parser("status", help="Show configuration and recent reports")

    accounts = subparsers.add_parser("accounts", help="List or remove accounts")
    accounts_sub = accounts.add_subparsers(dest="action")
    accounts_sub.add_parser("list")
    remove_account = accounts_sub.add_parser("remove")
    remove_account.add_argument("account_id")

    channels = subparsers.add_parser("channels", help="Manage tracked channels")
    channels_sub = channels.add_subparsers(dest="action")
    channels_sub.add_parser("list")
    for action in ("add", "remove"):
        channel_parser = channels_sub.add_parser(action)
        channel_parser.add_argument("channel", help="@username, numeric id or -100 id")

    terms = subparsers.add_parser("terms", help="Manage banned terms")
    terms_sub = terms.add_subparsers(dest="action")
    terms_sub.add_parser("list")
    terms_sub.add_parser("clear")
    for action in ("add", "remove"):
        term_parser = terms_sub.add_parser(action)
        term_parser.add_argument("terms", nargs="+")

    mode = subparsers.add_parser("mode", help="Show or switch test/run mode")
    mode.add_argument("mode", nargs="?", choices=["test", "run"])

    stats = subparsers.add_parser("stats", help="Show hit statistics")
    stats.add_argument("--detailed", action="store_true")
    stats.add_argument("--export", action="store_true", help="Print a JSON export")
    stats.add_argument("--clear", action="store_true")

    args = parser.parse_args(argv)
    if args.command == "login":
        return _login()
    if args.command == "accounts":
        return _accounts(args)
    if args.command == "channels":
        return _channels(args)
    if args.command == "terms":
        return _terms(args)
    if args.command == "mode":
        return _mode(args)
    if args.command == "stats":
        return _stats(args)
    if args.command == "status":
        return _status()
    return _run()


if __name__ == "__main__":
    raise SystemExit(main())
