"""SQLite storage adapter.

Implements the core ConfigStorePort and AuditLogPort using a simple SQLite
database. Every mutating method runs in its own transaction, so each call is
an atomic read-modify-write against the backing file.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Iterable, Optional

from core.models import Hit, PendingAction

MODES = ("test", "run")


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the store and audit log contracts."""

    def __init__(self, db_path: str, default_mode: str = "test") -> None:
        if default_mode not in MODES:
            raise ValueError(f"Unsupported mode: {default_mode}")
        self._db_path = db_path
        self._default_mode = default_mode

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - accounts: managed user accounts and their session files
        - channels / terms: watch configuration, in insertion order
        - settings: key/value pairs (currently only the mode flag)
        - stats: hit counters per channel and term
        - hits / reports: append-only audit log
        """

        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    id TEXT PRIMARY KEY,
                    phone TEXT,
                    user_id TEXT,
                    username TEXT,
                    first_name TEXT,
                    last_name TEXT,
                    session_file TEXT,
                    added_at TIMESTAMP NOT NULL
                )
                """
            )
            # channel holds the key exactly as entered (@name, id or -100id).
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS channels (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    channel TEXT NOT NULL UNIQUE
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS terms (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    term TEXT NOT NULL UNIQUE
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS stats (
                    channel TEXT NOT NULL,
                    term TEXT NOT NULL,
                    count INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (channel, term)
                )
                """
            )
            # hits is denormalized on purpose: one row per detected occurrence.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS hits (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    account_id TEXT,
                    channel TEXT,
                    peer TEXT,
                    message_id INTEGER,
                    term TEXT,
                    date TIMESTAMP,
                    created_at TIMESTAMP NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS reports (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    action_id TEXT,
                    account_id TEXT,
                    channel TEXT,
                    message_id INTEGER,
                    term TEXT,
                    state TEXT,
                    error TEXT,
                    created_at TIMESTAMP NOT NULL
                )
                """
            )
            conn.execute(
                "INSERT OR IGNORE INTO settings (key, value) VALUES ('mode', ?)",
                (self._default_mode,),
            )

    def read(self) -> dict:
        """Return a full snapshot of the configuration document."""

        with self._connect() as conn:
            accounts = [dict(row) for row in conn.execute("SELECT * FROM accounts ORDER BY added_at, rowid")]
            channels = [row["channel"] for row in conn.execute("SELECT channel FROM channels ORDER BY id")]
            terms = [row["term"] for row in conn.execute("SELECT term FROM terms ORDER BY id")]
            mode_row = conn.execute("SELECT value FROM settings WHERE key = 'mode'").fetchone()
            stats: dict[str, dict[str, int]] = {}
            for row in conn.execute("SELECT channel, term, count FROM stats ORDER BY rowid"):
                stats.setdefault(row["channel"], {})[row["term"]] = int(row["count"])
        return {
            "accounts": accounts,
            "channels": channels,
            "terms": terms,
            "mode": mode_row["value"] if mode_row else self._default_mode,
            "stats": stats,
        }

    def add_account(self, account: dict) -> None:
        """Insert or refresh an account row."""

        added_at = account.get("added_at") or datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO accounts (id, phone, user_id, username, first_name, last_name, session_file, added_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    phone = excluded.phone,
                    user_id = excluded.user_id,
                    username = excluded.username,
                    first_name = excluded.first_name,
                    last_name = excluded.last_name,
                    session_file = excluded.session_file
                """,
                (
                    account["id"],
                    account.get("phone"),
                    account.get("user_id"),
                    account.get("username"),
                    account.get("first_name"),
                    account.get("last_name"),
                    account.get("session_file"),
                    added_at,
                ),
            )

    def remove_account(self, account_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM accounts WHERE id = ?", (account_id,))

    def add_channel(self, channel: str) -> bool:
        """Add a tracked channel; returns False when it was already tracked."""

        with self._connect() as conn:
            cur = conn.execute("INSERT OR IGNORE INTO channels (channel) VALUES (?)", (channel.strip(),))
            return cur.rowcount > 0

    def remove_channel(self, channel: str) -> bool:
        """Remove a tracked channel together with its statistics."""

        with self._connect() as conn:
            cur = conn.execute("DELETE FROM channels WHERE channel = ?", (channel,))
            conn.execute("DELETE FROM stats WHERE channel = ?", (channel,))
            return cur.rowcount > 0

    def add_terms(self, terms: Iterable[str]) -> list[str]:
        """Add lowercased terms and return the ones that were new."""

        added: list[str] = []
        with self._connect() as conn:
            for term in terms:
                cleaned = term.strip().lower()
                if not cleaned:
                    continue
                cur = conn.execute("INSERT OR IGNORE INTO terms (term) VALUES (?)", (cleaned,))
                if cur.rowcount > 0:
                    added.append(cleaned)
        return added

    def remove_terms(self, terms: Iterable[str]) -> list[str]:
        removed: list[str] = []
        with self._connect() as conn:
            for term in terms:
                cleaned = term.strip().lower()
                cur = conn.execute("DELETE FROM terms WHERE term = ?", (cleaned,))
                if cur.rowcount > 0:
                    removed.append(cleaned)
        return removed

    def clear_terms(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM terms")

    def set_mode(self, mode: str) -> None:
        if mode not in MODES:
            raise ValueError(f"Unsupported mode: {mode}")
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO settings (key, value) VALUES ('mode', ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (mode,),
            )

    def increment_stat(self, channel: str, term: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO stats (channel, term, count) VALUES (?, ?, 1)
                ON CONFLICT(channel, term) DO UPDATE SET count = count + 1
                """,
                (channel, term),
            )

    def clear_stats(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM stats")

    def save_hit(self, account_id: str, hit: Hit) -> None:
        """Persist a hit to the append-only hits table."""

        created_at = datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO hits (account_id, channel, peer, message_id, term, date, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    account_id,
                    hit.channel,
                    hit.peer,
                    hit.message_id,
                    hit.term,
                    hit.date.isoformat(),
                    created_at.isoformat(),
                ),
            )

    def save_report(self, action: PendingAction, error: Optional[str] = None) -> None:
        """Persist the final state of one dispatch attempt."""

        created_at = datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO reports (action_id, account_id, channel, message_id, term, state, error, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    action.id,
                    action.account_id,
                    action.channel,
                    action.message_id,
                    action.term,
                    action.state.value,
                    error,
                    created_at.isoformat(),
                ),
            )

    def list_reports(self, limit: int = 50) -> list[dict]:
        """Return the most recent report outcomes, newest first."""

        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM reports ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [dict(row) for row in rows]
