"""Static configuration for reportwatch.

All knobs come from the environment (optionally via a ``.env`` file) so a
deployment can tune pacing and limits without touching Python. Durations in
the environment are milliseconds, as operators are used to; they are
converted to seconds for the core.
"""

import os

from dotenv import load_dotenv

from core.config import MonitorConfig, PollConfig, QueueConfig, ReconnectConfig

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

load_dotenv(os.path.join(PROJECT_ROOT, ".env"))


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


def _env_seconds(name: str, default_ms: int) -> float:
    return _env_int(name, default_ms) / 1000


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, "").split(",") if item.strip()]


# Data directory holds the SQLite database and per-account session files.
DATA_DIR = os.getenv("DATA_DIR") or PROJECT_ROOT
DB_PATH = os.path.join(DATA_DIR, "reportwatch.db")
SESSIONS_DIR = os.path.join(DATA_DIR, "sessions")

# Telegram API credentials; only required for commands that connect.
API_ID = _env_int("API_ID", 0)
API_HASH = os.getenv("API_HASH", "")

# Mode written to a fresh database: "test" only notifies, "run" also reports.
DEFAULT_MODE = os.getenv("DEFAULT_MODE", "test")

# Report pacing and per-account budgets.
QUEUE = QueueConfig(
    report_delay_min=_env_seconds("REPORT_DELAY_MIN", 60_000),
    report_delay_max=_env_seconds("REPORT_DELAY_MAX", 180_000),
    max_reports_per_hour=_env_int("MAX_REPORTS_PER_HOUR", 10),
    max_reports_per_day=_env_int("MAX_REPORTS_PER_DAY", 50),
    action_ttl=_env_seconds("ACTION_TTL", 3_600_000),
    tick_interval=_env_seconds("QUEUE_TICK", 30_000),
)

# Polling fallback for messages missed by push delivery.
POLL = PollConfig(
    interval=_env_seconds("POLL_INTERVAL", 45_000),
    page_size=_env_int("POLL_PAGE_SIZE", 20),
    initial_delay=_env_seconds("POLL_INITIAL_DELAY", 10_000),
)

# Reconnect backoff: base * 2^(attempt - 1), bounded attempts.
RECONNECT = ReconnectConfig(
    max_attempts=_env_int("RECONNECT_MAX_ATTEMPTS", 5),
    base_delay=_env_seconds("RECONNECT_BASE_DELAY", 1_000),
)

MONITOR = MonitorConfig(queue=QUEUE, poll=POLL, reconnect=RECONNECT)

# Notification method switches adapters without changing core logic:
# "bot" (Bot API to ADMIN_CHAT_IDS) or "saved_messages".
NOTIFICATION_METHOD = os.getenv("NOTIFICATION_METHOD", "bot")
BOT_TOKEN = os.getenv("BOT_TOKEN", "")
ADMIN_CHAT_IDS = _env_list("ADMIN_CHAT_IDS")

# Logging configuration.
LOGGING = {
    "enabled": _env_bool("LOG_ENABLED", True),
    "level": os.getenv("LOG_LEVEL", "INFO"),
    "console": _env_bool("LOG_CONSOLE", True),
    "file": {
        "enabled": _env_bool("LOG_FILE_ENABLED", False),
        "path": os.getenv("LOG_FILE", "logs/reportwatch.log"),
        "max_bytes": _env_int("LOG_MAX_BYTES", 5 * 1024 * 1024),
        "backup_count": _env_int("LOG_BACKUP_COUNT", 5),
    },
    "redact": {
        "enabled": True,
        "patterns": ["API_HASH", "BOT_TOKEN", "2FA", "PHONE"],
    },
}
