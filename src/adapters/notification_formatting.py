"""Shared notification formatting helpers.

Keeping formatting here prevents drift between adapters and keeps messages
consistent regardless of delivery channel.
"""

from __future__ import annotations

import html
from datetime import datetime
from typing import Optional

DIVIDER = "──────────────"


def _timestamp(now: Optional[datetime]) -> str:
    moment = now or datetime.now().astimezone()
    return moment.astimezone().strftime("%H:%M:%S %d-%m-%Y").strip()


def _format_markdown(text: str, now: Optional[datetime]) -> str:
    """Create the Markdown notification body used by Saved Messages."""

    def escape_md(value: str) -> str:
        for ch in r"*[`_":
            value = value.replace(ch, f"\\{ch}")
        return value

    return "\n".join([f"**[{_timestamp(now)}]**", DIVIDER, escape_md(text)])


def _format_html(text: str, now: Optional[datetime]) -> str:
    """Create the HTML notification body used by the Bot API adapter."""

    return "\n".join([f"<b>[{html.escape(_timestamp(now))}]</b>", DIVIDER, html.escape(text)])


def format_notification(text: str, mode: str, now: Optional[datetime] = None) -> str:
    """Return the notification formatted for the requested mode."""

    if mode == "markdown":
        return _format_markdown(text, now)
    if mode == "html":
        return _format_html(text, now)
    if mode == "plain":
        return text
    raise ValueError(f"Unsupported notification format: {mode}")
