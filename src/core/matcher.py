"""Term set construction and message matching logic (core domain)."""

from __future__ import annotations

from typing import Iterable, Iterator, Optional

from core.channel_keys import find_tracked
from core.models import Hit, InboundMessage


class TermSet:
    """Ordered, de-duplicated set of lowercase terms.

    Iteration follows declaration order, which is also the tie-break when a
    message contains several terms.
    """

    def __init__(self, terms: Iterable[str] = ()) -> None:
        ordered: dict[str, None] = {}
        for term in terms:
            cleaned = (term or "").strip().lower()
            if cleaned:
                ordered.setdefault(cleaned, None)
        self._terms = tuple(ordered)

    def __iter__(self) -> Iterator[str]:
        return iter(self._terms)

    def __len__(self) -> int:
        return len(self._terms)

    def __contains__(self, term: object) -> bool:
        return isinstance(term, str) and term.lower() in self._terms

    def first_match(self, text: str) -> Optional[str]:
        """Return the earliest declared term contained in ``text``."""

        lowered = text.lower()
        for term in self._terms:
            if term in lowered:
                return term
        return None


def match_message(
    message: InboundMessage,
    terms: TermSet,
    tracked_channels: Iterable[str],
) -> Optional[Hit]:
    """Return a Hit for the first matching term, or None.

    Matching logic:
    - Untracked chats return None before any term is scanned.
    - Empty text (media without caption) never matches.
    - At most one Hit per message; the earliest declared term wins.
    """

    tracked = find_tracked(tracked_channels, message.channel)
    if tracked is None:
        return None
    if not message.text:
        return None

    term = terms.first_match(message.text)
    if term is None:
        return None

    return Hit(
        channel=tracked,
        term=term,
        message_id=message.message_id,
        date=message.date,
        peer=message.channel.chat_id or tracked,
        text=message.text,
    )
