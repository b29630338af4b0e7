"""Hit statistics on top of the configuration store."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from core.models import Hit
from core.ports import ConfigStorePort

LOGGER = logging.getLogger(__name__)


class StatsCollector:
    """Durable hit counters keyed by tracked channel and term."""

    def __init__(self, store: ConfigStorePort) -> None:
        self._store = store

    def record_hit(self, hit: Hit) -> None:
        self._store.increment_stat(hit.channel, hit.term)
        LOGGER.debug("Stat recorded: '%s' in %s (message %s)", hit.term, hit.channel, hit.message_id)

    def get_stats(self) -> dict[str, dict[str, int]]:
        return self._store.read().get("stats", {})

    def get_formatted_stats(self) -> list[dict]:
        """Return flat ``{group, word, count}`` rows, most frequent first."""

        rows = [
            {"group": group, "word": word, "count": count}
            for group, words in self.get_stats().items()
            for word, count in words.items()
        ]
        rows.sort(key=lambda row: row["count"], reverse=True)
        return rows

    def get_total_stats(self) -> dict:
        stats = self.get_stats()
        unique_words: dict[str, None] = {}
        total_hits = 0
        for words in stats.values():
            for word, count in words.items():
                unique_words.setdefault(word, None)
                total_hits += count
        return {
            "total_groups": len(stats),
            "total_words": len(unique_words),
            "total_hits": total_hits,
            "unique_words": list(unique_words),
        }

    def get_group_stats(self, group: str) -> dict[str, int]:
        return dict(self.get_stats().get(group, {}))

    def get_word_stats(self, word: str) -> dict[str, int]:
        return {
            group: words[word]
            for group, words in self.get_stats().items()
            if words.get(word)
        }

    def get_top_words(self, limit: int = 10) -> list[dict]:
        totals: dict[str, int] = {}
        for row in self.get_formatted_stats():
            totals[row["word"]] = totals.get(row["word"], 0) + row["count"]
        ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
        return [{"word": word, "count": count} for word, count in ranked[:limit]]

    def get_top_groups(self, limit: int = 10) -> list[dict]:
        totals = {group: sum(words.values()) for group, words in self.get_stats().items()}
        ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
        return [{"group": group, "count": count} for group, count in ranked[:limit]]

    def export_stats(self) -> dict:
        return {
            "export_date": datetime.now(timezone.utc).isoformat(),
            "total_stats": self.get_total_stats(),
            "top_words": self.get_top_words(),
            "top_groups": self.get_top_groups(),
            "detailed_stats": self.get_stats(),
        }

    def clear_stats(self) -> None:
        self._store.clear_stats()
        LOGGER.info("Statistics cleared")
