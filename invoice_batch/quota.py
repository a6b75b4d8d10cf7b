"""
Daily quota tracking for external extraction calls.

The counter is persisted as {"date": "YYYY-MM-DD", "count": N} in a
key-value store. Whenever the stored date is not today's, the counter is
reset to zero and the date moved forward before any value is returned.
"""

import json
from datetime import date
from typing import Callable

from .config import DAILY_EXTRACTION_LIMIT, QUOTA_STORE_KEY, logger
from .store import KeyValueStore


class QuotaTracker:
    """
    Per-calendar-day counter of successful extraction calls.

    Args:
        store: Where {date, count} is persisted
        limit: Daily cap on extraction calls
        today: Clock returning the local calendar date (injectable for tests)
    """

    def __init__(
        self,
        store: KeyValueStore,
        limit: int = DAILY_EXTRACTION_LIMIT,
        today: Callable[[], date] = date.today,
        key: str = QUOTA_STORE_KEY,
    ):
        self.store = store
        self.limit = limit
        self.today = today
        self.key = key

    def _load(self) -> tuple[str, int]:
        raw = self.store.get(self.key)
        if raw:
            try:
                parsed = json.loads(raw)
                if isinstance(parsed.get("date"), str) and isinstance(parsed.get("count"), int):
                    return parsed["date"], parsed["count"]
            except (json.JSONDecodeError, AttributeError) as e:
                logger.error(f"Malformed quota state, resetting: {e}")
        return self.today().isoformat(), 0

    def _save(self, day: str, count: int) -> None:
        self.store.set(self.key, json.dumps({"date": day, "count": count}))

    def _current(self) -> int:
        """Read the counter, applying the day rollover. Caller holds the store lock."""
        stored_day, count = self._load()
        today = self.today().isoformat()
        if stored_day != today:
            logger.info(f"New day {today}: resetting extraction counter (was {count} on {stored_day})")
            self._save(today, 0)
            return 0
        return count

    def current_count(self) -> int:
        with self.store.locked():
            return self._current()

    def remaining(self) -> int:
        return max(self.limit - self.current_count(), 0)

    def increment(self) -> int:
        """Record one successful extraction call and return the new count."""
        with self.store.locked():
            new_count = self._current() + 1
            self._save(self.today().isoformat(), new_count)
        return new_count
