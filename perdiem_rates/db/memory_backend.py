"""Process-local cache backend."""

from __future__ import annotations

import threading
from datetime import timedelta

from perdiem_rates.db.base_backend import DEFAULT_STALENESS, CacheBackend, Clock, utc_now
from perdiem_rates.ingestion.models import CacheEntry


class MemoryCacheBackend(CacheBackend):
    """Dictionary-backed cache guarded by a lock; contents die with the process."""

    def __init__(self, *, staleness: timedelta = DEFAULT_STALENESS, clock: Clock = utc_now) -> None:
        super().__init__(staleness=staleness, clock=clock)
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get_entry(self, location_code: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(location_code)

    def put_entry(self, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[entry.location_code] = entry

    def entries(self) -> list[CacheEntry]:
        with self._lock:
            return list(self._entries.values())


__all__ = ["MemoryCacheBackend"]
