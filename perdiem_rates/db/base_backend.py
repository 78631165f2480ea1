"""Cache backend interface shared by every storage medium."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable

from perdiem_rates.ingestion.models import CacheEntry, RateRecord

DEFAULT_STALENESS = timedelta(hours=24)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CacheBackend(ABC):
    """Stores the latest rate record per location code.

    Subclasses provide atomic per-key reads and writes; freshness is decided
    here so every medium applies the same staleness window. Stale entries are
    kept so the orchestrator can offer them as a fallback.
    """

    def __init__(self, *, staleness: timedelta = DEFAULT_STALENESS, clock: Clock = utc_now) -> None:
        self.staleness = staleness
        self._clock = clock

    @abstractmethod
    def get_entry(self, location_code: str) -> CacheEntry | None:
        """Return the stored entry for ``location_code`` regardless of age."""

    @abstractmethod
    def put_entry(self, entry: CacheEntry) -> None:
        """Replace whatever is stored for ``entry.location_code``."""

    @abstractmethod
    def entries(self) -> list[CacheEntry]:
        """Return every stored entry, fresh or stale."""

    def close(self) -> None:  # pragma: no cover - optional cleanup hook
        """Backends may override to release connections/resources."""

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.stored_at < self.staleness

    def get(self, location_code: str) -> RateRecord | None:
        """Return the cached record only while it is inside the staleness window."""

        entry = self.get_entry(location_code)
        if entry is None or not self.is_fresh(entry):
            return None
        return entry.record

    def put(self, location_code: str, record: RateRecord) -> CacheEntry:
        entry = CacheEntry(location_code=location_code, record=record, stored_at=self._clock())
        self.put_entry(entry)
        return entry

    def __enter__(self) -> "CacheBackend":  # pragma: no cover - trivial
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # pragma: no cover - trivial
        self.close()


__all__ = ["CacheBackend", "Clock", "DEFAULT_STALENESS", "utc_now"]
