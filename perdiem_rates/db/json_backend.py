"""JSON file cache backend.

The document layout is ``{"data": [...], "timestamp": <epoch ms>, "count": n}``
where every item of ``data`` is a :meth:`RateRecord.to_dict` payload plus the
``storedAt`` epoch-ms of that entry.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from perdiem_rates.db import DEFAULT_JSON_CACHE_PATH
from perdiem_rates.db.base_backend import DEFAULT_STALENESS, CacheBackend, Clock, utc_now
from perdiem_rates.ingestion.models import CacheEntry, RateRecord
from perdiem_rates.utils.logger import get_logger

LOGGER = get_logger(__name__)


def _to_epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def _from_epoch_ms(value: int | float) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class JsonFileCacheBackend(CacheBackend):
    """Persist cache entries to a single JSON document on disk."""

    def __init__(
        self,
        path: str | Path = DEFAULT_JSON_CACHE_PATH,
        *,
        staleness: timedelta = DEFAULT_STALENESS,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(staleness=staleness, clock=clock)
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def _load(self) -> dict[str, CacheEntry]:
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            LOGGER.warning("Ignoring unreadable cache file %s: %s", self.path, exc)
            return {}
        if not isinstance(document, dict):
            LOGGER.warning("Ignoring cache file %s: expected a JSON object", self.path)
            return {}
        items = document.get("data") or []
        if not isinstance(items, list):
            LOGGER.warning("Ignoring cache file %s: \"data\" is not a list", self.path)
            return {}
        written_at = document.get("timestamp")
        entries: dict[str, CacheEntry] = {}
        for item in items:
            if not isinstance(item, dict):
                LOGGER.warning("Skipping non-object cache item in %s: %r", self.path, item)
                continue
            stored_ms = item.get("storedAt", written_at)
            if stored_ms is None:
                continue
            try:
                record = RateRecord.from_dict(item)
                stored_at = _from_epoch_ms(stored_ms)
            except (KeyError, TypeError, ValueError, OverflowError, OSError) as exc:
                LOGGER.warning("Skipping malformed cache item in %s: %s", self.path, exc)
                continue
            entries[record.location_code] = CacheEntry(
                location_code=record.location_code,
                record=record,
                stored_at=stored_at,
            )
        return entries

    def _dump(self, entries: dict[str, CacheEntry]) -> None:
        data: list[dict[str, Any]] = []
        for entry in entries.values():
            payload = entry.record.to_dict()
            payload["storedAt"] = _to_epoch_ms(entry.stored_at)
            data.append(payload)
        document = {
            "data": data,
            "timestamp": _to_epoch_ms(self._clock()),
            "count": len(data),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".cache-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        LOGGER.debug("Cached %s entries to %s", len(data), self.path)

    def get_entry(self, location_code: str) -> CacheEntry | None:
        with self._lock:
            return self._load().get(location_code)

    def put_entry(self, entry: CacheEntry) -> None:
        with self._lock:
            entries = self._load()
            entries[entry.location_code] = entry
            self._dump(entries)

    def entries(self) -> list[CacheEntry]:
        with self._lock:
            return list(self._load().values())


__all__ = ["JsonFileCacheBackend"]
