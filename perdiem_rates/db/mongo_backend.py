"""MongoDB cache backend."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from perdiem_rates.db.base_backend import DEFAULT_STALENESS, CacheBackend, Clock, utc_now
from perdiem_rates.ingestion.models import CacheEntry, RateRecord
from perdiem_rates.utils.logger import get_logger

LOGGER = get_logger(__name__)

COLLECTION_NAME = "perdiem_rates"


class MongoCacheBackend(CacheBackend):
    """Backend that keeps one document per location code inside MongoDB."""

    def __init__(
        self,
        url: str,
        *,
        database: str | None = None,
        collection: str = COLLECTION_NAME,
        staleness: timedelta = DEFAULT_STALENESS,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(staleness=staleness, clock=clock)
        self.url = url
        self._client = MongoClient(url)
        db = self._client.get_default_database() if database is None else self._client[database]
        if db is None:
            raise ValueError("MongoDB connection URI must include a database name")
        self._collection: Collection = db[collection]

    def ensure_schema(self) -> None:
        try:
            LOGGER.info("Ensuring MongoDB rate cache collection exists")
            self._client.admin.command("ping")
            self._collection.create_index([("location_code", ASCENDING)], unique=True)
        except PyMongoError as exc:  # pragma: no cover - error path
            raise RuntimeError(f"Failed to ensure MongoDB schema: {exc}") from exc

    def get_entry(self, location_code: str) -> CacheEntry | None:
        try:
            doc = self._collection.find_one({"location_code": location_code})
        except PyMongoError as exc:
            raise RuntimeError(f"Failed to read cached rate for {location_code}: {exc}") from exc
        return self._to_entry(doc) if doc else None

    def put_entry(self, entry: CacheEntry) -> None:
        doc = {
            "location_code": entry.location_code,
            "record": entry.record.to_dict(),
            "stored_at": entry.stored_at,
        }
        try:
            self._collection.replace_one({"location_code": entry.location_code}, doc, upsert=True)
        except PyMongoError as exc:
            raise RuntimeError(
                f"Failed to cache rate for {entry.location_code}: {exc}"
            ) from exc

    def entries(self) -> list[CacheEntry]:
        try:
            docs = list(self._collection.find({}).sort("location_code", ASCENDING))
        except PyMongoError as exc:
            raise RuntimeError(f"Failed to list cached rates: {exc}") from exc
        return [self._to_entry(doc) for doc in docs]

    def close(self) -> None:  # pragma: no cover - trivial cleanup
        self._client.close()

    @staticmethod
    def _to_entry(doc: dict[str, Any]) -> CacheEntry:
        stored_at: datetime = doc["stored_at"]
        if stored_at.tzinfo is None:
            # pymongo hands back naive UTC datetimes unless tz_aware is set.
            stored_at = stored_at.replace(tzinfo=timezone.utc)
        record = RateRecord.from_dict(doc["record"])
        return CacheEntry(location_code=doc["location_code"], record=record, stored_at=stored_at)


__all__ = ["MongoCacheBackend", "COLLECTION_NAME"]
