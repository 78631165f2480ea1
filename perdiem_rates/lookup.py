"""Lookup orchestration: cache, retries with linear backoff, stale fallback."""

from __future__ import annotations

import dataclasses
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Sequence

import pandas as pd

from perdiem_rates.config import LookupSettings
from perdiem_rates.db.base_backend import CacheBackend, Clock, utc_now
from perdiem_rates.db.memory_backend import MemoryCacheBackend
from perdiem_rates.errors import InvalidLocationCode, NetworkError, NoDataFound, PerDiemError
from perdiem_rates.ingestion.allowances_client import AllowancesClient
from perdiem_rates.ingestion.models import RateRecord
from perdiem_rates.ingestion.rate_parser import parse_rate_page
from perdiem_rates.ingestion.strategy import RatePageSource
from perdiem_rates.utils.location_codes import normalise_location_code
from perdiem_rates.utils.logger import get_logger
from perdiem_rates.utils.rate_limit import RateLimiter

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class BatchError:
    location_code: str
    error: PerDiemError


@dataclass(slots=True)
class BatchResult:
    """Records and per-code failures from :meth:`RateLookupService.lookup_batch`."""

    results: list[RateRecord] = field(default_factory=list)
    errors: list[BatchError] = field(default_factory=list)

    @property
    def total_requested(self) -> int:
        return len(self.results) + len(self.errors)


@dataclass(slots=True)
class LookupStats:
    lookups: int = 0
    cache_hits: int = 0
    attempts: int = 0
    network_failures: int = 0
    parse_failures: int = 0
    fallbacks: int = 0
    cache_write_failures: int = 0
    last_error: str | None = None


class RateLookupService:
    """Resolve location codes to rate records.

    The only component that decides whether to retry: network failures and
    empty parses are retried up to ``settings.max_attempts`` times with a
    linear backoff, invalid codes surface at once, and an exhausted lookup
    falls back to any cached record (flagged ``fallback=True``).
    """

    def __init__(
        self,
        *,
        source: RatePageSource | None = None,
        cache: CacheBackend | None = None,
        settings: LookupSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = settings or LookupSettings()
        self.source = source or AllowancesClient(settings=self.settings)
        self.cache = cache or MemoryCacheBackend(staleness=self.settings.staleness, clock=clock)
        self._sleep = sleep
        self._clock = clock
        self._stats = LookupStats()
        self._stats_lock = threading.Lock()

    def lookup_rate(self, location_code: str, *, force_refresh: bool = False) -> RateRecord:
        """Return the rate record for ``location_code``."""

        return self._lookup(location_code, force_refresh=force_refresh, source=self.source)

    def lookup_batch(
        self,
        location_codes: Sequence[str],
        *,
        force_refresh: bool = False,
        max_workers: int = 1,
    ) -> BatchResult:
        """Look up many codes, spacing upstream requests by ``settings.rate_limit_gap``."""

        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        limiter = RateLimiter(self.settings.rate_limit_gap, sleep=self._sleep)
        throttled = getattr(self.source, "throttled", None)
        source = throttled(limiter) if callable(throttled) else self.source
        LOGGER.info("Batch fetching %s location codes", len(location_codes))

        def _one(code: str) -> RateRecord | BatchError:
            try:
                return self._lookup(code, force_refresh=force_refresh, source=source)
            except PerDiemError as exc:
                return BatchError(location_code=str(code), error=exc)

        if max_workers == 1:
            outcomes = [_one(code) for code in location_codes]
        else:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                outcomes = list(pool.map(_one, location_codes))

        batch = BatchResult()
        for outcome in outcomes:
            if isinstance(outcome, BatchError):
                batch.errors.append(outcome)
            else:
                batch.results.append(outcome)
        LOGGER.info(
            "Batch finished: %s succeeded, %s failed", len(batch.results), len(batch.errors)
        )
        return batch

    def _lookup(self, location_code: str, *, force_refresh: bool, source: RatePageSource) -> RateRecord:
        code = normalise_location_code(location_code)
        self._bump(lookups=1)
        if not force_refresh:
            cached = self._read(self.cache.get, code)
            if cached is not None:
                LOGGER.info("Using cached rates for %s", code)
                self._bump(cache_hits=1)
                return cached

        last_error: NetworkError | NoDataFound | None = None
        for attempt in range(1, self.settings.max_attempts + 1):
            if attempt > 1:
                delay = self.settings.retry_delay(attempt - 1)
                LOGGER.info("Retrying %s in %.1fs (attempt %s)", code, delay, attempt)
                self._sleep(delay)
            self._bump(attempts=1)
            try:
                record = self._attempt(code, source)
            except InvalidLocationCode as exc:
                self._record_error(exc)
                raise
            except NetworkError as exc:
                last_error = exc
                self._record_error(exc, network_failures=1)
                LOGGER.warning(
                    "Attempt %s/%s for %s failed: %s",
                    attempt,
                    self.settings.max_attempts,
                    code,
                    exc,
                )
                continue
            except NoDataFound as exc:
                last_error = exc
                self._record_error(exc, parse_failures=1)
                LOGGER.warning(
                    "Attempt %s/%s for %s returned no rate data (possible parser drift)",
                    attempt,
                    self.settings.max_attempts,
                    code,
                )
                continue
            self._store(code, record)
            return record

        stale = self._read(self.cache.get_entry, code)
        if stale is not None:
            LOGGER.warning(
                "Using cached rates for %s stored at %s after failed refresh",
                code,
                stale.stored_at.isoformat(),
            )
            self._bump(fallbacks=1)
            return dataclasses.replace(stale.record, fallback=True)
        assert last_error is not None
        raise last_error

    def _attempt(self, code: str, source: RatePageSource) -> RateRecord:
        html = source.fetch_rate_page(code)
        result = parse_rate_page(html, code, bounds=self.settings.bounds, clock=self._clock)
        if result.record is None:
            raise NoDataFound(
                f"No per diem data found for location code {code}",
                location_code=code,
                rejected=result.rejected,
            )
        return result.record

    def _read(self, getter: Callable[[str], Any], code: str) -> Any:
        try:
            return getter(code)
        except (RuntimeError, OSError) as exc:
            LOGGER.warning("Could not read cached rates for %s: %s", code, exc)
            return None

    def _store(self, code: str, record: RateRecord) -> None:
        # Cache write failures never fail the lookup.
        try:
            self.cache.put(code, record)
        except (RuntimeError, OSError) as exc:
            self._bump(cache_write_failures=1)
            LOGGER.warning("Could not cache rates for %s: %s", code, exc)

    def _bump(self, **counters: int) -> None:
        with self._stats_lock:
            for name, amount in counters.items():
                setattr(self._stats, name, getattr(self._stats, name) + amount)

    def _record_error(self, exc: PerDiemError, **counters: int) -> None:
        self._bump(**counters)
        with self._stats_lock:
            self._stats.last_error = str(exc)

    def status(self) -> dict[str, Any]:
        """Summarise lookup counters and cache contents."""

        entries = self.cache.entries()
        with self._stats_lock:
            stats = dataclasses.asdict(self._stats)
        latest = max((entry.stored_at for entry in entries), default=None)
        return {
            **stats,
            "cache": {
                "entries": len(entries),
                "fresh": sum(1 for entry in entries if self.cache.is_fresh(entry)),
                "last_updated": latest.isoformat() if latest else None,
                "staleness_seconds": self.settings.staleness.total_seconds(),
            },
        }

    def cached_records(self) -> list[RateRecord]:
        return [entry.record for entry in self.cache.entries()]

    def search(self, query: str) -> list[RateRecord]:
        """Return cached records whose country or post contains ``query``."""

        needle = query.strip().lower()
        if not needle:
            return []
        matches = [
            record
            for record in self.cached_records()
            if needle in record.country.lower() or needle in record.post.lower()
        ]
        return sorted(matches, key=lambda record: (record.country, record.post))

    def analytics(self, *, top: int = 10) -> dict[str, Any]:
        """Aggregate cached records: average per diem, rate bands, priciest posts."""

        return summarise_records(self.cached_records(), top=top)


def summarise_records(records: Iterable[RateRecord], *, top: int = 10) -> dict[str, Any]:
    frame = pd.DataFrame(
        [
            {
                "location_code": record.location_code,
                "country": record.country,
                "post": record.post,
                "lodging": record.lodging_rate,
                "mie": record.mie_rate,
                "total": record.total_rate,
            }
            for record in records
        ],
        columns=["location_code", "country", "post", "lodging", "mie", "total"],
    )
    if frame.empty:
        return {
            "total_posts": 0,
            "average_per_diem": 0.0,
            "rate_distribution": {"low": 0, "medium": 0, "high": 0},
            "top_expensive_posts": [],
        }
    totals = frame["total"]
    priciest = frame.sort_values("total", ascending=False, kind="stable").head(top)
    return {
        "total_posts": int(len(frame)),
        "average_per_diem": float(totals.mean()),
        "rate_distribution": {
            "low": int((totals < 200).sum()),
            "medium": int(((totals >= 200) & (totals < 400)).sum()),
            "high": int((totals >= 400).sum()),
        },
        "top_expensive_posts": [
            {
                "location_code": row.location_code,
                "location": f"{row.post}, {row.country}",
                "rate": int(row.total),
                "lodging": int(row.lodging),
                "mie": int(row.mie),
            }
            for row in priciest.itertuples(index=False)
        ],
    }


__all__ = ["BatchError", "BatchResult", "LookupStats", "RateLookupService", "summarise_records"]
