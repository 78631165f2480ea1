"""Public interface for the perdiem_rates package."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from importlib import metadata as importlib_metadata
from pathlib import Path
from typing import Any, Sequence
from urllib.parse import urlparse

from perdiem_rates.config import LookupSettings, RateBounds
from perdiem_rates.db import DEFAULT_JSON_CACHE_PATH
from perdiem_rates.db.base_backend import CacheBackend
from perdiem_rates.db.json_backend import JsonFileCacheBackend
from perdiem_rates.db.memory_backend import MemoryCacheBackend
from perdiem_rates.errors import InvalidLocationCode, NetworkError, NoDataFound, PerDiemError
from perdiem_rates.ingestion.models import ParseStrategy, RateRecord
from perdiem_rates.ingestion.strategy import RatePageSource
from perdiem_rates.lookup import BatchError, BatchResult, RateLookupService

__all__ = [
    "__version__",
    "BatchError",
    "BatchResult",
    "CacheBackendKind",
    "CacheConnectionInfo",
    "InvalidLocationCode",
    "LookupSettings",
    "NetworkError",
    "NoDataFound",
    "ParseStrategy",
    "PerDiemError",
    "PerDiemRates",
    "RateBounds",
    "RateLookupService",
    "RateRecord",
]

try:
    __version__ = importlib_metadata.version("perdiem-rates")
except importlib_metadata.PackageNotFoundError:  # pragma: no cover - fallback for local runs
    __version__ = "0.1.0"


class CacheBackendKind(str, Enum):
    """Supported storage media for the rate cache."""

    MEMORY = "memory"
    JSON = "json"
    SQLITE = "sqlite"
    MONGODB = "mongodb"

    @classmethod
    def from_scheme(cls, scheme: str) -> "CacheBackendKind":
        """Normalise URL schemes into a CacheBackendKind value."""

        base_scheme, _, _driver = scheme.lower().partition("+")
        if base_scheme in {"memory", "mem"}:
            return cls.MEMORY
        if base_scheme in {"file", "json"}:
            return cls.JSON
        if base_scheme == "sqlite":
            return cls.SQLITE
        if base_scheme == "mongodb":
            return cls.MONGODB
        raise ValueError(
            "Unsupported cache backend. Supported values are memory://, file:// (JSON), "
            "sqlite:// and mongodb://."
        )


@dataclass(slots=True)
class CacheConnectionInfo:
    """Describes where extracted rate records are cached."""

    backend: CacheBackendKind
    url: str
    path: Path | None = None
    database: str | None = None

    @classmethod
    def from_url(cls, url: str) -> "CacheConnectionInfo":
        """Create a connection object from a cache URL or a bare ``.json`` path."""

        parsed = urlparse(url)
        if not parsed.scheme or len(parsed.scheme) == 1:
            # Bare paths (including Windows drive letters) are JSON files.
            if url.lower().endswith(".json"):
                return cls(backend=CacheBackendKind.JSON, url=url, path=Path(url))
            raise ValueError("Cache URL must include a scheme (e.g. sqlite:/// or mongodb://)")
        backend = CacheBackendKind.from_scheme(parsed.scheme)
        if backend is CacheBackendKind.MEMORY:
            return cls(backend=backend, url=url)
        if backend is CacheBackendKind.JSON:
            raw_path = f"{parsed.netloc}{parsed.path}"
            return cls(backend=backend, url=url, path=Path(raw_path) if raw_path else DEFAULT_JSON_CACHE_PATH)
        if backend is CacheBackendKind.SQLITE:
            # SQLAlchemy style: sqlite:///relative.db or sqlite:////absolute.db
            raw_path = parsed.path[1:] if parsed.path.startswith("/") else parsed.path
            if not raw_path:
                raise ValueError("sqlite cache URLs must include a database file path")
            return cls(backend=backend, url=url, path=Path(raw_path))
        database = parsed.path[1:] if parsed.path and parsed.path != "/" else None
        return cls(backend=backend, url=url, database=database)


class PerDiemRates:
    """Package facade that wires the cache, scraper and lookup service together."""

    __slots__ = ("connection_info", "settings", "cache", "service")

    __version__ = __version__

    def __init__(
        self,
        cache_config: CacheConnectionInfo | str | None = None,
        *,
        settings: LookupSettings | None = None,
        source: RatePageSource | None = None,
    ) -> None:
        """Configure caching and lookup policy.

        ``cache_config`` accepts a :class:`CacheConnectionInfo` or a URL such as
        ``sqlite:///rates.db``, ``file:///var/cache/per-diem-cache.json`` or
        ``mongodb://host/perdiem``. Omitting it keeps records in process memory.
        """

        if isinstance(cache_config, CacheConnectionInfo):
            self.connection_info = cache_config
        elif isinstance(cache_config, str):
            self.connection_info = CacheConnectionInfo.from_url(cache_config)
        else:
            self.connection_info = CacheConnectionInfo(
                backend=CacheBackendKind.MEMORY, url="memory://"
            )
        self.settings = settings or LookupSettings()
        self.cache = self._build_cache()
        self.service = RateLookupService(source=source, cache=self.cache, settings=self.settings)

    def _build_cache(self) -> CacheBackend:
        info = self.connection_info
        staleness = self.settings.staleness
        if info.backend is CacheBackendKind.MEMORY:
            return MemoryCacheBackend(staleness=staleness)
        if info.backend is CacheBackendKind.JSON:
            return JsonFileCacheBackend(info.path or DEFAULT_JSON_CACHE_PATH, staleness=staleness)
        if info.backend is CacheBackendKind.SQLITE:
            from perdiem_rates.db.sqlite_backend import SQLiteCacheBackend

            return SQLiteCacheBackend(info.path, staleness=staleness)
        if info.backend is CacheBackendKind.MONGODB:
            from perdiem_rates.db.mongo_backend import MongoCacheBackend

            backend = MongoCacheBackend(info.url, database=info.database, staleness=staleness)
            backend.ensure_schema()
            return backend
        raise ValueError(f"Unsupported cache backend: {info.backend}")

    def lookup_rate(self, location_code: str, *, force_refresh: bool = False) -> RateRecord:
        """Return per diem rates for ``location_code``, preferring a fresh cached copy."""

        return self.service.lookup_rate(location_code, force_refresh=force_refresh)

    def lookup_batch(
        self,
        location_codes: Sequence[str],
        *,
        force_refresh: bool = False,
        max_workers: int = 1,
    ) -> BatchResult:
        return self.service.lookup_batch(
            location_codes, force_refresh=force_refresh, max_workers=max_workers
        )

    def status(self) -> dict[str, Any]:
        return {"backend": self.connection_info.backend.value, **self.service.status()}

    def search(self, query: str) -> list[RateRecord]:
        return self.service.search(query)

    def analytics(self, *, top: int = 10) -> dict[str, Any]:
        return self.service.analytics(top=top)

    def connection(self) -> tuple[bool, str | None]:
        """Attempt to read from the cache store and report the outcome."""

        try:
            self.cache.entries()
        except Exception as exc:  # pragma: no cover - backend provides error detail
            return False, str(exc)
        return True, None

    def close(self) -> None:
        self.cache.close()

    def __enter__(self) -> "PerDiemRates":  # pragma: no cover - trivial
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # pragma: no cover - trivial
        self.close()
