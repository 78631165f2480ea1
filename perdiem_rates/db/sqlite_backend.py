"""SQLite cache backend built on SQLAlchemy."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import cast

from sqlalchemy import Column, DateTime, Integer, String, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from perdiem_rates.db import DEFAULT_SQLITE_CACHE_PATH
from perdiem_rates.db.base_backend import DEFAULT_STALENESS, CacheBackend, Clock, utc_now
from perdiem_rates.ingestion.models import CacheEntry, ParseStrategy, RateRecord
from perdiem_rates.utils.logger import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    pass


class _CachedRate(Base):
    __tablename__ = "rate_cache"

    location_code = Column(String(5), primary_key=True)
    country = Column(String, nullable=False)
    post = Column(String, nullable=False)
    lodging_rate = Column(Integer, nullable=False)
    mie_rate = Column(Integer, nullable=False)
    total_rate = Column(Integer, nullable=False)
    extracted_at = Column(DateTime, nullable=False)
    strategy_used = Column(String, nullable=False)
    season_begin = Column(String, nullable=True)
    season_end = Column(String, nullable=True)
    footnote = Column(String, nullable=True)
    effective_date = Column(String, nullable=True)
    stored_at = Column(DateTime, nullable=False)


def _naive_utc(moment: datetime) -> datetime:
    # SQLite has no timezone-aware column type; store UTC wall time.
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def _aware_utc(moment: datetime) -> datetime:
    return moment.replace(tzinfo=timezone.utc) if moment.tzinfo is None else moment


class SQLiteCacheBackend(CacheBackend):
    """Backend that keeps one row per location code in a SQLite file."""

    def __init__(
        self,
        db_path: str | Path = DEFAULT_SQLITE_CACHE_PATH,
        *,
        staleness: timedelta = DEFAULT_STALENESS,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(staleness=staleness, clock=clock)
        self.db_path = Path(db_path).expanduser().resolve()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        LOGGER.info("Using SQLite rate cache at %s", self.db_path)
        self.engine: Engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
        )
        Base.metadata.create_all(self.engine)
        self._SessionFactory: sessionmaker[Session] = sessionmaker(
            bind=self.engine, expire_on_commit=False, future=True
        )

    def get_entry(self, location_code: str) -> CacheEntry | None:
        with self._SessionFactory() as session:
            row = session.get(_CachedRate, location_code)
            return self._to_entry(row) if row is not None else None

    def put_entry(self, entry: CacheEntry) -> None:
        record = entry.record
        values = {
            "country": record.country,
            "post": record.post,
            "lodging_rate": record.lodging_rate,
            "mie_rate": record.mie_rate,
            "total_rate": record.total_rate,
            "extracted_at": _naive_utc(record.extracted_at),
            "strategy_used": record.strategy_used.value,
            "season_begin": record.season_begin,
            "season_end": record.season_end,
            "footnote": record.footnote,
            "effective_date": record.effective_date,
            "stored_at": _naive_utc(entry.stored_at),
        }
        with self._SessionFactory() as session:
            existing = session.get(_CachedRate, entry.location_code)
            if existing is None:
                session.add(_CachedRate(location_code=entry.location_code, **values))
            else:
                for name, value in values.items():
                    setattr(existing, name, value)
            session.commit()

    def entries(self) -> list[CacheEntry]:
        with self._SessionFactory() as session:
            stmt = select(_CachedRate).order_by(_CachedRate.location_code)
            return [self._to_entry(cast(_CachedRate, row)) for row in session.execute(stmt).scalars()]

    def close(self) -> None:  # pragma: no cover - trivial
        self.engine.dispose()

    @staticmethod
    def _to_entry(row: _CachedRate) -> CacheEntry:
        record = RateRecord(
            location_code=cast(str, row.location_code),
            country=cast(str, row.country),
            post=cast(str, row.post),
            lodging_rate=cast(int, row.lodging_rate),
            mie_rate=cast(int, row.mie_rate),
            total_rate=cast(int, row.total_rate),
            extracted_at=_aware_utc(cast(datetime, row.extracted_at)),
            strategy_used=ParseStrategy(cast(str, row.strategy_used)),
            season_begin=cast("str | None", row.season_begin),
            season_end=cast("str | None", row.season_end),
            footnote=cast("str | None", row.footnote),
            effective_date=cast("str | None", row.effective_date),
        )
        return CacheEntry(
            location_code=record.location_code,
            record=record,
            stored_at=_aware_utc(cast(datetime, row.stored_at)),
        )


__all__ = ["SQLiteCacheBackend"]
