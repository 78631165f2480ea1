"""Data models shared across the scraping, parsing and caching modules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

UNKNOWN = "Unknown"


class ParseStrategy(str, Enum):
    """Cascade stage that produced a rate record, ordered by priority."""

    STRUCTURED_TABLE = "structured-table"
    TITLE_ATTRIBUTES = "title-attributes"
    GENERIC_PATTERN = "generic-pattern"
    BARE_NUMBERS = "bare-numbers"

    @property
    def confidence(self) -> float:
        return _CONFIDENCE[self]


_CONFIDENCE: dict[ParseStrategy, float] = {
    ParseStrategy.STRUCTURED_TABLE: 0.98,
    ParseStrategy.TITLE_ATTRIBUTES: 0.9,
    ParseStrategy.GENERIC_PATTERN: 0.7,
    ParseStrategy.BARE_NUMBERS: 0.4,
}


@dataclass(frozen=True, slots=True)
class RateRecord:
    """Normalised per diem rates for a single post."""

    location_code: str
    country: str
    post: str
    lodging_rate: int
    mie_rate: int
    total_rate: int
    extracted_at: datetime
    strategy_used: ParseStrategy
    season_begin: str | None = None
    season_end: str | None = None
    footnote: str | None = None
    effective_date: str | None = None
    fallback: bool = False

    @property
    def confidence(self) -> float:
        return self.strategy_used.confidence

    def to_dict(self) -> dict[str, Any]:
        """Serialise into the camelCase JSON shape used by the file cache."""

        return {
            "locationCode": self.location_code,
            "country": self.country,
            "post": self.post,
            "lodgingRate": self.lodging_rate,
            "mieRate": self.mie_rate,
            "totalRate": self.total_rate,
            "extractedAt": self.extracted_at.isoformat(),
            "strategyUsed": self.strategy_used.value,
            "confidence": self.confidence,
            "seasonBegin": self.season_begin,
            "seasonEnd": self.season_end,
            "footnote": self.footnote,
            "effectiveDate": self.effective_date,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "RateRecord":
        extracted_at = datetime.fromisoformat(payload["extractedAt"])
        if extracted_at.tzinfo is None:
            extracted_at = extracted_at.replace(tzinfo=timezone.utc)
        return cls(
            location_code=str(payload["locationCode"]),
            country=payload.get("country") or UNKNOWN,
            post=payload.get("post") or UNKNOWN,
            lodging_rate=int(payload["lodgingRate"]),
            mie_rate=int(payload["mieRate"]),
            total_rate=int(payload["totalRate"]),
            extracted_at=extracted_at,
            strategy_used=ParseStrategy(payload["strategyUsed"]),
            season_begin=payload.get("seasonBegin"),
            season_end=payload.get("seasonEnd"),
            footnote=payload.get("footnote"),
            effective_date=payload.get("effectiveDate"),
        )


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A stored rate record together with the time it was written."""

    location_code: str
    record: RateRecord
    stored_at: datetime


@dataclass(frozen=True, slots=True)
class FormFields:
    """Hidden form values the upstream site binds to a session."""

    country_code: str
    post_code: str


@dataclass(frozen=True, slots=True)
class SessionContext:
    """Per-lookup upstream session; never persisted or shared."""

    location_code: str
    cookie_header: str
    country_code: str
    post_code: str


@dataclass(frozen=True, slots=True)
class RejectedCandidate:
    """A parsed candidate discarded only because it fell outside the rate bounds."""

    strategy: ParseStrategy
    lodging_rate: int
    mie_rate: int
    total_rate: int


__all__ = [
    "UNKNOWN",
    "CacheEntry",
    "FormFields",
    "ParseStrategy",
    "RateRecord",
    "RejectedCandidate",
    "SessionContext",
]
