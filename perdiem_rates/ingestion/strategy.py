"""Abstractions for pluggable rate page sources."""

from __future__ import annotations

from typing import Protocol


class RatePageSource(Protocol):
    """Contract for fetching the raw per diem HTML for a location code.

    Implementations run the whole upstream conversation for one lookup and
    return the HTML of the rate table page. They must not retry internally.
    """

    def fetch_rate_page(self, location_code: str) -> str:
        ...  # pragma: no cover - protocol definition


__all__ = ["RatePageSource"]
