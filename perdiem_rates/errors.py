"""Error taxonomy surfaced by the per diem lookup pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:  # pragma: no cover - imported only for type checking
    from perdiem_rates.ingestion.models import RejectedCandidate


class PerDiemError(Exception):
    """Base class for every error raised by :mod:`perdiem_rates`."""

    def __init__(self, message: str, *, location_code: str | None = None) -> None:
        super().__init__(message)
        self.location_code = location_code


class InvalidLocationCode(PerDiemError):
    """The location code does not resolve to a post on the allowances site.

    Never retried: the code itself is wrong, not the connection.
    """


class NetworkError(PerDiemError):
    """Transport failure, HTTP error status or timeout talking to the upstream site."""


class NoDataFound(PerDiemError):
    """Every parser strategy failed to produce an in-bounds rate record."""

    def __init__(
        self,
        message: str,
        *,
        location_code: str | None = None,
        rejected: Sequence["RejectedCandidate"] = (),
    ) -> None:
        super().__init__(message, location_code=location_code)
        self.rejected = tuple(rejected)


__all__ = ["PerDiemError", "InvalidLocationCode", "NetworkError", "NoDataFound"]
