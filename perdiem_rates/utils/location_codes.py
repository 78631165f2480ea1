"""Helpers and invariants for State Department location codes (P-Codes)."""

from __future__ import annotations

import re

from perdiem_rates.errors import InvalidLocationCode

LOCATION_CODE_LENGTH = 5

# Posts verified against the live site; handy for smoke tests and examples.
KNOWN_LOCATION_CODES: dict[str, str] = {
    "11908": "ALBANIA - Other",
    "10104": "ALBANIA - Tirana",
    "11410": "AUSTRIA - Linz",
    "10106": "AUSTRIA - Vienna",
    "10244": "AUSTRALIA - Adelaide",
}


def normalise_location_code(value: object) -> str:
    """Strip non-digits and ensure a five digit code remains."""

    digits = re.sub(r"[^0-9]", "", str(value or ""))
    if len(digits) != LOCATION_CODE_LENGTH:
        raise InvalidLocationCode(
            f"Location codes must contain exactly {LOCATION_CODE_LENGTH} digits: {value!r}",
            location_code=str(value),
        )
    return digits


__all__ = ["KNOWN_LOCATION_CODES", "LOCATION_CODE_LENGTH", "normalise_location_code"]
