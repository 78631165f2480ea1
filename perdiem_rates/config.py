"""Tunable policy shared by the scraper, parser and lookup orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

ALLOWANCES_BASE_URL = "https://allowances.state.gov/web920"

DEFAULT_USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Edge/120.0.0.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)


@dataclass(frozen=True)
class AllowancesEndpoints:
    """URLs and form field names used by the allowances per diem form."""

    base_url: str = ALLOWANCES_BASE_URL
    redirect_path: str = "/LinkRedirect.asp"
    form_path: str = "/per_diem_action.asp"
    redirect_destination: str = "per_diem_action"
    country_field: str = "CountryCode"
    post_field: str = "PostCode"
    menu_hide_field: str = "MenuHide"

    @property
    def redirect_url(self) -> str:
        return f"{self.base_url}{self.redirect_path}"

    @property
    def form_url(self) -> str:
        return f"{self.base_url}{self.form_path}"


@dataclass(frozen=True)
class RateBounds:
    """Plausible ranges for extracted rates.

    The upstream site documents no limits; these are heuristics that reject
    dates and unrelated numbers masquerading as rates.
    """

    max_lodging: int = 2000
    max_mie: int = 1000
    max_total: int = 3000

    def accepts(self, lodging: int, mie: int, total: int) -> bool:
        return (
            0 <= lodging <= self.max_lodging
            and 0 <= mie <= self.max_mie
            and 0 <= total <= self.max_total
        )


@dataclass(frozen=True)
class LookupSettings:
    """Retry, timeout, throttling and caching policy for rate lookups."""

    timeout: float = 15.0
    max_attempts: int = 3
    retry_delay_base: float = 2.0
    rate_limit_gap: float = 1.0
    staleness: timedelta = timedelta(hours=24)
    bounds: RateBounds = field(default_factory=RateBounds)
    user_agents: tuple[str, ...] = DEFAULT_USER_AGENTS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.retry_delay_base < 0 or self.rate_limit_gap < 0:
            raise ValueError("delays must not be negative")

    def retry_delay(self, attempt: int) -> float:
        """Return the pause taken before retry number ``attempt`` (linear backoff)."""

        return self.retry_delay_base * attempt


__all__ = [
    "ALLOWANCES_BASE_URL",
    "DEFAULT_USER_AGENTS",
    "AllowancesEndpoints",
    "LookupSettings",
    "RateBounds",
]
