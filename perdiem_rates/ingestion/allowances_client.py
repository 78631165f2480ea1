"""requests-based client for the State Department per diem form."""

from __future__ import annotations

import copy
import random
import re
from typing import Callable, Optional

import requests
from bs4 import BeautifulSoup

from perdiem_rates.config import AllowancesEndpoints, LookupSettings
from perdiem_rates.errors import InvalidLocationCode, NetworkError
from perdiem_rates.ingestion.models import FormFields, SessionContext
from perdiem_rates.utils.logger import get_logger
from perdiem_rates.utils.rate_limit import RateLimiter

LOGGER = get_logger(__name__)

SessionFactory = Callable[[], requests.Session]


class AllowancesClient:
    """Runs the redirect → form → submit conversation for one location code.

    Every call to :meth:`fetch_rate_page` opens its own ``requests.Session`` so
    concurrent lookups never share cookies. Nothing here retries; failures are
    raised as :class:`NetworkError` or :class:`InvalidLocationCode`.
    """

    def __init__(
        self,
        *,
        settings: Optional[LookupSettings] = None,
        endpoints: Optional[AllowancesEndpoints] = None,
        session_factory: Optional[SessionFactory] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.settings = settings or LookupSettings()
        self.endpoints = endpoints or AllowancesEndpoints()
        self._session_factory = session_factory or requests.Session
        self.rate_limiter = rate_limiter

    def throttled(self, rate_limiter: RateLimiter) -> "AllowancesClient":
        """Return a copy of this client whose requests wait on ``rate_limiter``."""

        clone = copy.copy(self)
        clone.rate_limiter = rate_limiter
        return clone

    def _new_session(self) -> requests.Session:
        http = self._session_factory()
        http.headers.update(
            {
                "User-Agent": random.choice(self.settings.user_agents),
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.5",
            }
        )
        return http

    def fetch_rate_page(self, location_code: str) -> str:
        """Return the per diem HTML for ``location_code``."""

        http = self._new_session()
        try:
            context = self.open_session(http, location_code)
            return self.submit_rates(http, context)
        finally:
            http.close()

    def open_session(self, http: requests.Session, location_code: str) -> SessionContext:
        cookie_header = self.establish_session(http, location_code)
        fields = self.extract_form_fields(http, cookie_header, location_code)
        return SessionContext(
            location_code=location_code,
            cookie_header=cookie_header,
            country_code=fields.country_code,
            post_code=fields.post_code,
        )

    def establish_session(self, http: requests.Session, location_code: str) -> str:
        """Hit the redirect endpoint and return the session cookies as one header."""

        response = self._request(
            http,
            "GET",
            self.endpoints.redirect_url,
            location_code,
            params={"PCode": location_code, "Dest": self.endpoints.redirect_destination},
            allow_redirects=False,
        )
        cookie_header = "; ".join(f"{cookie.name}={cookie.value}" for cookie in response.cookies)
        LOGGER.debug("Session cookies for %s: %s", location_code, cookie_header or "none")
        return cookie_header

    def extract_form_fields(
        self, http: requests.Session, cookie_header: str, location_code: str
    ) -> FormFields:
        """Read the hidden ``CountryCode``/``PostCode`` inputs bound to the session."""

        response = self._request(
            http,
            "GET",
            self.endpoints.form_url,
            location_code,
            headers=self._cookie_headers(cookie_header),
        )
        country_code = self._hidden_value(response.text, self.endpoints.country_field)
        if not country_code:
            raise InvalidLocationCode(
                f"Invalid location code {location_code}: no country code found",
                location_code=location_code,
            )
        post_code = self._hidden_value(response.text, self.endpoints.post_field) or location_code
        LOGGER.debug(
            "Form fields for %s: CountryCode=%s, PostCode=%s", location_code, country_code, post_code
        )
        return FormFields(country_code=country_code, post_code=post_code)

    def submit_rates(self, http: requests.Session, context: SessionContext) -> str:
        """POST the completed form and return the raw rate page HTML."""

        payload = {
            self.endpoints.menu_hide_field: "1",
            self.endpoints.country_field: context.country_code,
            self.endpoints.post_field: context.post_code,
        }
        headers = self._cookie_headers(context.cookie_header)
        headers["Referer"] = self.endpoints.form_url
        response = self._request(
            http,
            "POST",
            self.endpoints.form_url,
            context.location_code,
            data=payload,
            headers=headers,
        )
        LOGGER.debug("Rate page for %s: %s characters", context.location_code, len(response.text))
        return response.text

    def _request(
        self,
        http: requests.Session,
        method: str,
        url: str,
        location_code: str,
        **kwargs,
    ) -> requests.Response:
        if self.rate_limiter is not None:
            self.rate_limiter.wait()
        try:
            response = http.request(method, url, timeout=self.settings.timeout, **kwargs)
        except requests.Timeout as exc:
            raise NetworkError(
                f"Request to {url} timed out after {self.settings.timeout}s",
                location_code=location_code,
            ) from exc
        except requests.RequestException as exc:
            raise NetworkError(
                f"Request to {url} failed: {exc}", location_code=location_code
            ) from exc
        self._raise_with_context(response, url, location_code)
        return response

    @staticmethod
    def _raise_with_context(response: requests.Response, url: str, location_code: str) -> None:
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            status = response.status_code
            hint = " The allowances site is throttling requests." if status == 429 else ""
            raise NetworkError(
                f"Allowances site responded with HTTP {status} for {url}.{hint}",
                location_code=location_code,
            ) from exc

    @staticmethod
    def _cookie_headers(cookie_header: str) -> dict[str, str]:
        return {"Cookie": cookie_header} if cookie_header else {}

    @staticmethod
    def _hidden_value(html: str, name: str) -> str | None:
        soup = BeautifulSoup(html, "html.parser")
        element = soup.find("input", {"name": name})
        if element is not None and element.get("value"):
            return str(element["value"]).strip()
        # Some pages ship markup broken enough that the tree builder drops the input.
        match = re.search(rf'name="{re.escape(name)}"[^>]*value="([^"]+)"', html)
        return match.group(1).strip() if match else None


__all__ = ["AllowancesClient", "SessionFactory"]
