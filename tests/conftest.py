"""Shared fakes for the allowances site, clocks and sleeps."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest
import requests

LINZ_PAGE = """
<html>
  <body>
    <h2>Maximum Travel Per Diem Allowances for Foreign Areas</h2>
    <table class="perdiem">
      <tr>
        <th>Country</th><th>Post</th><th>Season Begin</th><th>Season End</th>
        <th>Maximum Lodging Rate</th><th>M &amp; IE Rate</th><th>Maximum Per Diem Rate</th>
        <th>Footnote Reference</th><th>Effective Date</th>
      </tr>
      <tr><td>AUSTRIA</td><td>Linz</td><td>01/01</td><td>12/31</td><td>193</td><td>152</td><td>345</td><td></td><td>10/01/2025</td></tr>
    </table>
  </body>
</html>
"""


def make_response(
    text: str = "",
    *,
    status: int = 200,
    cookies: dict[str, str] | None = None,
    url: str = "https://allowances.state.gov/web920/per_diem_action.asp",
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = text.encode("utf-8")
    response.encoding = "utf-8"
    response.url = url
    if cookies:
        response.cookies = requests.cookies.cookiejar_from_dict(cookies)
    return response


def form_page(country_code: str | None, post_code: str | None) -> str:
    inputs = ['<input type="hidden" name="MenuHide" value="1">']
    if country_code is not None:
        inputs.append(f'<input type="hidden" name="CountryCode" value="{country_code}">')
    if post_code is not None:
        inputs.append(f'<input type="hidden" name="PostCode" value="{post_code}">')
    return f"<html><body><form method=\"post\">{''.join(inputs)}</form></body></html>"


class FakeSite:
    """Stands in for allowances.state.gov; one ``FakeSession`` per lookup."""

    def __init__(self, pages: dict[str, tuple[str | None, str]]) -> None:
        self.pages = pages
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.sessions: list["FakeSession"] = []

    def session(self) -> "FakeSession":
        session = FakeSession(self)
        self.sessions.append(session)
        return session


class FakeSession:
    def __init__(self, site: FakeSite) -> None:
        self.site = site
        self.headers: dict[str, str] = {}
        self.code: str | None = None
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.site.calls.append((method, url, kwargs))
        if url.endswith("LinkRedirect.asp"):
            self.code = kwargs["params"]["PCode"]
            return make_response(status=302, cookies={"ASPSESSIONID": f"s{self.code}"})
        country_code, html = self.site.pages[self.code or ""]
        if method == "GET":
            return make_response(form_page(country_code, self.code))
        return make_response(html)

    def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 10, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def linz_page() -> str:
    return LINZ_PAGE


@pytest.fixture
def response_factory() -> Callable[..., requests.Response]:
    return make_response


@pytest.fixture
def fake_site(linz_page: str) -> FakeSite:
    return FakeSite({"11410": ("AU", linz_page), "99999": (None, "")})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()
