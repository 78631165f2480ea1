"""Extract per diem rates from the allowances site's semi-structured HTML.

The rate page is not a versioned API: column order, labels and whitespace
drift between posts and site revisions. Extraction therefore runs a fixed
cascade of strategies, from structurally anchored to purely positional, and
returns the first candidate whose numbers fall inside :class:`RateBounds`.
Candidates rejected only on bounds are kept on the result for review.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterator

from bs4 import BeautifulSoup
from bs4.element import Tag

from perdiem_rates.config import RateBounds
from perdiem_rates.ingestion.models import UNKNOWN, ParseStrategy, RateRecord, RejectedCandidate
from perdiem_rates.utils.logger import get_logger

LOGGER = get_logger(__name__)

HEADER_KEYWORDS = ("country", "post", "lodging", "per diem")
MIN_TABLE_COLUMNS = 7

RATE_TITLES = {
    "lodging": re.compile(r"^\s*Maximum\s+Lodging\s+Rate\s*$", re.IGNORECASE),
    "mie": re.compile(r"^\s*M\s*&\s*IE\s+Rate\s*$", re.IGNORECASE),
    "total": re.compile(r"^\s*Maximum\s+Per\s+Diem\s+Rate\s*$", re.IGNORECASE),
}

_GENERIC_ROW = re.compile(
    r">\s*([A-Z][A-Z .'()\-]*?)\s*</td>\s*<td[^>]*>\s*([^<]+?)\s*</td>"
    r"[\s\S]*?>\s*(\d{1,4})\s*</td>\s*<td[^>]*>\s*(\d{1,4})\s*</td>\s*<td[^>]*>\s*(\d{1,4})(?!\d)",
    re.IGNORECASE,
)
_BARE_NUMBERS = re.compile(
    r"(?=(?<![\d/.,:\-])\$?(\d{1,4})\s+\$?(\d{1,4})\s+\$?(\d{1,4})(?![\d/.,:]))"
)
_NUMBER = re.compile(r"-?\d[\d,]*(?:\.\d+)?")
_RATE_PAGE_MARKERS = ("per diem", "lodging", "m & ie")


@dataclass(slots=True)
class _Candidate:
    strategy: ParseStrategy
    lodging: int
    mie: int
    total: int
    country: str = UNKNOWN
    post: str = UNKNOWN
    season_begin: str | None = None
    season_end: str | None = None
    footnote: str | None = None
    effective_date: str | None = None


@dataclass(slots=True)
class ParseResult:
    """Outcome of :func:`parse_rate_page`; ``record is None`` means no data found."""

    record: RateRecord | None
    rejected: list[RejectedCandidate] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.record is not None


def _cell_text(cell: Tag) -> str:
    return " ".join(cell.stripped_strings).strip()


def _clean_text(value: str | None) -> str:
    return re.sub(r"\s+", " ", value or "").strip()


def _parse_int(value: object | None) -> int | None:
    if value is None:
        return None
    match = _NUMBER.search(str(value))
    if not match:
        return None
    try:
        return int(round(float(match.group(0).replace(",", ""))))
    except ValueError:
        return None


def _resolve_total(lodging: int, mie: int, total: int | None) -> int:
    return total if total else lodging + mie


def _own_rows(table: Tag) -> list[Tag]:
    return [row for row in table.find_all("tr") if row.find_parent("table") is table]


def _is_rate_table(header_cells: list[str]) -> bool:
    lowered = [cell.lower() for cell in header_cells]
    return all(any(keyword in cell for cell in lowered) for keyword in HEADER_KEYWORDS)


def _structured_table(soup: BeautifulSoup, _html: str) -> Iterator[_Candidate]:
    for table in soup.find_all("table"):
        rows = _own_rows(table)
        if len(rows) < 2:
            continue
        headers = [_cell_text(cell) for cell in rows[0].find_all(["th", "td"])]
        if not _is_rate_table(headers):
            continue
        for row in rows[1:]:
            cells = [_clean_text(_cell_text(cell)) for cell in row.find_all("td")]
            if len(cells) < MIN_TABLE_COLUMNS:
                continue
            country, post = cells[0], cells[1]
            lodging, mie = _parse_int(cells[4]), _parse_int(cells[5])
            if len(country) < 2 or len(post) < 2 or lodging is None or mie is None:
                continue
            yield _Candidate(
                strategy=ParseStrategy.STRUCTURED_TABLE,
                country=country.upper(),
                post=post,
                lodging=lodging,
                mie=mie,
                total=_resolve_total(lodging, mie, _parse_int(cells[6])),
                season_begin=cells[2] or None,
                season_end=cells[3] or None,
                footnote=(cells[7] or None) if len(cells) > 7 else None,
                effective_date=(cells[8] or None) if len(cells) > 8 else None,
            )
            # Only the first qualifying row of a table describes the post.
            break


def _first_titled_number(soup: BeautifulSoup, pattern: re.Pattern[str]) -> int | None:
    # Labels share the title with the value cell; the first number wins.
    for element in soup.find_all(attrs={"title": pattern}):
        value = _parse_int(_cell_text(element))
        if value is not None:
            return value
    return None


def _title_attributes(soup: BeautifulSoup, _html: str) -> Iterator[_Candidate]:
    values: dict[str, int] = {}
    for key, pattern in RATE_TITLES.items():
        value = _first_titled_number(soup, pattern)
        if value is None:
            return
        values[key] = value
    yield _Candidate(
        strategy=ParseStrategy.TITLE_ATTRIBUTES,
        lodging=values["lodging"],
        mie=values["mie"],
        total=_resolve_total(values["lodging"], values["mie"], values["total"]),
    )


def _generic_pattern(_soup: BeautifulSoup, html: str) -> Iterator[_Candidate]:
    for match in _GENERIC_ROW.finditer(html):
        country, post = _clean_text(match.group(1)), _clean_text(match.group(2))
        lodging, mie, total = (int(match.group(index)) for index in (3, 4, 5))
        yield _Candidate(
            strategy=ParseStrategy.GENERIC_PATTERN,
            country=country.upper() or UNKNOWN,
            post=post or UNKNOWN,
            lodging=lodging,
            mie=mie,
            total=_resolve_total(lodging, mie, total),
        )


def _bare_numbers(soup: BeautifulSoup, _html: str) -> Iterator[_Candidate]:
    text = soup.get_text(" ")
    for match in _BARE_NUMBERS.finditer(text):
        lodging, mie, total = (int(value) for value in match.groups())
        yield _Candidate(
            strategy=ParseStrategy.BARE_NUMBERS,
            lodging=lodging,
            mie=mie,
            total=total,
        )


Extractor = Callable[[BeautifulSoup, str], Iterator[_Candidate]]

CASCADE: tuple[tuple[ParseStrategy, Extractor], ...] = (
    (ParseStrategy.STRUCTURED_TABLE, _structured_table),
    (ParseStrategy.TITLE_ATTRIBUTES, _title_attributes),
    (ParseStrategy.GENERIC_PATTERN, _generic_pattern),
    (ParseStrategy.BARE_NUMBERS, _bare_numbers),
)


def _upstream_error(soup: BeautifulSoup) -> str | None:
    for paragraph in soup.find_all("p", style=re.compile(r"color:\s*red", re.IGNORECASE)):
        text = _clean_text(_cell_text(paragraph))
        if "error" in text.lower():
            return text
    return None


def _looks_like_rate_page(html: str) -> bool:
    lowered = html.lower().replace("&amp;", "&")
    return any(marker in lowered for marker in _RATE_PAGE_MARKERS)


def parse_rate_page(
    html: str,
    location_code: str,
    *,
    bounds: RateBounds | None = None,
    clock: Callable[[], datetime] | None = None,
) -> ParseResult:
    """Run the extraction cascade over ``html`` for ``location_code``."""

    bounds = bounds or RateBounds()
    result = ParseResult(record=None)
    if not _looks_like_rate_page(html):
        LOGGER.info("Page for %s does not contain per diem data", location_code)
        return result

    soup = BeautifulSoup(html, "html.parser")
    error_text = _upstream_error(soup)
    if error_text:
        LOGGER.info("Allowances site reported an error for %s: %s", location_code, error_text)
        return result

    for strategy, extractor in CASCADE:
        for candidate in extractor(soup, html):
            if bounds.accepts(candidate.lodging, candidate.mie, candidate.total):
                result.record = _to_record(candidate, location_code, clock)
                LOGGER.info(
                    "Parsed %s via %s: %s - %s, lodging %s, M&IE %s, total %s",
                    location_code,
                    strategy.value,
                    candidate.country,
                    candidate.post,
                    candidate.lodging,
                    candidate.mie,
                    candidate.total,
                )
                return result
            result.rejected.append(
                RejectedCandidate(
                    strategy=strategy,
                    lodging_rate=candidate.lodging,
                    mie_rate=candidate.mie,
                    total_rate=candidate.total,
                )
            )
            if strategy is not ParseStrategy.BARE_NUMBERS:
                LOGGER.warning(
                    "Rejected out-of-bounds %s candidate for %s (lodging %s, M&IE %s, total %s); "
                    "flagged for manual review",
                    strategy.value,
                    location_code,
                    candidate.lodging,
                    candidate.mie,
                    candidate.total,
                )

    LOGGER.warning("No per diem patterns matched for %s", location_code)
    return result


def _to_record(
    candidate: _Candidate,
    location_code: str,
    clock: Callable[[], datetime] | None,
) -> RateRecord:
    extracted_at = clock() if clock is not None else datetime.now(timezone.utc)
    return RateRecord(
        location_code=location_code,
        country=candidate.country or UNKNOWN,
        post=candidate.post or UNKNOWN,
        lodging_rate=candidate.lodging,
        mie_rate=candidate.mie,
        total_rate=candidate.total,
        extracted_at=extracted_at,
        strategy_used=candidate.strategy,
        season_begin=candidate.season_begin,
        season_end=candidate.season_end,
        footnote=candidate.footnote,
        effective_date=candidate.effective_date,
    )


__all__ = ["CASCADE", "HEADER_KEYWORDS", "ParseResult", "parse_rate_page"]
