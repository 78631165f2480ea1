"""Warm the rate cache for a list of location codes."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Iterable, Sequence

from perdiem_rates import PerDiemRates
from perdiem_rates.db import DEFAULT_JSON_CACHE_PATH
from perdiem_rates.lookup import BatchResult
from perdiem_rates.utils.location_codes import KNOWN_LOCATION_CODES
from perdiem_rates.utils.logger import get_logger, set_log_level

LOGGER = get_logger(__name__)

__all__ = ["seed_rates", "read_codes_file", "parse_args", "main"]


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "codes",
        nargs="*",
        help="Location codes to refresh (defaults to the known sample posts)",
    )
    parser.add_argument(
        "--codes-file",
        dest="codes_file",
        help="Text file with one location code per line ('#' starts a comment)",
    )
    parser.add_argument(
        "--cache",
        dest="cache_url",
        default=str(DEFAULT_JSON_CACHE_PATH),
        help="Cache URL or .json path (memory://, file://, sqlite:///, mongodb://)",
    )
    parser.add_argument(
        "--workers",
        dest="max_workers",
        type=int,
        default=1,
        help="Concurrent lookups; upstream requests stay rate limited",
    )
    parser.add_argument(
        "--use-cache",
        dest="force_refresh",
        action="store_false",
        help="Skip codes that already have a fresh cached record",
    )
    parser.add_argument(
        "--dry-run",
        dest="dry_run",
        action="store_true",
        help="Only list the codes that would be fetched",
    )
    parser.add_argument("--verbose", action="store_true", help="Log debug output")
    parser.set_defaults(force_refresh=True)
    return parser.parse_args(argv)


def read_codes_file(path: str | Path) -> list[str]:
    codes: list[str] = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        cleaned = line.split("#", 1)[0].strip()
        if cleaned:
            codes.append(cleaned)
    return codes


def _dedupe(codes: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for code in codes:
        seen.setdefault(code, None)
    return list(seen)


def seed_rates(
    codes: Iterable[str],
    *,
    cache_url: str | None = None,
    force_refresh: bool = True,
    max_workers: int = 1,
    dry_run: bool = False,
    client: PerDiemRates | None = None,
) -> BatchResult:
    """Fetch rates for ``codes`` and store them in the configured cache."""

    pending = _dedupe(codes)
    if dry_run:
        LOGGER.info("Dry-run enabled; would fetch %s codes: %s", len(pending), ", ".join(pending))
        return BatchResult()
    rates = client or PerDiemRates(cache_url)
    try:
        result = rates.lookup_batch(pending, force_refresh=force_refresh, max_workers=max_workers)
    finally:
        if client is None:
            rates.close()
    for failure in result.errors:
        LOGGER.error("Failed to seed %s: %s", failure.location_code, failure.error)
    LOGGER.info(
        "Seeded %s of %s location codes (%s fell back to cached data)",
        len(result.results),
        result.total_requested,
        sum(1 for record in result.results if record.fallback),
    )
    return result


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    if args.verbose:
        set_log_level(logging.DEBUG)
    codes = list(args.codes)
    if args.codes_file:
        codes.extend(read_codes_file(args.codes_file))
    if not codes:
        codes = list(KNOWN_LOCATION_CODES)
    result = seed_rates(
        codes,
        cache_url=args.cache_url,
        force_refresh=args.force_refresh,
        max_workers=args.max_workers,
        dry_run=args.dry_run,
    )
    return 1 if result.errors else 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
