"""CLI entry point for looking up the per diem rate of one location code."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Sequence

from perdiem_rates import PerDiemRates
from perdiem_rates.errors import PerDiemError
from perdiem_rates.utils.location_codes import KNOWN_LOCATION_CODES
from perdiem_rates.utils.logger import set_log_level


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    epilog = "Known posts: " + ", ".join(
        f"{code} ({label})" for code, label in KNOWN_LOCATION_CODES.items()
    )
    parser = argparse.ArgumentParser(description=__doc__, epilog=epilog)
    parser.add_argument("location_code", help="Five digit State Department location code")
    parser.add_argument("--json", dest="as_json", action="store_true", help="Print JSON output")
    parser.add_argument(
        "--refresh",
        dest="force_refresh",
        action="store_true",
        help="Ignore a fresh cached record and query the allowances site",
    )
    parser.add_argument(
        "--cache",
        dest="cache_url",
        default=None,
        help="Cache URL or .json path (defaults to an in-memory cache)",
    )
    parser.add_argument("--verbose", action="store_true", help="Log debug output to stderr")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    if args.verbose:
        set_log_level(logging.DEBUG)
    with PerDiemRates(args.cache_url) as rates:
        try:
            record = rates.lookup_rate(args.location_code, force_refresh=args.force_refresh)
        except PerDiemError as exc:
            if args.as_json:
                print(json.dumps({"success": False, "locationCode": args.location_code, "error": str(exc)}))
            else:
                print(f"No data for {args.location_code}: {exc}", file=sys.stderr)
            return 1

    if args.as_json:
        print(json.dumps({"success": True, **record.to_dict(), "fallback": record.fallback}, indent=2))
    else:
        print(f"{record.country} - {record.post} ({record.location_code})")
        print(f"Lodging: ${record.lodging_rate}, M&IE: ${record.mie_rate}, Total: ${record.total_rate}")
        if record.fallback:
            print("Warning: upstream lookup failed; showing cached rates", file=sys.stderr)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
