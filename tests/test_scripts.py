from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import pytest

from perdiem_rates import LookupSettings, PerDiemRates
from perdiem_rates.errors import NetworkError
from perdiem_rates.lookup import BatchResult
from perdiem_rates.scripts import lookup_rate
from perdiem_rates.seeds import populate_rates

from conftest import LINZ_PAGE


class _StaticSource:
    def __init__(self, outcome: Any) -> None:
        self.outcome = outcome
        self.codes: list[str] = []

    def fetch_rate_page(self, location_code: str) -> str:
        self.codes.append(location_code)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def _patch_facade(monkeypatch: pytest.MonkeyPatch, module: Any, source: _StaticSource) -> list[Any]:
    urls: list[Any] = []
    settings = LookupSettings(retry_delay_base=0, rate_limit_gap=0)

    def _factory(cache_url: Any = None) -> PerDiemRates:
        urls.append(cache_url)
        return PerDiemRates(cache_url, settings=settings, source=source)

    monkeypatch.setattr(module, "PerDiemRates", _factory)
    return urls


class TestLookupRateCli:
    def test_json_output(self, monkeypatch, capsys) -> None:
        _patch_facade(monkeypatch, lookup_rate, _StaticSource(LINZ_PAGE))

        exit_code = lookup_rate.main(["11410", "--json"])

        payload = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert payload["success"] is True
        assert payload["locationCode"] == "11410"
        assert payload["lodgingRate"] == 193
        assert payload["totalRate"] == 345
        assert payload["fallback"] is False

    def test_text_output(self, monkeypatch, capsys) -> None:
        _patch_facade(monkeypatch, lookup_rate, _StaticSource(LINZ_PAGE))

        assert lookup_rate.main(["11410"]) == 0

        out = capsys.readouterr().out
        assert "AUSTRIA - Linz (11410)" in out
        assert "Total: $345" in out

    def test_failure_reports_error(self, monkeypatch, capsys) -> None:
        _patch_facade(monkeypatch, lookup_rate, _StaticSource(NetworkError("down")))

        exit_code = lookup_rate.main(["11410", "--json"])

        payload = json.loads(capsys.readouterr().out)
        assert exit_code == 1
        assert payload == {"success": False, "locationCode": "11410", "error": "down"}

    def test_invalid_code_goes_to_stderr(self, monkeypatch, capsys) -> None:
        source = _StaticSource(LINZ_PAGE)
        _patch_facade(monkeypatch, lookup_rate, source)

        assert lookup_rate.main(["12"]) == 1
        assert "No data for 12" in capsys.readouterr().err
        assert source.codes == []

    def test_verbose_enables_debug_logging(self, monkeypatch) -> None:
        levels: list[Any] = []
        _patch_facade(monkeypatch, lookup_rate, _StaticSource(LINZ_PAGE))
        monkeypatch.setattr(lookup_rate, "set_log_level", levels.append)

        assert lookup_rate.main(["11410", "--verbose"]) == 0
        assert levels == [logging.DEBUG]

    def test_cache_argument_is_forwarded(self, monkeypatch, tmp_path: Path) -> None:
        urls = _patch_facade(monkeypatch, lookup_rate, _StaticSource(LINZ_PAGE))
        cache_path = str(tmp_path / "cache.json")

        lookup_rate.main(["11410", "--cache", cache_path, "--refresh"])

        assert urls == [cache_path]


class TestPopulateRates:
    def test_parse_args_defaults(self) -> None:
        args = populate_rates.parse_args([])

        assert args.codes == []
        assert args.force_refresh is True
        assert args.max_workers == 1
        assert args.dry_run is False

    def test_parse_args_use_cache(self) -> None:
        args = populate_rates.parse_args(["11410", "--use-cache", "--workers", "3"])

        assert args.codes == ["11410"]
        assert args.force_refresh is False
        assert args.max_workers == 3

    def test_read_codes_file_ignores_comments(self, tmp_path: Path) -> None:
        path = tmp_path / "codes.txt"
        path.write_text("# sample posts\n11410\n\n10106  # Vienna\n", encoding="utf-8")

        assert populate_rates.read_codes_file(path) == ["11410", "10106"]

    def test_dry_run_skips_network(self) -> None:
        result = populate_rates.seed_rates(["11410"], dry_run=True)

        assert result.results == []
        assert result.errors == []

    def test_seed_rates_with_client(self, tmp_path: Path) -> None:
        source = _StaticSource(LINZ_PAGE)
        settings = LookupSettings(rate_limit_gap=0)
        client = PerDiemRates(str(tmp_path / "cache.json"), settings=settings, source=source)

        result = populate_rates.seed_rates(["11410", "10106", "11410"], client=client)

        assert source.codes == ["11410", "10106"]
        assert [record.location_code for record in result.results] == ["11410", "10106"]
        assert client.status()["cache"]["entries"] == 2

    def test_main_defaults_to_known_codes(self, monkeypatch) -> None:
        captured: dict[str, Any] = {}

        def _fake_seed(codes, **kwargs):
            captured["codes"] = list(codes)
            captured.update(kwargs)
            return BatchResult()

        monkeypatch.setattr(populate_rates, "seed_rates", _fake_seed)

        assert populate_rates.main(["--cache", "memory://"]) == 0
        assert captured["codes"] == ["11908", "10104", "11410", "10106", "10244"]
        assert captured["cache_url"] == "memory://"
        assert captured["force_refresh"] is True

    def test_main_reports_failures(self, monkeypatch) -> None:
        source = _StaticSource(NetworkError("down"))
        urls = _patch_facade(monkeypatch, populate_rates, source)

        assert populate_rates.main(["11410", "--cache", "memory://"]) == 1
        assert urls == ["memory://"]
