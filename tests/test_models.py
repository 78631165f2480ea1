from __future__ import annotations

from datetime import datetime, timezone

import pytest

from perdiem_rates.ingestion.models import UNKNOWN, ParseStrategy, RateRecord


def _record(**overrides) -> RateRecord:
    values = dict(
        location_code="11410",
        country="AUSTRIA",
        post="Linz",
        lodging_rate=193,
        mie_rate=152,
        total_rate=345,
        extracted_at=datetime(2025, 10, 1, 12, 0, tzinfo=timezone.utc),
        strategy_used=ParseStrategy.STRUCTURED_TABLE,
    )
    values.update(overrides)
    return RateRecord(**values)


@pytest.mark.parametrize(
    ("strategy", "confidence"),
    [
        (ParseStrategy.STRUCTURED_TABLE, 0.98),
        (ParseStrategy.TITLE_ATTRIBUTES, 0.9),
        (ParseStrategy.GENERIC_PATTERN, 0.7),
        (ParseStrategy.BARE_NUMBERS, 0.4),
    ],
)
def test_confidence_follows_strategy(strategy: ParseStrategy, confidence: float) -> None:
    assert _record(strategy_used=strategy).confidence == pytest.approx(confidence)


def test_to_dict_uses_camel_case_and_omits_fallback() -> None:
    payload = _record(fallback=True, footnote="1").to_dict()

    assert payload["locationCode"] == "11410"
    assert payload["mieRate"] == 152
    assert payload["extractedAt"] == "2025-10-01T12:00:00+00:00"
    assert payload["strategyUsed"] == "structured-table"
    assert payload["footnote"] == "1"
    assert "fallback" not in payload


def test_from_dict_fills_defaults_and_assumes_utc() -> None:
    record = RateRecord.from_dict(
        {
            "locationCode": 10244,
            "country": "",
            "lodgingRate": "182",
            "mieRate": 81,
            "totalRate": 263,
            "extractedAt": "2025-10-01T08:30:00",
            "strategyUsed": "bare-numbers",
        }
    )

    assert record.location_code == "10244"
    assert record.country == UNKNOWN
    assert record.post == UNKNOWN
    assert record.lodging_rate == 182
    assert record.extracted_at.tzinfo == timezone.utc
    assert record.fallback is False


def test_records_are_immutable() -> None:
    record = _record()

    with pytest.raises(AttributeError):
        record.total_rate = 1  # type: ignore[misc]
