"""Tests for market upload normalization."""

from ecommind.analyzer.normalizers import (
    MarketDatasetNormalizer,
    parse_attributes,
    parse_numeric,
)


def _row(**overrides):
    row = {
        "period_start": "2026-02-01",
        "period_end": "2026-02-28",
        "scope": "niche",
        "channel": "MELI",
        "category": "Moda Feminina",
        "record_type": "listing",
        "identifier": "vestido-midi",
        "title": "  Vestido Midi Floral  ",
        "price_median": "129,90",
        "demand_index": "72",
        "growth_rate": "0.18",
        "sellers_top": "12",
    }
    row.update(overrides)
    return row


def test_parse_numeric_handles_strings_and_blanks():
    assert parse_numeric("129,90") == 129.9
    assert parse_numeric(" 42 ") == 42.0
    assert parse_numeric("") is None
    assert parse_numeric("n/a") is None
    assert parse_numeric(None) is None


def test_parse_attributes_keeps_raw_text_on_bad_json():
    assert parse_attributes('{"colors": ["Azul"]}') == {"colors": ["Azul"]}
    assert parse_attributes("cores: azul") == {"raw": "cores: azul"}
    assert parse_attributes(None) == {}


def test_valid_row_is_cleaned():
    [record], errors = MarketDatasetNormalizer.normalize([_row()])
    assert errors == []
    assert record.channel == "meli"
    assert record.title == "Vestido Midi Floral"
    assert record.price_median == 129.9
    assert record.sellers_top == 12
    assert record.attributes == {}


def test_unknown_channel_is_kept_as_unknown():
    [record], _ = MarketDatasetNormalizer.normalize([_row(channel="magalu")])
    assert record.channel == "unknown"


def test_dict_attributes_are_accepted():
    [record], _ = MarketDatasetNormalizer.normalize([_row(attributes={"sizes": ["P", "M"]})])
    assert record.attributes == {"sizes": ["P", "M"]}


def test_long_title_is_truncated():
    [record], _ = MarketDatasetNormalizer.normalize([_row(title="x" * 250)])
    assert len(record.title) == 200


def test_invalid_rows_are_reported_with_one_based_numbers():
    rows = [
        _row(),
        _row(demand_index="150"),
        _row(scope="galaxy"),
        "not-a-row",
        _row(period_start="01/02/2026"),
    ]
    valid, errors = MarketDatasetNormalizer.normalize(rows)

    assert len(valid) == 1
    assert [e.row for e in errors] == [2, 3, 4, 5]
    assert any("demand_index" in msg for msg in errors[0].errors)
    assert any("scope" in msg for msg in errors[1].errors)
    assert errors[2].errors == ["Row must be an object"]
    assert any("Invalid date format" in msg for msg in errors[3].errors)


def test_missing_identifier_is_invalid():
    valid, errors = MarketDatasetNormalizer.normalize([_row(identifier="")])
    assert valid == []
    assert any("identifier" in msg for msg in errors[0].errors)
