from __future__ import annotations

from utils.parsers import (
    clean_text,
    parse_address,
    parse_age,
    parse_apartment,
    parse_boolean,
    parse_date,
    parse_thousands,
    parse_value,
)


def test_parse_value_swedish_formats():
    assert parse_value("1 000 000") == 1000000.0
    assert parse_value("1,5") == 1.5
    assert parse_value("25%") == 0.25
    assert parse_value("−250") == -250.0
    assert parse_value("-") is None
    assert parse_value("") is None
    assert parse_value("n/a") is None


def test_parse_thousands_scales_to_base_units():
    assert parse_thousands("12 345 tkr") == 12345000
    assert parse_thousands("-250") == -250000
    assert parse_thousands("0,5") == 500
    assert parse_thousands(None) is None
    assert parse_thousands("-") is None


def test_clean_text_drops_read_more_and_whitespace():
    assert clean_text("  Acme\n  AB  Läs mer ") == "Acme AB"
    assert clean_text("   ") is None
    assert clean_text(None) is None


def test_parse_address_splits_postal_code_and_city():
    assert parse_address("Storgatan 1, 123 45 Stockholm") == {
        "street": "Storgatan 1",
        "postal_code": "12345",
        "city": "Stockholm",
    }
    assert parse_address("Box 123") == {"street": "Box 123"}
    assert parse_address("") == {}


def test_parse_apartment_normalizes_token():
    assert parse_apartment("Storgatan 1 lghnr 1201") == "lgh 1201"
    assert parse_apartment("Storgatan 1 LGH 1201") == "lgh 1201"
    assert parse_apartment("Storgatan 1") is None


def test_small_parsers():
    assert parse_boolean("Ja") is True
    assert parse_boolean("Nej") is False
    assert parse_boolean(None) is False
    assert parse_age("52 år") == 52
    assert parse_age("okänd") is None
    assert parse_date("2004-08-13") == "2004-08-13"
    assert parse_date("13/08/2004") == "2004-08-13"
    assert parse_date("2023-12") == "2023-12-01"
    assert parse_date("garbage") is None
