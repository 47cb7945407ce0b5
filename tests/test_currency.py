"""Tests for BRL amount parsing and formatting."""

import pytest

from portal.utils.currency import format_cents, parse_amount


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1.234,56", 123456),
        ("1,234.56", 123456),
        ("1234,5", 123450),
        ("1.234", 123400),
        ("1,234", 123400),
        ("R$ 10,00", 1000),
        ("0,5", 50),
        ("12", 1200),
        ("1.234.567,89", 123456789),
        (" 99.9 ", 9990),
        (",50", 50),
    ],
)
def test_parse_amount_accepts_both_locales(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", ["-5,00", "abc", "", None, "1.234,567", "1,000.123", ",", "R$"])
def test_parse_amount_rejects_unreadable_input(raw):
    assert parse_amount(raw) is None


def test_single_separator_with_three_trailing_digits_is_thousands():
    assert parse_amount("10,123") == 1012300
    assert parse_amount("1.234.567") == 123456700


def test_parse_amount_accepts_numbers():
    assert parse_amount(15) == 1500
    assert parse_amount(15.5) == 1550


def test_format_cents_uses_separator():
    assert format_cents(123456) == "1234,56"
    assert format_cents(5, ".") == "0.05"
    assert format_cents(None) is None


@pytest.mark.parametrize("cents", [0, 1, 99, 100, 123456, 987654321])
def test_formatted_cents_parse_back(cents):
    assert parse_amount(format_cents(cents)) == cents
    assert parse_amount(format_cents(cents, ".")) == cents
