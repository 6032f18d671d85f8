"""Amount parsing and formatting tests."""

import pytest

from xenblocks_airdrop.amounts import format_amount, parse_external_amount


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("1.351984E+25", 13519840000000000),
        ("1E+18", 1_000_000_000),
        ("1000000000000000000", 1_000_000_000),
        ("100000000", 0),
        ("0", 0),
        ("1500000000", 1),
        ("1900000000", 1),
        ("5E+9", 5),
        ("9.99E+30", 9990000000000000000000),
        ("2E+18", 2_000_000_000),
        ("1.5e18", 1_500_000_000),
        ("123.45", 0),
        ("  7E+18 ", 7_000_000_000),
    ],
)
def test_parse_external_amount(raw, expected):
    assert parse_external_amount(raw, 18, 9) == expected


def test_parse_truncates_instead_of_rounding():
    # 1.9999999999 tokens at 18 decimals -> 1.999999999 at 9.
    assert parse_external_amount("1999999999999999999", 18, 9) == 1_999_999_999
    assert parse_external_amount("1.9999999999999999999E+18", 18, 9) == 1_999_999_999


def test_parse_negative_exponent_below_one_unit():
    assert parse_external_amount("5E-3", 18, 9) == 0
    assert parse_external_amount("1E-20", 18, 18) == 0


def test_parse_widening_scale():
    assert parse_external_amount("1.5", 0, 9) == 1_500_000_000
    assert parse_external_amount("42", 9, 9) == 42


@pytest.mark.parametrize("raw", ["", "abc", "-1E+18", "1E", "E5", ".", "1.2.3", "NaN", None, "1E+100000"])
def test_parse_malformed_yields_zero(raw):
    assert parse_external_amount(raw, 18, 9) == 0


def test_parse_accepts_int():
    assert parse_external_amount(3 * 10**18, 18, 9) == 3_000_000_000


@pytest.mark.parametrize(
    "value,scale,expected",
    [
        (1_000_000_000, 9, "1"),
        (1_500_000_000, 9, "1.5"),
        (1_234_567_891, 9, "1.234567891"),
        (0, 9, "0"),
        (10**18, 9, "1000000000"),
        (500_000_000, 9, "0.5"),
        (1_500_000, 6, "1.5"),
        (1_001_000_000, 9, "1.001"),
        (42, 0, "42"),
    ],
)
def test_format_amount(value, scale, expected):
    assert format_amount(value, scale) == expected
