"""
Tests for locale-aware number parsing and formatting:
- parse_locale_number / parse_flexible_number per profile
- format_csv_number always writes period-decimal
- display helpers (grouping, percentages, significant figures)
"""

import math

import pytest

from epicore.locale_numbers import (
    DEFAULT_PROFILE,
    LocaleProfile,
    NumberFormat,
    format_csv_number,
    format_locale_number,
    format_locale_percent,
    format_sig_figs,
    format_stat_percent,
    is_valid_locale_number,
    parse_flexible_number,
    parse_locale_number,
)

COMMA = LocaleProfile.for_format(NumberFormat.COMMA_DECIMAL)
SPACE = LocaleProfile.for_format(NumberFormat.SPACE_GROUPING)


@pytest.mark.parametrize(
    "text, profile, expected",
    [
        ("1,234.56", DEFAULT_PROFILE, 1234.56),
        ("1.234,56", COMMA, 1234.56),
        ("1 234,56", SPACE, 1234.56),
        ("-12", DEFAULT_PROFILE, -12.0),
        ("  7.5 ", DEFAULT_PROFILE, 7.5),
        ("1e3", DEFAULT_PROFILE, 1000.0),
    ],
)
def test_parse_locale_number_reads_profile_separators(text, profile, expected):
    assert parse_locale_number(text, profile) == pytest.approx(expected)


@pytest.mark.parametrize("text", ["", "   ", "abc", "1.2.3", "12abc", "--1"])
def test_parse_locale_number_returns_nan_for_garbage(text):
    assert math.isnan(parse_locale_number(text, DEFAULT_PROFILE))


def test_parse_flexible_number_passes_numbers_through():
    assert parse_flexible_number(3) == 3.0
    assert parse_flexible_number(2.5) == 2.5
    assert parse_flexible_number("2,5", COMMA) == 2.5
    assert math.isnan(parse_flexible_number(None))
    assert math.isnan(parse_flexible_number(True))


def test_is_valid_locale_number():
    assert is_valid_locale_number("1.234,5", COMMA)
    assert not is_valid_locale_number("one", COMMA)


def test_format_csv_number_is_always_period_decimal():
    """
    CSV output never depends on the display profile.
    """
    assert format_csv_number(1234.5) == "1234.5"
    assert format_csv_number(42.0) == "42"
    assert format_csv_number(-0.25) == "-0.25"
    assert format_csv_number(3.14159, decimals=2) == "3.14"
    assert format_csv_number(math.nan) == ""
    assert format_csv_number(math.inf) == ""


def test_format_locale_number_groups_digits():
    assert format_locale_number(1234567.891, DEFAULT_PROFILE) == "1,234,567.891"
    assert format_locale_number(1234567.891, COMMA) == "1.234.567,891"
    assert format_locale_number(1234.5, SPACE) == "1 234,5"
    assert format_locale_number(-1234, DEFAULT_PROFILE) == "-1,234"
    assert format_locale_number(999, DEFAULT_PROFILE) == "999"
    assert format_locale_number(math.nan, DEFAULT_PROFILE) == ""


def test_format_locale_percent():
    assert format_locale_percent(0.6667, DEFAULT_PROFILE) == "66.7%"
    assert format_locale_percent(0.5, COMMA) == "50,0%"
    assert format_locale_percent(math.nan, DEFAULT_PROFILE) == ""


@pytest.mark.parametrize(
    "value, expected",
    [
        (0.00456, "0.00456"),
        (45.6, "45.6"),
        (1234, "1230"),
        (0, "0"),
    ],
)
def test_format_sig_figs(value, expected):
    assert format_sig_figs(value, 3) == expected


def test_format_stat_percent_never_rounds_to_bounds():
    assert format_stat_percent(0.2, 50) == "0.20"
    assert format_stat_percent(99.7, 50) == ">99"
    assert format_stat_percent(0, 50) == "0"
    assert format_stat_percent(100, 50) == "100"
    assert format_stat_percent(33.333, 1500) == "33.3"


def test_profile_rejects_identical_separators():
    with pytest.raises(ValueError):
        LocaleProfile(",", ",", ";")


def test_number_format_from_label():
    assert NumberFormat.from_label("comma_decimal") is NumberFormat.COMMA_DECIMAL
    with pytest.raises(ValueError):
        NumberFormat.from_label("roman")
