"""
Locale numeric formatting.

Defines the immutable LocaleProfile value and the parsing/formatting helpers
that take it as an explicit parameter. CSV output always uses a period as the
decimal separator, whatever profile is active, so that exported files stay
readable by statistical tools (R, Stata, pandas) that assume period-decimal.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

# optional sign, digits with at most one decimal point, optional exponent
_PLAIN_NUMBER = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")


class NumberFormat(Enum):
    """
    Decimal/grouping conventions. These are format-based, not country-based.
    """
    PERIOD_DECIMAL = "period-decimal"
    COMMA_DECIMAL = "comma-decimal"
    SPACE_GROUPING = "space-grouping"
    ARABIC = "arabic"

    @classmethod
    def from_label(cls, label: str) -> "NumberFormat":
        key = label.strip().lower().replace("_", "-")
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"Unknown number format: {label!r}")


@dataclass(frozen=True)
class LocaleProfile:
    """
    Separators used to read and display numbers for one locale.

    Attributes:
        decimal_separator: Character separating the integer and fraction parts.
        thousands_separator: Digit-grouping character (may be empty).
        csv_delimiter: Field delimiter used when exporting CSV in this locale.
        number_format: The NumberFormat this profile was built from.
    """

    decimal_separator: str
    thousands_separator: str
    csv_delimiter: str
    number_format: NumberFormat = NumberFormat.PERIOD_DECIMAL

    def __post_init__(self):
        if not self.decimal_separator:
            raise ValueError("decimal_separator must not be empty")
        if self.decimal_separator == self.thousands_separator:
            raise ValueError(
                f"decimal and thousands separators must differ, got {self.decimal_separator!r}"
            )

    @property
    def csv_decimal_separator(self) -> str:
        return "."

    @classmethod
    def for_format(cls, number_format: NumberFormat) -> "LocaleProfile":
        return _PROFILES[number_format]


_PROFILES = {
    NumberFormat.PERIOD_DECIMAL: LocaleProfile(".", ",", ",", NumberFormat.PERIOD_DECIMAL),
    NumberFormat.COMMA_DECIMAL: LocaleProfile(",", ".", ";", NumberFormat.COMMA_DECIMAL),
    NumberFormat.SPACE_GROUPING: LocaleProfile(",", " ", ";", NumberFormat.SPACE_GROUPING),
    NumberFormat.ARABIC: LocaleProfile("٫", "٬", ",", NumberFormat.ARABIC),
}

DEFAULT_PROFILE = _PROFILES[NumberFormat.PERIOD_DECIMAL]


def parse_locale_number(text: str, profile: LocaleProfile) -> float:
    """
    Parse a string written with the profile's separators (e.g. "1.234,56" for
    comma-decimal). Returns NaN for anything that is not a plain number,
    including the empty string.
    """
    if not isinstance(text, str):
        return math.nan
    cleaned = text.strip()
    if not cleaned:
        return math.nan

    if profile.thousands_separator:
        cleaned = cleaned.replace(profile.thousands_separator, "")
        # grouping with spaces is often typed as a non-breaking space
        if profile.thousands_separator == " ":
            cleaned = cleaned.replace(" ", "").replace(" ", "")
    if profile.decimal_separator != ".":
        cleaned = cleaned.replace(profile.decimal_separator, ".")

    if not _PLAIN_NUMBER.match(cleaned):
        return math.nan
    return float(cleaned)


def parse_flexible_number(
    value: Union[int, float, str, None], profile: Optional[LocaleProfile] = None
) -> float:
    """
    Accept a number that may already be numeric or may be a locale-formatted
    string. Never raises; unparseable input becomes NaN.
    """
    if value is None or isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    return parse_locale_number(str(value), profile or DEFAULT_PROFILE)


def is_valid_locale_number(text: str, profile: LocaleProfile) -> bool:
    parsed = parse_locale_number(text, profile)
    return math.isfinite(parsed)


def format_csv_number(value: Union[int, float], decimals: Optional[int] = None) -> str:
    """
    Render a number for CSV export. The decimal separator is always ".",
    there is no digit grouping, and non-finite values become "".
    """
    if value is None or isinstance(value, bool):
        return ""
    number = float(value)
    if not math.isfinite(number):
        return ""
    if decimals is not None:
        return f"{number:.{decimals}f}"
    if number.is_integer() and abs(number) < 1e16:
        return str(int(number))
    return repr(number)


def _group_digits(digits: str, separator: str) -> str:
    if not separator or len(digits) <= 3:
        return digits
    head = len(digits) % 3 or 3
    groups = [digits[:head]] + [digits[i:i + 3] for i in range(head, len(digits), 3)]
    return separator.join(groups)


def format_locale_number(
    value: Union[int, float], profile: LocaleProfile, decimals: Optional[int] = None
) -> str:
    """Format a number for display with the profile's separators."""
    if value is None or isinstance(value, bool):
        return ""
    number = float(value)
    if not math.isfinite(number):
        return ""

    plain = format_csv_number(abs(number), decimals)
    if "e" in plain or "E" in plain:
        # very large/small magnitudes: keep the exponent form, swap the separator only
        plain = plain.replace(".", profile.decimal_separator)
        return f"-{plain}" if number < 0 else plain

    integer_part, _, fraction = plain.partition(".")
    text = _group_digits(integer_part, profile.thousands_separator)
    if fraction:
        text = f"{text}{profile.decimal_separator}{fraction}"
    if number < 0 and text.strip("0" + profile.decimal_separator + profile.thousands_separator):
        text = f"-{text}"
    return text


def format_locale_percent(value: float, profile: LocaleProfile, decimals: int = 1) -> str:
    """Format a 0..1 proportion as a percentage with the profile's separators."""
    if value is None or not math.isfinite(value):
        return ""
    return format_locale_number(value * 100, profile, decimals) + "%"


def format_sig_figs(n: float, sig_figs: int = 3) -> str:
    """
    Format to a number of significant figures, e.g. with 3:
    0.00456 -> "0.00456", 45.6 -> "45.6", 1234 -> "1230".
    """
    if n is None or not math.isfinite(n):
        return "-"
    if n == 0:
        return "0"
    magnitude = math.floor(math.log10(abs(n)))
    precision = sig_figs - 1 - magnitude
    if precision < 0:
        factor = 10 ** (-precision)
        return str(int(round(n / factor) * factor))
    return f"{n:.{precision}f}"


def format_stat_percent(value: float, sample_size: int) -> str:
    """
    Percentage display for statistics tables: 2 significant figures below
    n=1000, 3 from there on. Never shows "0" or "100" for values that are not
    exactly 0 or 100.
    """
    if value is None or not math.isfinite(value):
        return "-"
    if value == 0:
        return "0"
    if value == 100:
        return "100"
    formatted = format_sig_figs(value, 3 if sample_size >= 1000 else 2)
    if formatted == "0" and value > 0:
        return "<1"
    if formatted == "100" and value < 100:
        return ">99"
    return formatted
