"""
Calendar date helpers shared by ingestion and the quality checks.

Date cells are kept as the strings the user typed; these helpers decide
whether such a string looks like a date and turn it into a datetime when a
comparison is needed.

Line lists mix conventions: 03/04/2024 is 3 April in most of the world and
4 March in the US. `detect_date_order` looks at a whole column to find
which component orders fit every value, and `normalize_date_text` rewrites
a value as ISO once the order is known.
"""

import re
import typing
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum

from dateutil import parser as date_parser

# YYYY-MM-DD, DD/MM/YYYY, MM-DD-YYYY, YYYY/MM/DD ... optionally followed by a time
DATE_LIKE_PATTERN = re.compile(
    r"^\d{1,4}[-/]\d{1,2}[-/]\d{1,4}(?:[T ]\d{1,2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?$"
)
_HAS_DIGIT = re.compile(r"\d")
_COMPONENTS = re.compile(r"^(\d{1,4})[-/](\d{1,2})[-/](\d{1,4})")
_YEAR_LEADING = re.compile(r"^\d{4}[-/]")


class DateOrder(Enum):
    """Component order of a dash or slash separated date."""

    YEAR_FIRST = "year_first"
    MONTH_FIRST = "month_first"
    DAY_FIRST = "day_first"

    @classmethod
    def from_label(cls, label: str) -> "DateOrder":
        key = label.strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown date order: {label!r}")


def _fits(text: str, order: DateOrder) -> bool:
    match = _COMPONENTS.match(text)
    if not match:
        return False
    a, b, c = match.groups()
    if order is DateOrder.YEAR_FIRST:
        return len(a) == 4 and 1 <= int(b) <= 12 and 1 <= int(c) <= 31
    if order is DateOrder.MONTH_FIRST:
        return 1 <= int(a) <= 12 and 1 <= int(b) <= 31 and len(c) == 4
    return 1 <= int(a) <= 31 and 1 <= int(b) <= 12 and len(c) == 4


@dataclass(frozen=True)
class DateOrderAnalysis:
    """
    possible: every order that fits all sampled values, in DateOrder order
    detected: best guess (first possible), None when nothing fits every value
    """
    possible: tuple[DateOrder, ...]
    detected: typing.Optional[DateOrder]

    @property
    def ambiguous(self) -> bool:
        # day/month swaps are the only ambiguity that matters in practice
        return DateOrder.MONTH_FIRST in self.possible and DateOrder.DAY_FIRST in self.possible


def detect_date_order(samples: typing.Iterable[typing.Any]) -> DateOrderAnalysis:
    values = [s.strip() for s in samples if isinstance(s, str) and s.strip()]
    if not values:
        return DateOrderAnalysis((), None)
    possible = tuple(order for order in DateOrder if all(_fits(v, order) for v in values))
    return DateOrderAnalysis(possible, possible[0] if possible else None)


def looks_like_date(text: str) -> bool:
    """True if `text` has date separators AND names a real calendar date."""
    if not isinstance(text, str):
        return False
    candidate = text.strip()
    if not DATE_LIKE_PATTERN.match(candidate):
        return False
    return parse_calendar_date(candidate) is not None


def parse_calendar_date(value: typing.Any, day_first: bool = False) -> typing.Optional[datetime]:
    """
    Robust date parsing:
    - datetime/date objects are returned as (naive) datetimes
    - strings are parsed with dateutil; ISO year-first strings are read as
      year-month-day, everything else month-first (day-first with
      `day_first`) unless the leading number cannot be a month (day)
    - anything unparseable (including 2024-02-30) -> None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    # bare words ("May") and bare numbers ("5") would be completed from today's date
    if not text or not _HAS_DIGIT.search(text) or text.isdigit():
        return None
    try:
        # dateutil reads 2024-03-04 as year-day-month under dayfirst
        parsed = date_parser.parse(text, dayfirst=day_first and not _YEAR_LEADING.match(text))
    except (ValueError, OverflowError):
        return None
    return parsed.replace(tzinfo=None)


def parse_date_with_order(value: typing.Any, order: DateOrder) -> typing.Optional[datetime]:
    """Read `value` strictly in `order`; None if it does not fit that order."""
    text = str(value).strip() if value is not None else ""
    if not _fits(text, order):
        return None
    return parse_calendar_date(text, day_first=order is DateOrder.DAY_FIRST)


def normalize_date_text(value: typing.Any, order: DateOrder) -> typing.Optional[str]:
    """'03/04/2024' (day first) -> '2024-04-03'; a time of day is kept when present."""
    parsed = parse_date_with_order(value, order)
    if parsed is None:
        return None
    if parsed.time() == time(0):
        return parsed.date().isoformat()
    return parsed.isoformat()


def to_day(value: typing.Any) -> typing.Optional[date]:
    """Parse and truncate to the calendar day."""
    parsed = parse_calendar_date(value)
    return parsed.date() if parsed is not None else None


def days_apart(first: typing.Any, second: typing.Any) -> typing.Optional[int]:
    """Absolute number of days between two dates, None if either is not a date."""
    a, b = to_day(first), to_day(second)
    if a is None or b is None:
        return None
    return abs((a - b).days)
