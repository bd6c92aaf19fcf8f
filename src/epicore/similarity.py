"""
String similarity for fuzzy duplicate detection.
"""

import math
import re
import typing

from rapidfuzz.distance import JaroWinkler, Levenshtein

from .csv_parser import parse_boolean
from .dataset import Column, ColumnType
from .dates import days_apart, to_day
from .locale_numbers import parse_flexible_number

_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_text(value: typing.Any) -> str:
    """Case-insensitive, whitespace-normalized form used for key comparison."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return _WHITESPACE_RUN.sub(" ", str(value)).strip().casefold()


def edit_distance(first: str, second: str) -> int:
    """Levenshtein distance between the normalized forms."""
    return Levenshtein.distance(normalize_text(first), normalize_text(second))


def jaro_winkler_similarity(first: str, second: str, prefix_weight: float = 0.1) -> float:
    """
    0 (nothing in common) .. 1 (identical after normalization). Weighs a shared
    prefix, which suits names.
    """
    a, b = normalize_text(first), normalize_text(second)
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return JaroWinkler.similarity(a, b, prefix_weight=prefix_weight)


def dates_within_range(first: typing.Any, second: typing.Any, tolerance_days: int) -> bool:
    apart = days_apart(first, second)
    return apart is not None and apart <= tolerance_days


def _blank(value: typing.Any) -> bool:
    return normalize_text(value) == ""


def field_similarity(
    first: typing.Any, second: typing.Any, column_type: ColumnType, date_tolerance_days: int = 0
) -> typing.Optional[float]:
    """
    Similarity of two values of one column, 0..1, or None when they cannot be
    compared (e.g. a date against a non-date). Two blanks match; one blank
    does not.
    """
    if _blank(first) and _blank(second):
        return 1.0
    if _blank(first) or _blank(second):
        return 0.0

    if column_type is ColumnType.DATE:
        if to_day(first) is None or to_day(second) is None:
            return None
        return 1.0 if dates_within_range(first, second, date_tolerance_days) else 0.0
    if column_type is ColumnType.NUMBER:
        a, b = parse_flexible_number(first), parse_flexible_number(second)
        if math.isnan(a) or math.isnan(b):
            return None
        return 1.0 if a == b else 0.0
    if column_type is ColumnType.BOOLEAN:
        a, b = parse_boolean(first), parse_boolean(second)
        if a is None or b is None:
            return None
        return 1.0 if a == b else 0.0
    return jaro_winkler_similarity(str(first), str(second))


def record_similarity(
    first: typing.Mapping[str, typing.Any],
    second: typing.Mapping[str, typing.Any],
    columns: typing.Sequence[Column],
    date_tolerance_days: int = 0,
) -> float:
    """Mean field similarity over the columns that could be compared; 0 if none could."""
    scores = []
    for column in columns:
        score = field_similarity(first.get(column.key), second.get(column.key), column.type, date_tolerance_days)
        if score is not None:
            scores.append(score)
    return sum(scores) / len(scores) if scores else 0.0
