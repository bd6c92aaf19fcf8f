"""
Descriptive statistics for a single variable, frequency tables, and an R x 2
group comparison.
"""

import math
import typing
from dataclasses import dataclass

import pandas as pd
from scipy import stats


@dataclass(frozen=True)
class DescriptiveStats:
    count: int
    missing: int
    mean: float
    median: float
    mode: typing.Optional[float]
    std_dev: float
    variance: float
    min: float
    max: float
    range: float
    q1: float
    q3: float
    iqr: float
    sum: float


def _as_number(value: typing.Any) -> typing.Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _mode(values: typing.Sequence[float]) -> typing.Optional[float]:
    """First value to reach the highest count; None if nothing repeats."""
    counts: dict[float, int] = {}
    best, best_count = None, 0
    for value in values:
        counts[value] = counts.get(value, 0) + 1
        if counts[value] > best_count:
            best, best_count = value, counts[value]
    return best if best_count > 1 else None


def calculate_descriptive_stats(values: typing.Iterable[typing.Any]) -> DescriptiveStats:
    """
    Summary of the numeric values in `values`; None, NaN and non-numeric
    entries count as missing. Variance is the sample variance (n - 1), and
    quartiles use linear interpolation.
    """
    values = list(values)
    numbers = [n for n in (_as_number(v) for v in values) if n is not None]
    missing = len(values) - len(numbers)
    if not numbers:
        nan = math.nan
        return DescriptiveStats(0, missing, nan, nan, None, nan, nan, nan, nan, nan, nan, nan, nan, 0.0)

    series = pd.Series(numbers, dtype="float64")
    # a single value has no spread rather than an undefined one
    variance = float(series.var(ddof=1)) if len(numbers) > 1 else 0.0
    q1 = float(series.quantile(0.25))
    q3 = float(series.quantile(0.75))
    return DescriptiveStats(
        count=len(numbers),
        missing=missing,
        mean=float(series.mean()),
        median=float(series.median()),
        mode=_mode(numbers),
        std_dev=math.sqrt(variance),
        variance=variance,
        min=float(series.min()),
        max=float(series.max()),
        range=float(series.max() - series.min()),
        q1=q1,
        q3=q3,
        iqr=q3 - q1,
        sum=float(series.sum()),
    )


@dataclass(frozen=True)
class FrequencyItem:
    value: str
    count: int
    percent: float
    cum_count: int
    cum_percent: float


def calculate_frequency(values: typing.Iterable[typing.Any]) -> list[FrequencyItem]:
    """Counts per distinct value, most frequent first; missing values are skipped."""
    counts: dict[str, int] = {}
    for value in values:
        if value is None or value == "" or (isinstance(value, float) and math.isnan(value)):
            continue
        if isinstance(value, bool):
            key = "true" if value else "false"
        elif isinstance(value, float) and value.is_integer():
            key = str(int(value))
        else:
            key = str(value)
        counts[key] = counts.get(key, 0) + 1

    total = sum(counts.values())
    items = []
    cum_count = 0
    # sorted() is stable, so equal counts keep first-appearance order
    for value, count in sorted(counts.items(), key=lambda item: -item[1]):
        cum_count += count
        items.append(FrequencyItem(
            value=value,
            count=count,
            percent=count / total * 100,
            cum_count=cum_count,
            cum_percent=cum_count / total * 100,
        ))
    return items


@dataclass(frozen=True)
class GroupComparisonRow:
    group: str
    outcome_yes: int
    outcome_no: int
    total: int
    proportion: float


@dataclass(frozen=True)
class GroupComparisonResults:
    rows: list[GroupComparisonRow]
    total_yes: int
    total_no: int
    grand_total: int
    chi_square: float
    degrees_of_freedom: int
    p_value: float


def calculate_group_comparison(pairs: typing.Iterable[tuple[str, bool]]) -> GroupComparisonResults:
    """
    R x 2 table of (group, has_outcome) pairs, groups in sorted order, with a
    Pearson chi-square test of independence (R - 1 degrees of freedom, no
    continuity correction). When every record falls in one outcome column
    there is nothing to test: chi-square 0, p-value 1.
    """
    counts: dict[str, list[int]] = {}
    for group, has_outcome in pairs:
        cell = counts.setdefault(str(group), [0, 0])
        cell[0 if has_outcome else 1] += 1

    rows = []
    for group in sorted(counts):
        yes, no = counts[group]
        rows.append(GroupComparisonRow(group, yes, no, yes + no, yes / (yes + no)))
    total_yes = sum(row.outcome_yes for row in rows)
    total_no = sum(row.outcome_no for row in rows)
    grand_total = total_yes + total_no

    if grand_total == 0 or len(rows) < 2:
        return GroupComparisonResults(rows, total_yes, total_no, grand_total, 0.0, 0, 1.0)
    if total_yes == 0 or total_no == 0:
        return GroupComparisonResults(rows, total_yes, total_no, grand_total, 0.0, len(rows) - 1, 1.0)

    observed = [[row.outcome_yes, row.outcome_no] for row in rows]
    chi_square, p_value, df, _ = stats.chi2_contingency(observed, correction=False)
    return GroupComparisonResults(
        rows, total_yes, total_no, grand_total, float(chi_square), int(df), float(p_value)
    )
