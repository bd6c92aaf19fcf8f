"""
Two-by-two analysis of an exposure against an outcome.

Table layout:

                  ill   not ill
    exposed        a       b
    unexposed      c       d

Zero denominators never raise. A rate over an empty group is NaN; a ratio
x/0 is inf when x > 0 and NaN when x == 0. Callers render non-finite values
as "Undefined" (see `format_ratio`).
"""

from __future__ import annotations

import logging
import math
import typing
from dataclasses import dataclass, field
from enum import Enum

from scipy import stats

from .csv_parser import parse_boolean
from .dataset import Column, Record
from .similarity import normalize_text

logger = logging.getLogger(__name__)

FISHER_MAX_TOTAL = 1000
EXPOSED_KEYWORDS = ("yes", "true", "1", "positive", "exposed")
UNDEFINED = "Undefined"


@dataclass(frozen=True)
class TwoByTwoTable:
    a: int
    b: int
    c: int
    d: int

    def __post_init__(self):
        for name in ("a", "b", "c", "d"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"Cell {name} must be an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"Cell {name} must be non-negative, got {value}")


@dataclass(frozen=True)
class TwoByTwoResults:
    table: TwoByTwoTable
    confidence: float
    total_exposed: int
    total_unexposed: int
    total_ill: int
    total_not_ill: int
    total: int
    attack_rate_exposed: float
    attack_rate_unexposed: float
    attack_rate_total: float
    risk_ratio: float
    risk_ratio_ci: tuple[float, float]
    odds_ratio: float
    odds_ratio_ci: tuple[float, float]
    risk_difference: float
    risk_difference_ci: tuple[float, float]
    attributable_risk_percent: float
    chi_square: float
    chi_square_p_value: float
    yates_chi_square: float
    yates_p_value: float
    fisher_exact_p_value: typing.Optional[float]


def _rate(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else math.nan


def _ratio(numerator: float, denominator: float) -> float:
    if math.isnan(numerator) or math.isnan(denominator):
        return math.nan
    if denominator > 0:
        return numerator / denominator
    return math.inf if numerator > 0 else math.nan


def _z_value(confidence: float) -> float:
    if not 0 < confidence < 1:
        raise ValueError(f"confidence must be between 0 and 1, got {confidence}")
    return float(stats.norm.ppf(1 - (1 - confidence) / 2))


def _katz_ci(a: int, b: int, c: int, d: int, z: float) -> tuple[float, float]:
    n1, n2 = a + b, c + d
    if n1 == 0 or n2 == 0:
        return math.nan, math.nan
    if a == 0 or c == 0:
        return 0.0, math.inf
    log_rr = math.log((a / n1) / (c / n2))
    se = math.sqrt(b / (a * n1) + d / (c * n2))
    return math.exp(log_rr - z * se), math.exp(log_rr + z * se)


def _woolf_ci(a: int, b: int, c: int, d: int, z: float) -> tuple[float, float]:
    if a + b == 0 or c + d == 0 or a + c == 0 or b + d == 0:
        return math.nan, math.nan
    if 0 in (a, b, c, d):
        # Haldane correction
        a, b, c, d = a + 0.5, b + 0.5, c + 0.5, d + 0.5
    log_or = math.log((a * d) / (b * c))
    se = math.sqrt(1 / a + 1 / b + 1 / c + 1 / d)
    return math.exp(log_or - z * se), math.exp(log_or + z * se)


def _wald_ci(a: int, b: int, c: int, d: int, z: float) -> tuple[float, float]:
    n1, n2 = a + b, c + d
    if n1 == 0 or n2 == 0:
        return math.nan, math.nan
    p1, p2 = a / n1, c / n2
    se = math.sqrt(p1 * (1 - p1) / n1 + p2 * (1 - p2) / n2)
    return (p1 - p2) - z * se, (p1 - p2) + z * se


def _chi_square(a: int, b: int, c: int, d: int, yates: bool = False) -> tuple[float, float]:
    """Pearson chi-square with 1 degree of freedom; NaN when any expected count is zero."""
    n = a + b + c + d
    margins = (a + b) * (c + d) * (a + c) * (b + d)
    if n == 0 or margins == 0:
        return math.nan, math.nan
    difference = abs(a * d - b * c)
    if yates:
        difference = max(0.0, difference - n / 2)
    statistic = n * difference ** 2 / margins
    return statistic, float(stats.chi2.sf(statistic, 1))


def _fisher_exact(a: int, b: int, c: int, d: int) -> typing.Optional[float]:
    total = a + b + c + d
    if total == 0 or total > FISHER_MAX_TOTAL:
        return None
    _, p_value = stats.fisher_exact([[a, b], [c, d]], alternative="two-sided")
    return float(p_value)


def calculate_two_by_two(table: TwoByTwoTable, confidence: float = 0.95) -> TwoByTwoResults:
    """
    Every measure the analysis reports, derived from the four cells.
    Fisher's exact test is only run for tables of at most FISHER_MAX_TOTAL records.
    """
    a, b, c, d = table.a, table.b, table.c, table.d
    z = _z_value(confidence)

    total_exposed, total_unexposed = a + b, c + d
    total_ill, total_not_ill = a + c, b + d
    total = a + b + c + d

    attack_rate_exposed = _rate(a, total_exposed)
    attack_rate_unexposed = _rate(c, total_unexposed)
    risk_difference = attack_rate_exposed - attack_rate_unexposed
    if attack_rate_exposed > 0:
        attributable_risk_percent = risk_difference / attack_rate_exposed * 100
    else:
        attributable_risk_percent = math.nan

    chi_square, chi_square_p = _chi_square(a, b, c, d)
    yates, yates_p = _chi_square(a, b, c, d, yates=True)

    return TwoByTwoResults(
        table=table,
        confidence=confidence,
        total_exposed=total_exposed,
        total_unexposed=total_unexposed,
        total_ill=total_ill,
        total_not_ill=total_not_ill,
        total=total,
        attack_rate_exposed=attack_rate_exposed,
        attack_rate_unexposed=attack_rate_unexposed,
        attack_rate_total=_rate(total_ill, total),
        risk_ratio=_ratio(attack_rate_exposed, attack_rate_unexposed),
        risk_ratio_ci=_katz_ci(a, b, c, d, z),
        odds_ratio=_ratio(a * d, b * c),
        odds_ratio_ci=_woolf_ci(a, b, c, d, z),
        risk_difference=risk_difference,
        risk_difference_ci=_wald_ci(a, b, c, d, z),
        attributable_risk_percent=attributable_risk_percent,
        chi_square=chi_square,
        chi_square_p_value=chi_square_p,
        yates_chi_square=yates,
        yates_p_value=yates_p,
        fisher_exact_p_value=_fisher_exact(a, b, c, d),
    )


class StudyDesign(Enum):
    COHORT = "cohort"
    CASE_CONTROL = "case-control"

    @classmethod
    def from_label(cls, label: str) -> "StudyDesign":
        key = label.strip().lower().replace("_", "-").replace(" ", "-")
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown study design: {label!r}")


@dataclass(frozen=True)
class Measure:
    name: str
    estimate: float
    ci: tuple[float, float]


def primary_measure(results: TwoByTwoResults, design: StudyDesign) -> Measure:
    """Risk ratio for cohort studies, odds ratio for case-control studies."""
    if design is StudyDesign.CASE_CONTROL:
        return Measure("Odds Ratio", results.odds_ratio, results.odds_ratio_ci)
    return Measure("Risk Ratio", results.risk_ratio, results.risk_ratio_ci)


def design_percentages(results: TwoByTwoResults, design: StudyDesign) -> dict[str, float]:
    """
    Cell percentages (0-100) to show next to the counts: row percentages for a
    cohort (share of each exposure group that fell ill), column percentages for
    a case-control study (share of cases / controls that were exposed).
    """
    t = results.table
    if design is StudyDesign.CASE_CONTROL:
        return {
            "a": _rate(t.a, results.total_ill) * 100,
            "b": _rate(t.b, results.total_not_ill) * 100,
            "c": _rate(t.c, results.total_ill) * 100,
            "d": _rate(t.d, results.total_not_ill) * 100,
            "exposed": _rate(results.total_exposed, results.total) * 100,
            "unexposed": _rate(results.total_unexposed, results.total) * 100,
        }
    return {
        "a": _rate(t.a, results.total_exposed) * 100,
        "b": _rate(t.b, results.total_exposed) * 100,
        "c": _rate(t.c, results.total_unexposed) * 100,
        "d": _rate(t.d, results.total_unexposed) * 100,
        "ill": _rate(results.total_ill, results.total) * 100,
        "not_ill": _rate(results.total_not_ill, results.total) * 100,
    }


def _is_missing(value: typing.Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _token(value: typing.Any) -> str:
    """Comparison form of a value; yes/true/1 and no/false/0 match their booleans."""
    token = normalize_text(value)
    flag = parse_boolean(token)
    if flag is not None:
        return "true" if flag else "false"
    return token


@dataclass(frozen=True)
class OutcomeDefinition:
    """
    column: key of the outcome column
    case_values: values meaning "ill"
    non_case_values: values meaning "not ill"; None means any other non-missing value
    """
    column: str
    case_values: frozenset
    non_case_values: typing.Optional[frozenset] = None

    def __post_init__(self):
        if isinstance(self.case_values, str):
            object.__setattr__(self, "case_values", (self.case_values,))
        object.__setattr__(self, "case_values", frozenset(_token(v) for v in self.case_values))
        if not self.case_values:
            raise ValueError("OutcomeDefinition needs at least one case value")
        if self.non_case_values is not None:
            values = (self.non_case_values,) if isinstance(self.non_case_values, str) else self.non_case_values
            object.__setattr__(self, "non_case_values", frozenset(_token(v) for v in values))

    def classify(self, value: typing.Any) -> typing.Optional[bool]:
        """True (case), False (non-case) or None (missing / unrecognized)."""
        if _is_missing(value):
            return None
        token = _token(value)
        if token in self.case_values:
            return True
        if self.non_case_values is None or token in self.non_case_values:
            return False
        return None


@dataclass(frozen=True)
class ExposureDefinition:
    column: str
    exposed_value: typing.Any
    unexposed_values: typing.Optional[frozenset] = None
    label: typing.Optional[str] = None

    def __post_init__(self):
        if _is_missing(self.exposed_value):
            raise ValueError(f"ExposureDefinition for {self.column!r} needs an exposed value")
        if self.unexposed_values is not None:
            values = (self.unexposed_values,) if isinstance(self.unexposed_values, str) else self.unexposed_values
            object.__setattr__(self, "unexposed_values", frozenset(_token(v) for v in values))

    def classify(self, value: typing.Any) -> typing.Optional[bool]:
        """True (exposed), False (unexposed) or None (missing / unrecognized)."""
        if _is_missing(value):
            return None
        token = _token(value)
        if token == _token(self.exposed_value):
            return True
        if self.unexposed_values is None or token in self.unexposed_values:
            return False
        return None


def build_two_by_two(
    records: typing.Iterable[Record], outcome: OutcomeDefinition, exposure: ExposureDefinition
) -> TwoByTwoTable:
    """
    Count records into the four cells in one pass. Records whose exposure or
    outcome is missing or unrecognized are left out of the table.
    """
    cells = {"a": 0, "b": 0, "c": 0, "d": 0}
    excluded = 0
    for record in records:
        exposed = exposure.classify(record.get(exposure.column))
        ill = outcome.classify(record.get(outcome.column))
        if exposed is None or ill is None:
            excluded += 1
            continue
        if exposed:
            cells["a" if ill else "b"] += 1
        else:
            cells["c" if ill else "d"] += 1
    if excluded:
        logger.debug(f"{exposure.column}: {excluded} record(s) excluded for missing/unrecognized values")
    return TwoByTwoTable(**cells)


@dataclass(frozen=True)
class ExposureResult:
    exposure: ExposureDefinition
    label: str
    design: StudyDesign
    results: TwoByTwoResults
    primary: Measure = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "primary", primary_measure(self.results, self.design))

    @property
    def table(self) -> TwoByTwoTable:
        return self.results.table

    def to_dict(self) -> dict[str, typing.Any]:
        """Plain JSON-ready form; non-finite numbers become None."""
        def clean(value):
            if isinstance(value, float) and not math.isfinite(value):
                return None
            if isinstance(value, tuple):
                return [clean(v) for v in value]
            return value

        r = self.results
        return {
            "exposure": self.label,
            "column": self.exposure.column,
            "exposed_value": str(self.exposure.exposed_value),
            "design": self.design.value,
            "table": {"a": r.table.a, "b": r.table.b, "c": r.table.c, "d": r.table.d},
            "attack_rate_exposed": clean(r.attack_rate_exposed),
            "attack_rate_unexposed": clean(r.attack_rate_unexposed),
            "risk_ratio": clean(r.risk_ratio),
            "risk_ratio_ci": clean(r.risk_ratio_ci),
            "odds_ratio": clean(r.odds_ratio),
            "odds_ratio_ci": clean(r.odds_ratio_ci),
            "chi_square": clean(r.chi_square),
            "chi_square_p_value": clean(r.chi_square_p_value),
            "fisher_exact_p_value": clean(r.fisher_exact_p_value),
            "primary_measure": self.primary.name,
        }


def analyze_exposure(
    records: typing.Sequence[Record],
    outcome: OutcomeDefinition,
    exposure: ExposureDefinition,
    design: StudyDesign = StudyDesign.COHORT,
    columns: typing.Optional[typing.Sequence[Column]] = None,
    confidence: float = 0.95,
) -> ExposureResult:
    labels = {c.key: c.label for c in columns or ()}
    label = exposure.label or labels.get(exposure.column, exposure.column)
    table = build_two_by_two(records, outcome, exposure)
    return ExposureResult(exposure, label, design, calculate_two_by_two(table, confidence))


def analyze_exposures(
    records: typing.Sequence[Record],
    outcome: OutcomeDefinition,
    exposures: typing.Sequence[ExposureDefinition],
    design: StudyDesign = StudyDesign.COHORT,
    columns: typing.Optional[typing.Sequence[Column]] = None,
    confidence: float = 0.95,
) -> list[ExposureResult]:
    """One independent two-by-two analysis per exposure, in the given order."""
    return [analyze_exposure(records, outcome, e, design, columns, confidence) for e in exposures]


def suggest_exposed_value(records: typing.Iterable[Record], column: str) -> typing.Optional[str]:
    """
    Guess which value of `column` means "exposed": the first of yes / true /
    1 / positive / exposed that occurs, else the first value in sorted order.
    """
    values: dict[str, str] = {}
    for record in records:
        value = record.get(column)
        if _is_missing(value):
            continue
        key = normalize_text(value)
        # booleans and numbers are offered in their comparison form: True -> "true", 1.0 -> "1"
        values.setdefault(key, value.strip() if isinstance(value, str) else key)
    if not values:
        return None
    for keyword in EXPOSED_KEYWORDS:
        if keyword in values:
            return values[keyword]
    return values[sorted(values)[0]]


def format_ratio(value: typing.Optional[float], decimals: int = 2) -> str:
    if value is None or not math.isfinite(value):
        return UNDEFINED
    return f"{value:.{decimals}f}"


def format_ci(ci: tuple[float, float], decimals: int = 2) -> str:
    lower, upper = ci
    if lower is None or upper is None or math.isnan(lower) or math.isnan(upper):
        return UNDEFINED
    return f"{format_ratio(lower, decimals)} - {format_ratio(upper, decimals)}"


def format_p_value(p_value: typing.Optional[float]) -> str:
    if p_value is None or not math.isfinite(p_value):
        return UNDEFINED
    if p_value < 0.001:
        return "< 0.001"
    return f"{p_value:.4f}"
