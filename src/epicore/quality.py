"""
Data quality rule engine.

Runs a configurable set of independent checks over a loaded dataset and
returns discrete issues. Every check kind is one variant of `Check`, built
from a `DataQualityConfig` by `build_checks`; a check whose fields are not
mapped is simply not built, so it reports nothing.

Checks
------
duplicate        identical key fields (case id, else name fields)
fuzzy_duplicate  key fields within a small edit distance (typos)
date_order       exposure <= onset <= report, onset <= death, plus custom pairs
future_date      dates after the reference day
date_range       dates far from the field's modal date
logical          confirmed without positive lab, hospitalized without hospital,
                 deceased without death date
missing_values   blanks in required fields
numeric_range    age (and custom numeric fields) outside bounds
"""

from __future__ import annotations

import abc
import hashlib
import logging
import math
import re
import typing
from collections import Counter, defaultdict
from dataclasses import dataclass, field, fields, replace
from datetime import date
from enum import Enum

from dateutil.relativedelta import relativedelta

from .csv_parser import parse_boolean
from .dataset import Column, ColumnType, Dataset, Record
from .dates import to_day
from .locale_numbers import format_csv_number, parse_flexible_number
from .similarity import edit_distance, jaro_winkler_similarity, normalize_text, record_similarity

logger = logging.getLogger(__name__)


class CheckKind(Enum):
    DUPLICATE = "duplicate"
    FUZZY_DUPLICATE = "fuzzy_duplicate"
    DATE_ORDER = "date_order"
    FUTURE_DATE = "future_date"
    DATE_RANGE = "date_range"
    LOGICAL = "logical"
    MISSING_VALUES = "missing_values"
    NUMERIC_RANGE = "numeric_range"

    @classmethod
    def from_label(cls, label: str) -> "CheckKind":
        key = label.strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown check kind: {label!r}")


class IssueCategory(Enum):
    DUPLICATE = "duplicate"
    TEMPORAL = "temporal"
    LOGICAL = "logical"
    COMPLETENESS = "completeness"
    RANGE = "range"


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


CHECK_CATEGORIES = {
    CheckKind.DUPLICATE: IssueCategory.DUPLICATE,
    CheckKind.FUZZY_DUPLICATE: IssueCategory.DUPLICATE,
    CheckKind.DATE_ORDER: IssueCategory.TEMPORAL,
    CheckKind.FUTURE_DATE: IssueCategory.TEMPORAL,
    CheckKind.DATE_RANGE: IssueCategory.TEMPORAL,
    CheckKind.LOGICAL: IssueCategory.LOGICAL,
    CheckKind.MISSING_VALUES: IssueCategory.COMPLETENESS,
    CheckKind.NUMERIC_RANGE: IssueCategory.RANGE,
}

CHECK_NAMES = {
    CheckKind.DUPLICATE: "Duplicates",
    CheckKind.FUZZY_DUPLICATE: "Possible Duplicates",
    CheckKind.DATE_ORDER: "Date Order",
    CheckKind.FUTURE_DATE: "Future Dates",
    CheckKind.DATE_RANGE: "Date Range",
    CheckKind.LOGICAL: "Logical Consistency",
    CheckKind.MISSING_VALUES: "Missing Values",
    CheckKind.NUMERIC_RANGE: "Numeric Range",
}

CATEGORY_NAMES = {
    IssueCategory.DUPLICATE: "Duplicates",
    IssueCategory.TEMPORAL: "Date Issues",
    IssueCategory.LOGICAL: "Logical Inconsistencies",
    IssueCategory.COMPLETENESS: "Missing Data",
    IssueCategory.RANGE: "Out of Range",
}

DEFAULT_POSITIVE_LAB_VALUES = frozenset({"positive", "pos", "detected", "reactive", "+", "yes", "true"})
DEFAULT_CONFIRMED_VALUES = frozenset({"confirmed"})
DEFAULT_DECEASED_VALUES = frozenset({"died", "dead", "deceased", "death", "fatal"})


def _snake(key: str) -> str:
    """camelCase -> camel_case, so configs written by the web client load as-is"""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


@dataclass(frozen=True)
class FieldMapping:
    """
    Which dataset column (by key) plays which epidemiological role.
    Any role may be None, meaning "not mapped".
    """

    case_id: typing.Optional[str] = None
    first_name: typing.Optional[str] = None
    last_name: typing.Optional[str] = None
    full_name: typing.Optional[str] = None
    age: typing.Optional[str] = None
    sex: typing.Optional[str] = None
    exposure_date: typing.Optional[str] = None
    onset_date: typing.Optional[str] = None
    report_date: typing.Optional[str] = None
    death_date: typing.Optional[str] = None
    case_status: typing.Optional[str] = None
    lab_result: typing.Optional[str] = None
    hospitalized: typing.Optional[str] = None
    hospital_name: typing.Optional[str] = None
    outcome: typing.Optional[str] = None

    @property
    def name_fields(self) -> list[str]:
        return [f for f in (self.first_name, self.last_name, self.full_name) if f]

    @property
    def date_fields(self) -> list[str]:
        return [f for f in (self.exposure_date, self.onset_date, self.report_date, self.death_date) if f]

    @classmethod
    def from_dict(cls, data: typing.Mapping[str, typing.Any]) -> "FieldMapping":
        if not isinstance(data, typing.Mapping):
            raise TypeError(f"expected an object of role -> column, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for raw_key, value in data.items():
            key = _snake(raw_key)
            if key not in known:
                logger.warning(f"Ignoring unknown field role {raw_key!r}")
                continue
            if value in (None, ""):
                continue
            kwargs[key] = str(value)
        return cls(**kwargs)


@dataclass(frozen=True)
class DateOrderRule:
    """`first_field` must not be later than `second_field`."""
    first_field: str
    second_field: str
    first_label: typing.Optional[str] = None
    second_label: typing.Optional[str] = None


@dataclass(frozen=True)
class NumericRangeRule:
    field: str
    minimum: float
    maximum: float
    label: typing.Optional[str] = None


@dataclass(frozen=True)
class DataQualityConfig:
    """
    Everything one run of the checks needs. Built fresh for each run and never
    partially applied.
    """

    field_mapping: FieldMapping = field(default_factory=FieldMapping)
    enabled_checks: frozenset = frozenset(CheckKind)
    age_min: float = 0
    age_max: float = 120
    date_range_months: typing.Optional[int] = 12
    required_fields: tuple[str, ...] = ()
    duplicate_fields: tuple[str, ...] = ()
    fuzzy_max_distance: int = 2
    fuzzy_min_similarity: float = 0.85
    fuzzy_context_fields: tuple[str, ...] = ()
    fuzzy_date_tolerance_days: int = 0
    date_order_rules: tuple[DateOrderRule, ...] = ()
    numeric_range_rules: tuple[NumericRangeRule, ...] = ()
    positive_lab_values: frozenset = DEFAULT_POSITIVE_LAB_VALUES
    confirmed_values: frozenset = DEFAULT_CONFIRMED_VALUES
    deceased_values: frozenset = DEFAULT_DECEASED_VALUES
    reference_date: typing.Optional[date] = None

    def __post_init__(self):
        object.__setattr__(self, "enabled_checks", frozenset(self.enabled_checks))
        object.__setattr__(self, "required_fields", tuple(self.required_fields))
        object.__setattr__(self, "duplicate_fields", tuple(self.duplicate_fields))
        object.__setattr__(self, "fuzzy_context_fields", tuple(self.fuzzy_context_fields))
        object.__setattr__(self, "date_order_rules", tuple(self.date_order_rules))
        object.__setattr__(self, "numeric_range_rules", tuple(self.numeric_range_rules))
        for name in ("positive_lab_values", "confirmed_values", "deceased_values"):
            values = frozenset(normalize_text(v) for v in getattr(self, name))
            object.__setattr__(self, name, values)

    def is_enabled(self, kind: CheckKind) -> bool:
        return kind in self.enabled_checks

    @classmethod
    def from_dict(cls, data: typing.Mapping[str, typing.Any]) -> "DataQualityConfig":
        """
        Build a config from a plain (e.g. JSON) object. Keys may be camelCase
        or snake_case. Unknown keys and malformed entries are logged and
        skipped; this never raises for bad input.
        """
        if not isinstance(data, typing.Mapping):
            logger.warning(f"Ignoring data quality settings that are not an object: {data!r}")
            return cls()
        kwargs: dict[str, typing.Any] = {}
        for raw_key, value in data.items():
            key = _snake(str(raw_key))
            try:
                if key == "field_mapping":
                    kwargs[key] = FieldMapping.from_dict(value)
                elif key == "enabled_checks":
                    kinds = set()
                    for label in _as_list(value):
                        try:
                            kinds.add(CheckKind.from_label(str(label)))
                        except ValueError as e:
                            logger.warning(str(e))
                    kwargs[key] = frozenset(kinds)
                elif key in ("age_min", "age_max", "fuzzy_min_similarity"):
                    kwargs[key] = float(value)
                elif key in ("date_range_months", "fuzzy_max_distance", "fuzzy_date_tolerance_days"):
                    kwargs[key] = None if value is None and key == "date_range_months" else int(value)
                elif key in ("required_fields", "duplicate_fields", "missing_value_fields", "fuzzy_context_fields"):
                    target = "required_fields" if key == "missing_value_fields" else key
                    kwargs[target] = tuple(str(v) for v in _as_list(value))
                elif key in ("positive_lab_values", "confirmed_values", "deceased_values"):
                    kwargs[key] = frozenset(str(v) for v in _as_list(value))
                elif key == "date_order_rules":
                    kwargs[key] = _rules_from_list(raw_key, value, _date_order_rule_from_dict)
                elif key == "numeric_range_rules":
                    kwargs[key] = _rules_from_list(raw_key, value, _numeric_range_rule_from_dict)
                elif key == "reference_date":
                    kwargs[key] = to_day(value) if value else None
                else:
                    logger.warning(f"Ignoring unknown data quality setting {raw_key!r}")
            except (TypeError, ValueError, KeyError) as e:
                logger.warning(f"Ignoring malformed data quality setting {raw_key!r}: {e}")
        return cls(**kwargs)


def _as_list(value: typing.Any) -> list:
    """A lone string is one entry, not a sequence of characters."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, typing.Mapping) or not isinstance(value, typing.Iterable):
        raise TypeError(f"expected a list, got {type(value).__name__}")
    return list(value)


def _rules_from_list(name: str, value: typing.Any, parse: typing.Callable[[typing.Any], typing.Any]) -> tuple:
    rules = []
    for position, entry in enumerate(_as_list(value), start=1):
        try:
            rules.append(parse(entry))
        except (TypeError, ValueError, KeyError) as e:
            logger.warning(f"Ignoring {name} entry {position}: {e}")
    return tuple(rules)


def _rule_fields(data: typing.Any) -> dict[str, typing.Any]:
    if not isinstance(data, typing.Mapping):
        raise TypeError(f"expected an object, got {type(data).__name__}")
    return {_snake(str(k)): v for k, v in data.items()}


def _date_order_rule_from_dict(data: typing.Mapping[str, typing.Any]) -> DateOrderRule:
    d = _rule_fields(data)
    return DateOrderRule(
        first_field=str(d.get("first_field") or d["first_date_field"]),
        second_field=str(d.get("second_field") or d["second_date_field"]),
        first_label=d.get("first_label") or d.get("first_date_label"),
        second_label=d.get("second_label") or d.get("second_date_label"),
    )


def _numeric_range_rule_from_dict(data: typing.Mapping[str, typing.Any]) -> NumericRangeRule:
    d = _rule_fields(data)
    return NumericRangeRule(
        field=str(d["field"]),
        minimum=float(d.get("minimum", d.get("min"))),
        maximum=float(d.get("maximum", d.get("max"))),
        label=d.get("label") or d.get("field_label"),
    )


@dataclass(frozen=True)
class DataQualityIssue:
    """
    One problem found by one check.

    Attributes:
        id: Deterministic digest of (check, field, records, message); stable across runs.
        check_type: The CheckKind that raised it.
        category: Display grouping.
        severity: ERROR or WARNING.
        record_ids: The record(s) involved; several for duplicates.
        field: The column the issue points at, if any.
        message: Short human-readable summary.
        details: Optional longer explanation.
        dismissed: UI state only; never changes the data.
    """

    id: str
    check_type: CheckKind
    category: IssueCategory
    severity: Severity
    record_ids: tuple[str, ...]
    message: str
    field: typing.Optional[str] = None
    details: typing.Optional[str] = None
    dismissed: bool = False

    def dismiss(self) -> "DataQualityIssue":
        return replace(self, dismissed=True)

    def restore(self) -> "DataQualityIssue":
        return replace(self, dismissed=False)


def make_issue(
    kind: CheckKind,
    severity: Severity,
    record_ids: typing.Sequence[str],
    message: str,
    field: typing.Optional[str] = None,
    details: typing.Optional[str] = None,
) -> DataQualityIssue:
    ids = tuple(record_ids)
    digest = hashlib.sha1(
        "|".join([kind.value, field or "", ",".join(ids), message]).encode("utf-8")
    ).hexdigest()[:12]
    return DataQualityIssue(
        id=digest,
        check_type=kind,
        category=CHECK_CATEGORIES[kind],
        severity=severity,
        record_ids=ids,
        message=message,
        field=field,
        details=details,
    )


def _is_missing(value: typing.Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _labels(columns: typing.Sequence[Column]) -> dict[str, str]:
    return {column.key: column.label for column in columns}


class Check(metaclass=abc.ABCMeta):
    """One variant of the closed set of checks."""

    kind: typing.ClassVar[CheckKind]

    @abc.abstractmethod
    def run(self, records: typing.Sequence[Record], columns: typing.Sequence[Column]) -> list[DataQualityIssue]:
        raise NotImplementedError


@dataclass(frozen=True)
class DuplicateCheck(Check):
    fields: tuple[str, ...]
    kind: typing.ClassVar[CheckKind] = CheckKind.DUPLICATE

    def run(self, records, columns):
        groups: dict[tuple[str, ...], list[str]] = defaultdict(list)
        for record in records:
            key = tuple(normalize_text(record.get(f)) for f in self.fields)
            if all(part == "" for part in key):
                continue
            groups[key].append(record.id)

        labels = _labels(columns)
        field_labels = ", ".join(labels.get(f, f) for f in self.fields)
        issues = []
        for ids in groups.values():
            if len(ids) > 1:
                issues.append(make_issue(
                    self.kind,
                    Severity.ERROR,
                    ids,
                    f"{len(ids)} duplicate records",
                    field=self.fields[0],
                    details=f"Same values in: {field_labels}",
                ))
        return issues


@dataclass(frozen=True)
class FuzzyDuplicateCheck(Check):
    """
    Pairwise comparison (O(n^2)). A pair is a possible duplicate when its keys
    are not identical, the summed per-field edit distance is at most
    `max_distance`, and the Jaro-Winkler similarity of the whole key reaches
    `min_similarity`. With `context_columns` (e.g. age, onset date) the pair
    must also agree on those by type: dates within `date_tolerance_days`,
    equal numbers and booleans, similar text.
    """

    fields: tuple[str, ...]
    max_distance: int = 2
    min_similarity: float = 0.85
    context_columns: tuple[Column, ...] = ()
    date_tolerance_days: int = 0
    kind: typing.ClassVar[CheckKind] = CheckKind.FUZZY_DUPLICATE

    def run(self, records, columns):
        keyed = []
        for record in records:
            key = tuple(normalize_text(record.get(f)) for f in self.fields)
            if any(part for part in key):
                keyed.append((record, key, " ".join(key)))

        labels = _labels(columns)
        field_labels = ", ".join(labels.get(f, f) for f in self.fields)
        issues = []
        for i, (first, first_key, first_text) in enumerate(keyed):
            for second, second_key, second_text in keyed[i + 1:]:
                if first_key == second_key:
                    continue
                distance = 0
                for a, b in zip(first_key, second_key):
                    distance += edit_distance(a, b)
                    if distance > self.max_distance:
                        break
                if distance > self.max_distance:
                    continue
                similarity = jaro_winkler_similarity(first_text, second_text)
                if similarity < self.min_similarity:
                    continue
                if self.context_columns and record_similarity(
                    first, second, self.context_columns, self.date_tolerance_days
                ) < self.min_similarity:
                    continue
                issues.append(make_issue(
                    self.kind,
                    Severity.WARNING,
                    (first.id, second.id),
                    "Possible duplicate records",
                    field=self.fields[0],
                    details=(f"{field_labels}: {first_text!r} vs {second_text!r} "
                             f"(edit distance {distance}, similarity {similarity:.2f})"),
                ))
        return issues


@dataclass(frozen=True)
class DateOrderCheck(Check):
    rule: DateOrderRule
    kind: typing.ClassVar[CheckKind] = CheckKind.DATE_ORDER

    def run(self, records, columns):
        labels = _labels(columns)
        first_label = self.rule.first_label or labels.get(self.rule.first_field, self.rule.first_field)
        second_label = self.rule.second_label or labels.get(self.rule.second_field, self.rule.second_field)
        issues = []
        for record in records:
            first = to_day(record.get(self.rule.first_field))
            second = to_day(record.get(self.rule.second_field))
            # only compare when both dates are present
            if first is not None and second is not None and first > second:
                issues.append(make_issue(
                    self.kind,
                    Severity.ERROR,
                    [record.id],
                    f"{second_label} before {first_label}",
                    field=self.rule.second_field,
                    details=f"{first_label}: {first.isoformat()}, {second_label}: {second.isoformat()}",
                ))
        return issues


@dataclass(frozen=True)
class FutureDateCheck(Check):
    fields: tuple[str, ...]
    reference_date: date
    kind: typing.ClassVar[CheckKind] = CheckKind.FUTURE_DATE

    def run(self, records, columns):
        labels = _labels(columns)
        issues = []
        for record in records:
            for key in self.fields:
                day = to_day(record.get(key))
                if day is not None and day > self.reference_date:
                    issues.append(make_issue(
                        self.kind,
                        Severity.ERROR,
                        [record.id],
                        f"Future date in {labels.get(key, key)}",
                        field=key,
                        details=f"Date: {day.isoformat()} (today: {self.reference_date.isoformat()})",
                    ))
        return issues


@dataclass(frozen=True)
class DateRangeCheck(Check):
    """Flags dates more than `months` calendar months from the field's modal date."""

    fields: tuple[str, ...]
    months: int
    kind: typing.ClassVar[CheckKind] = CheckKind.DATE_RANGE

    def run(self, records, columns):
        labels = _labels(columns)
        issues = []
        for key in self.fields:
            days = [(record.id, to_day(record.get(key))) for record in records]
            days = [(record_id, day) for record_id, day in days if day is not None]
            if not days:
                continue
            counts = Counter(day for _, day in days)
            top = max(counts.values())
            # earliest of the most frequent days, so ties resolve the same way every run
            modal = min(day for day, count in counts.items() if count == top)
            lower = modal - relativedelta(months=self.months)
            upper = modal + relativedelta(months=self.months)
            for record_id, day in days:
                if day < lower or day > upper:
                    issues.append(make_issue(
                        self.kind,
                        Severity.WARNING,
                        [record_id],
                        f"{labels.get(key, key)} outside expected date range",
                        field=key,
                        details=(f"Date: {day.isoformat()}; expected within {self.months} months "
                                 f"of {modal.isoformat()}"),
                    ))
        return issues


@dataclass(frozen=True)
class ConfirmedWithoutLabCheck(Check):
    status_field: str
    lab_field: str
    confirmed_values: frozenset
    positive_values: frozenset
    kind: typing.ClassVar[CheckKind] = CheckKind.LOGICAL

    def run(self, records, columns):
        labels = _labels(columns)
        issues = []
        for record in records:
            if normalize_text(record.get(self.status_field)) not in self.confirmed_values:
                continue
            lab = record.get(self.lab_field)
            if normalize_text(lab) in self.positive_values:
                continue
            shown = "missing" if _is_missing(lab) else repr(lab)
            issues.append(make_issue(
                self.kind,
                Severity.ERROR,
                [record.id],
                "Confirmed case without a positive lab result",
                field=self.lab_field,
                details=f"{labels.get(self.lab_field, self.lab_field)}: {shown}",
            ))
        return issues


@dataclass(frozen=True)
class HospitalizedWithoutNameCheck(Check):
    flag_field: str
    name_field: str
    kind: typing.ClassVar[CheckKind] = CheckKind.LOGICAL

    def run(self, records, columns):
        labels = _labels(columns)
        issues = []
        for record in records:
            if parse_boolean(record.get(self.flag_field)) is not True:
                continue
            if _is_missing(record.get(self.name_field)):
                issues.append(make_issue(
                    self.kind,
                    Severity.WARNING,
                    [record.id],
                    "Hospitalized without a hospital name",
                    field=self.name_field,
                    details=f"{labels.get(self.name_field, self.name_field)} is empty",
                ))
        return issues


@dataclass(frozen=True)
class DeceasedWithoutDeathDateCheck(Check):
    outcome_field: str
    death_date_field: str
    deceased_values: frozenset
    kind: typing.ClassVar[CheckKind] = CheckKind.LOGICAL

    def run(self, records, columns):
        labels = _labels(columns)
        issues = []
        for record in records:
            if normalize_text(record.get(self.outcome_field)) not in self.deceased_values:
                continue
            if to_day(record.get(self.death_date_field)) is None:
                issues.append(make_issue(
                    self.kind,
                    Severity.WARNING,
                    [record.id],
                    "Deceased without a date of death",
                    field=self.death_date_field,
                    details=f"{labels.get(self.death_date_field, self.death_date_field)} is empty or invalid",
                ))
        return issues


@dataclass(frozen=True)
class CompletenessCheck(Check):
    fields: tuple[str, ...]
    kind: typing.ClassVar[CheckKind] = CheckKind.MISSING_VALUES

    def run(self, records, columns):
        labels = _labels(columns)
        issues = []
        for key in self.fields:
            for record in records:
                if _is_missing(record.get(key)):
                    issues.append(make_issue(
                        self.kind,
                        Severity.WARNING,
                        [record.id],
                        f"Missing {labels.get(key, key)}",
                        field=key,
                    ))
        return issues


@dataclass(frozen=True)
class NumericRangeCheck(Check):
    rule: NumericRangeRule
    kind: typing.ClassVar[CheckKind] = CheckKind.NUMERIC_RANGE

    def run(self, records, columns):
        labels = _labels(columns)
        label = self.rule.label or labels.get(self.rule.field, self.rule.field)
        bounds = f"{format_csv_number(self.rule.minimum)}-{format_csv_number(self.rule.maximum)}"
        issues = []
        for record in records:
            value = record.get(self.rule.field)
            if _is_missing(value):
                continue
            number = parse_flexible_number(value)
            if not math.isfinite(number):
                continue
            if number < self.rule.minimum or number > self.rule.maximum:
                issues.append(make_issue(
                    self.kind,
                    Severity.ERROR if number < 0 else Severity.WARNING,
                    [record.id],
                    f"{label} out of expected range ({bounds})",
                    field=self.rule.field,
                    details=f"Value: {format_csv_number(number)}",
                ))
        return issues


def build_checks(config: DataQualityConfig, columns: typing.Sequence[Column]) -> list[Check]:
    """
    Turn a config into concrete checks. Checks that need an unmapped field are
    left out.
    """
    mapping = config.field_mapping
    checks: list[Check] = []

    exact_fields = list(config.duplicate_fields) or ([mapping.case_id] if mapping.case_id else mapping.name_fields)
    if config.is_enabled(CheckKind.DUPLICATE) and exact_fields:
        checks.append(DuplicateCheck(tuple(exact_fields)))

    # sequential case ids are one edit apart by construction, so typos are looked for in names
    fuzzy_fields = list(config.duplicate_fields) or mapping.name_fields or ([mapping.case_id] if mapping.case_id else [])
    if config.is_enabled(CheckKind.FUZZY_DUPLICATE) and fuzzy_fields:
        by_key = {c.key: c for c in columns}
        context = tuple(by_key[f] for f in config.fuzzy_context_fields if f in by_key)
        checks.append(FuzzyDuplicateCheck(
            tuple(fuzzy_fields),
            config.fuzzy_max_distance,
            config.fuzzy_min_similarity,
            context,
            config.fuzzy_date_tolerance_days,
        ))

    if config.is_enabled(CheckKind.DATE_ORDER):
        pairs = [
            (mapping.exposure_date, mapping.onset_date),
            (mapping.onset_date, mapping.report_date),
            (mapping.onset_date, mapping.death_date),
        ]
        for first, second in pairs:
            if first and second:
                checks.append(DateOrderCheck(DateOrderRule(first, second)))
        for rule in config.date_order_rules:
            checks.append(DateOrderCheck(rule))

    date_fields = [c.key for c in columns if c.type is ColumnType.DATE]
    date_fields += [f for f in mapping.date_fields if f not in date_fields]
    if config.is_enabled(CheckKind.FUTURE_DATE) and date_fields:
        reference = config.reference_date or date.today()
        checks.append(FutureDateCheck(tuple(date_fields), reference))

    if config.is_enabled(CheckKind.DATE_RANGE) and date_fields and config.date_range_months:
        if config.date_range_months > 0:
            checks.append(DateRangeCheck(tuple(date_fields), config.date_range_months))

    if config.is_enabled(CheckKind.LOGICAL):
        if mapping.case_status and mapping.lab_result:
            checks.append(ConfirmedWithoutLabCheck(
                mapping.case_status, mapping.lab_result, config.confirmed_values, config.positive_lab_values
            ))
        if mapping.hospitalized and mapping.hospital_name:
            checks.append(HospitalizedWithoutNameCheck(mapping.hospitalized, mapping.hospital_name))
        if mapping.outcome and mapping.death_date:
            checks.append(DeceasedWithoutDeathDateCheck(
                mapping.outcome, mapping.death_date, config.deceased_values
            ))

    known = {c.key for c in columns}
    required = tuple(f for f in config.required_fields if f in known)
    if config.is_enabled(CheckKind.MISSING_VALUES) and required:
        checks.append(CompletenessCheck(required))

    if config.is_enabled(CheckKind.NUMERIC_RANGE):
        if mapping.age:
            checks.append(NumericRangeCheck(NumericRangeRule(mapping.age, config.age_min, config.age_max)))
        for rule in config.numeric_range_rules:
            checks.append(NumericRangeCheck(rule))

    return checks


def run_data_quality_checks(
    records: typing.Sequence[Record],
    columns: typing.Sequence[Column],
    config: DataQualityConfig,
) -> list[DataQualityIssue]:
    """
    Run every enabled check and concatenate the results. Issues are not
    deduplicated across checks and not filtered by dismissal.
    """
    if records is None or columns is None:
        raise TypeError("run_data_quality_checks requires records and columns")
    issues: list[DataQualityIssue] = []
    for check in build_checks(config, columns):
        found = check.run(records, columns)
        logger.debug(f"{type(check).__name__}: {len(found)} issue(s)")
        issues.extend(found)
    return issues


def check_dataset(dataset: Dataset, config: DataQualityConfig) -> list[DataQualityIssue]:
    return run_data_quality_checks(dataset.records, dataset.columns, config)


def get_check_name(kind: CheckKind) -> str:
    return CHECK_NAMES.get(kind, kind.value)


def get_category_name(category: IssueCategory) -> str:
    return CATEGORY_NAMES.get(category, category.value)


def group_issues_by_category(
    issues: typing.Iterable[DataQualityIssue],
) -> dict[IssueCategory, list[DataQualityIssue]]:
    grouped: dict[IssueCategory, list[DataQualityIssue]] = {category: [] for category in IssueCategory}
    for issue in issues:
        grouped[issue.category].append(issue)
    return grouped


def active_issues(
    issues: typing.Iterable[DataQualityIssue], dismissed_ids: typing.Collection[str] = ()
) -> list[DataQualityIssue]:
    """Issues that are neither flagged dismissed nor listed in `dismissed_ids`."""
    return [i for i in issues if not i.dismissed and i.id not in dismissed_ids]
