"""
Tests for the data quality rule engine:
- exact vs fuzzy duplicates
- temporal, logical, completeness and range checks
- unmapped fields and disabled checks produce nothing
- deterministic issue ids, dismissal and grouping helpers
- tolerant configuration loading
"""

import json
import logging
from datetime import date

import pytest

from epicore.csv_parser import CsvParseOptions, parse_csv
from epicore.dataset import Column, ColumnType, Dataset, Record
from epicore.quality import (
    CheckKind,
    DataQualityConfig,
    DateOrderRule,
    FieldMapping,
    IssueCategory,
    NumericRangeRule,
    Severity,
    active_issues,
    build_checks,
    check_dataset,
    get_category_name,
    get_check_name,
    group_issues_by_category,
    run_data_quality_checks,
)

NAMES = FieldMapping(first_name="first_name", last_name="last_name")


def only(*kinds, **kwargs) -> DataQualityConfig:
    return DataQualityConfig(enabled_checks=frozenset(kinds), reference_date=date(2024, 12, 31), **kwargs)


def test_typo_in_name_is_fuzzy_not_exact_duplicate(make_dataset):
    dataset = make_dataset(
        ("r1", {"first_name": "Maria", "last_name": "Lopez"}),
        ("r2", {"first_name": "Maria", "last_name": "Lopes"}),
        ("r3", {"first_name": "John", "last_name": "Smith"}),
    )
    config = only(CheckKind.DUPLICATE, CheckKind.FUZZY_DUPLICATE, field_mapping=NAMES)

    issues = check_dataset(dataset, config)

    assert [i.check_type for i in issues] == [CheckKind.FUZZY_DUPLICATE]
    issue = issues[0]
    assert issue.record_ids == ("r1", "r2")
    assert issue.severity is Severity.WARNING
    assert issue.category is IssueCategory.DUPLICATE
    assert issue.message == "Possible duplicate records"


def test_exact_duplicates_normalize_case_and_whitespace(make_dataset):
    dataset = make_dataset(
        ("r1", {"case_id": "C-001"}),
        ("r2", {"case_id": " c-001 "}),
        ("r3", {"case_id": "C-002"}),
        ("r4", {"case_id": None}),
        ("r5", {"case_id": None}),
    )
    config = only(CheckKind.DUPLICATE, field_mapping=FieldMapping(case_id="case_id"))

    issues = check_dataset(dataset, config)

    assert len(issues) == 1
    assert issues[0].record_ids == ("r1", "r2")
    assert issues[0].severity is Severity.ERROR
    assert issues[0].message == "2 duplicate records"
    assert issues[0].details == "Same values in: Case ID"


def test_case_id_is_not_fuzzy_matched_when_names_are_mapped(make_dataset):
    """
    Sequential ids differ by one character; typos are looked for in the names.
    """
    dataset = make_dataset(
        ("r1", {"case_id": "C-001", "first_name": "Ana", "last_name": "Silva"}),
        ("r2", {"case_id": "C-002", "first_name": "Peter", "last_name": "Brown"}),
    )
    mapping = FieldMapping(case_id="case_id", first_name="first_name", last_name="last_name")
    checks = build_checks(only(CheckKind.FUZZY_DUPLICATE, field_mapping=mapping), dataset.columns)
    assert checks[0].fields == ("first_name", "last_name")
    assert check_dataset(dataset, only(CheckKind.FUZZY_DUPLICATE, field_mapping=mapping)) == []


def test_rerun_gives_identical_issues(make_dataset):
    dataset = make_dataset(
        ("r1", {"case_id": "C1", "age": -3.0, "onset_date": "2024-03-02", "report_date": "2024-03-01"}),
        ("r2", {"case_id": "C1", "age": 200.0}),
    )
    mapping = FieldMapping(case_id="case_id", age="age", onset_date="onset_date", report_date="report_date")
    config = DataQualityConfig(field_mapping=mapping, reference_date=date(2024, 12, 31))

    first = check_dataset(dataset, config)
    second = check_dataset(dataset, config)

    assert first == second
    assert len({i.id for i in first}) == len(first)


def test_date_order(make_dataset):
    dataset = make_dataset(
        ("r1", {"exposure_date": "2024-03-05", "onset_date": "2024-03-02"}),
        ("r2", {"exposure_date": "2024-03-01", "onset_date": "2024-03-02"}),
        ("r3", {"exposure_date": "2024-03-05", "onset_date": None}),
        ("r4", {"onset_date": "2024-03-10", "report_date": "2024-03-09"}),
    )
    mapping = FieldMapping(exposure_date="exposure_date", onset_date="onset_date", report_date="report_date")

    issues = check_dataset(dataset, only(CheckKind.DATE_ORDER, field_mapping=mapping))

    assert [(i.record_ids, i.field, i.message) for i in issues] == [
        (("r1",), "onset_date", "Onset Date before Exposure Date"),
        (("r4",), "report_date", "Report Date before Onset Date"),
    ]
    assert all(i.severity is Severity.ERROR for i in issues)
    assert issues[0].category is IssueCategory.TEMPORAL


def test_custom_date_order_rule_uses_its_labels(make_dataset):
    dataset = make_dataset(("r1", {"report_date": "2024-03-09", "exposure_date": "2024-03-01"}))
    rule = DateOrderRule("report_date", "exposure_date", "Reported", "Exposed")

    issues = check_dataset(dataset, only(CheckKind.DATE_ORDER, date_order_rules=[rule]))

    assert [i.message for i in issues] == ["Exposed before Reported"]


def test_future_dates(make_dataset):
    dataset = make_dataset(
        ("r1", {"report_date": "2025-01-01"}),
        ("r2", {"report_date": "2024-12-31T23:00:00"}),
        ("r3", {"onset_date": "2030-05-05"}),
    )

    issues = check_dataset(dataset, only(CheckKind.FUTURE_DATE))

    assert sorted(i.record_ids[0] for i in issues) == ["r1", "r3"]
    assert all(i.severity is Severity.ERROR for i in issues)


def test_dates_far_from_the_mode_are_flagged(make_dataset):
    rows = [(f"r{i}", {"onset_date": "2024-03-01"}) for i in range(4)]
    rows += [("early", {"onset_date": "2023-02-28"}), ("late", {"onset_date": "2024-09-01"})]
    dataset = make_dataset(*rows)

    issues = check_dataset(dataset, only(CheckKind.DATE_RANGE, date_range_months=6))

    assert [i.record_ids for i in issues] == [("early",)]
    assert issues[0].severity is Severity.WARNING
    assert "2024-03-01" in issues[0].details


def test_date_range_disabled_by_zero_months(make_dataset):
    dataset = make_dataset(("r1", {"onset_date": "2024-03-01"}), ("r2", {"onset_date": "1990-01-01"}))
    assert check_dataset(dataset, only(CheckKind.DATE_RANGE, date_range_months=0)) == []


def test_logical_consistency(make_dataset):
    columns = [
        Column("case_status", "Case Status"),
        Column("lab_result", "Lab Result"),
        Column("hospitalized", "Hospitalized", ColumnType.BOOLEAN),
        Column("hospital_name", "Hospital"),
        Column("outcome", "Outcome"),
        Column("death_date", "Date of Death", ColumnType.DATE),
    ]
    dataset = make_dataset(
        ("r1", {"case_status": "confirmed", "lab_result": "negative"}),
        ("r2", {"case_status": "Confirmed", "lab_result": "Positive"}),
        ("r3", {"case_status": "CONFIRMED", "lab_result": None}),
        ("r4", {"hospitalized": True, "hospital_name": None}),
        ("r5", {"hospitalized": False, "hospital_name": None}),
        ("r6", {"outcome": "Died", "death_date": None}),
        ("r7", {"outcome": "died", "death_date": "2024-03-05"}),
        columns=columns,
    )
    mapping = FieldMapping(
        case_status="case_status",
        lab_result="lab_result",
        hospitalized="hospitalized",
        hospital_name="hospital_name",
        outcome="outcome",
        death_date="death_date",
    )

    issues = check_dataset(dataset, only(CheckKind.LOGICAL, field_mapping=mapping))

    found = [(i.record_ids[0], i.severity, i.field) for i in issues]
    assert found == [
        ("r1", Severity.ERROR, "lab_result"),
        ("r3", Severity.ERROR, "lab_result"),
        ("r4", Severity.WARNING, "hospital_name"),
        ("r6", Severity.WARNING, "death_date"),
    ]
    assert all(i.category is IssueCategory.LOGICAL for i in issues)


def test_missing_required_values(make_dataset):
    dataset = make_dataset(
        ("r1", {"age": 30.0, "case_status": "confirmed"}),
        ("r2", {"age": None, "case_status": "  "}),
        ("r3", {}),
    )
    config = only(CheckKind.MISSING_VALUES, required_fields=["age", "case_status", "not_a_column"])

    issues = check_dataset(dataset, config)

    assert [(i.field, i.record_ids[0]) for i in issues] == [
        ("age", "r2"),
        ("age", "r3"),
        ("case_status", "r2"),
        ("case_status", "r3"),
    ]
    assert issues[0].message == "Missing Age"
    assert all(i.severity is Severity.WARNING for i in issues)
    assert all(i.category is IssueCategory.COMPLETENESS for i in issues)


def test_numeric_range(make_dataset):
    dataset = make_dataset(
        ("neg", {"age": -1.0}),
        ("old", {"age": 130.0}),
        ("ok", {"age": 40.0}),
        ("none", {"age": None}),
    )
    config = only(CheckKind.NUMERIC_RANGE, field_mapping=FieldMapping(age="age"))

    issues = check_dataset(dataset, config)

    assert [(i.record_ids[0], i.severity) for i in issues] == [
        ("neg", Severity.ERROR),
        ("old", Severity.WARNING),
    ]
    assert issues[0].message == "Age out of expected range (0-120)"
    assert issues[1].details == "Value: 130"


def test_custom_numeric_range_rule_on_text_column():
    columns = [Column("temp", "Temperature")]
    dataset = Dataset(columns, [Record("r1", {"temp": "43.5"}), Record("r2", {"temp": "n/a"})])
    rule = NumericRangeRule("temp", 34, 42, "Body temperature")

    issues = check_dataset(dataset, only(CheckKind.NUMERIC_RANGE, numeric_range_rules=[rule]))

    assert [i.record_ids for i in issues] == [("r1",)]
    assert issues[0].message == "Body temperature out of expected range (34-42)"


def test_unmapped_fields_yield_no_issues(make_dataset):
    text_columns = [Column("case_id", "Case ID"), Column("age", "Age", ColumnType.NUMBER)]
    dataset = make_dataset(("r1", {"case_id": "A", "age": -5.0}), ("r2", {"case_id": "A"}), columns=text_columns)

    assert check_dataset(dataset, DataQualityConfig()) == []

    mapping = FieldMapping(case_status="status", lab_result="lab", age="years")
    assert check_dataset(dataset, DataQualityConfig(field_mapping=mapping)) == []


def test_disabled_checks_are_not_built(line_list_columns):
    config = DataQualityConfig(
        field_mapping=FieldMapping(case_id="case_id", age="age"),
        enabled_checks=frozenset({CheckKind.NUMERIC_RANGE}),
    )
    checks = build_checks(config, line_list_columns)
    assert [c.kind for c in checks] == [CheckKind.NUMERIC_RANGE]


def test_none_records_is_a_type_error(line_list_columns):
    with pytest.raises(TypeError):
        run_data_quality_checks(None, line_list_columns, DataQualityConfig())
    with pytest.raises(TypeError):
        run_data_quality_checks([], None, DataQualityConfig())


def test_dismissal_and_grouping(make_dataset):
    dataset = make_dataset(
        ("r1", {"case_id": "C1", "age": 150.0}),
        ("r2", {"case_id": "C1", "age": 20.0}),
    )
    config = only(
        CheckKind.DUPLICATE, CheckKind.NUMERIC_RANGE, field_mapping=FieldMapping(case_id="case_id", age="age")
    )
    issues = check_dataset(dataset, config)
    duplicate, age = issues

    dismissed = duplicate.dismiss()
    assert dismissed.dismissed and not duplicate.dismissed
    assert dismissed.id == duplicate.id
    assert active_issues([dismissed, age]) == [age]
    assert active_issues(issues, {age.id}) == [duplicate]

    grouped = group_issues_by_category(issues)
    assert grouped[IssueCategory.DUPLICATE] == [duplicate]
    assert grouped[IssueCategory.RANGE] == [age]
    assert grouped[IssueCategory.TEMPORAL] == []


def test_display_names():
    assert get_check_name(CheckKind.DUPLICATE) == "Duplicates"
    assert get_check_name(CheckKind.FUTURE_DATE) == "Future Dates"
    assert get_category_name(IssueCategory.TEMPORAL) == "Date Issues"
    assert get_category_name(IssueCategory.RANGE) == "Out of Range"


def test_config_from_dict_accepts_camel_case_and_skips_bad_entries(caplog):
    data = {
        "fieldMapping": {"caseId": "case_id", "onsetDate": "onset_date", "favouriteColour": "x"},
        "enabledChecks": ["duplicate", "numeric-range", "telepathy"],
        "ageMax": "not a number",
        "ageMin": 1,
        "dateOrderRules": [{"firstDateField": "a", "secondDateField": "b"}],
        "numericRangeRules": [{"field": "temp", "min": 34, "max": 42, "fieldLabel": "Temp"}],
        "referenceDate": "2024-06-30",
        "colour": "blue",
    }
    with caplog.at_level(logging.WARNING):
        config = DataQualityConfig.from_dict(data)

    assert config.field_mapping == FieldMapping(case_id="case_id", onset_date="onset_date")
    assert config.enabled_checks == {CheckKind.DUPLICATE, CheckKind.NUMERIC_RANGE}
    assert config.age_min == 1.0
    assert config.age_max == 120
    assert config.date_order_rules == (DateOrderRule("a", "b"),)
    assert config.numeric_range_rules == (NumericRangeRule("temp", 34.0, 42.0, "Temp"),)
    assert config.reference_date == date(2024, 6, 30)
    assert "telepathy" in caplog.text
    assert "colour" in caplog.text
    assert "ageMax" in caplog.text


def test_config_loaded_from_file_checks_the_sample(fpath_outbreak_csv, fpath_check_config):
    with open(fpath_check_config, encoding="utf-8") as f:
        config = DataQualityConfig.from_dict(json.load(f))
    with open(fpath_outbreak_csv, encoding="utf-8") as f:
        dataset = parse_csv(f.read()).to_dataset()

    issues = check_dataset(dataset, config)
    kinds = sorted(i.check_type.value for i in issues)

    assert kinds == ["date_order", "duplicate", "fuzzy_duplicate", "logical", "numeric_range", "numeric_range"]


def test_fuzzy_duplicates_can_require_matching_context(make_dataset):
    dataset = make_dataset(
        ("r1", {"first_name": "Maria", "last_name": "Lopez", "age": 34.0, "onset_date": "2024-03-02"}),
        ("r2", {"first_name": "Maria", "last_name": "Lopes", "age": 34.0, "onset_date": "2024-03-03"}),
        ("r3", {"first_name": "Maria", "last_name": "Lopes", "age": 61.0, "onset_date": "2024-03-02"}),
    )

    def pairs(**kwargs):
        config = only(CheckKind.FUZZY_DUPLICATE, field_mapping=NAMES, **kwargs)
        return [i.record_ids for i in check_dataset(dataset, config)]

    assert pairs() == [("r1", "r2"), ("r1", "r3")]
    assert pairs(fuzzy_context_fields=["age"]) == [("r1", "r2")]
    assert pairs(fuzzy_context_fields=["age", "onset_date"]) == []
    assert pairs(fuzzy_context_fields=["age", "onset_date"], fuzzy_date_tolerance_days=1) == [("r1", "r2")]


def test_day_first_line_list_is_checked_in_its_own_date_order():
    """
    Onset dates fit both orders; report dates only fit day-first.
    """
    content = "Case ID,Onset Date,Report Date\nC1,02/03/2024,15/03/2024\nC2,04/03/2024,16/03/2024\n"
    mapping = FieldMapping(onset_date="onset_date", report_date="report_date")
    config = only(CheckKind.DATE_ORDER, field_mapping=mapping)

    month_first = parse_csv(content).to_dataset()
    assert [i.message for i in check_dataset(month_first, config)] == ["Report Date before Onset Date"]

    day_first = parse_csv(content, CsvParseOptions(day_first=True)).to_dataset()
    assert check_dataset(day_first, config) == []
    assert [r.get("onset_date") for r in day_first.records] == ["2024-03-02", "2024-03-04"]


def test_config_from_dict_skips_entries_of_the_wrong_shape(caplog):
    with caplog.at_level(logging.WARNING):
        config = DataQualityConfig.from_dict({
            "fieldMapping": ["case_id"],
            "dateOrderRules": ["onset", {"firstDateField": "a", "secondDateField": "b"}],
            "numericRangeRules": {"field": "temp"},
            "requiredFields": "age",
            "enabledChecks": 3,
        })

    assert config.field_mapping == FieldMapping()
    assert config.date_order_rules == (DateOrderRule("a", "b"),)
    assert config.numeric_range_rules == ()
    assert config.required_fields == ("age",)
    assert config.enabled_checks == frozenset(CheckKind)
    assert "fieldMapping" in caplog.text
    assert "dateOrderRules entry 1" in caplog.text


def test_config_from_dict_ignores_a_non_object(caplog):
    with caplog.at_level(logging.WARNING):
        assert DataQualityConfig.from_dict(["duplicate"]) == DataQualityConfig()
    assert "not an object" in caplog.text
