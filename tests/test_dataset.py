"""
Tests for the Column / Record / Dataset model and its construction checks.
"""

from datetime import date

import pytest

from epicore.dataset import Column, ColumnType, Dataset, DatasetSource, Record, coerce_value


def test_column_key_must_be_identifier_like():
    Column("onset_date", "Onset Date", ColumnType.DATE)
    with pytest.raises(ValueError):
        Column("onset date", "Onset Date")
    with pytest.raises(ValueError):
        Column("", "Empty")


def test_record_values_are_read_only():
    record = Record.create({"age": 3.0})
    assert record.get("age") == 3.0
    assert record.get(None) is None
    assert record.get("missing", "x") == "x"
    with pytest.raises(TypeError):
        record.values["age"] = 4.0


@pytest.mark.parametrize(
    "column_type, value, expected",
    [
        (ColumnType.NUMBER, 3, 3.0),
        (ColumnType.NUMBER, float("nan"), None),
        (ColumnType.DATE, date(2024, 3, 1), "2024-03-01"),
        (ColumnType.DATE, "2024-03-01", "2024-03-01"),
        (ColumnType.BOOLEAN, False, False),
        (ColumnType.TEXT, "", None),
        (ColumnType.CATEGORICAL, "A", "A"),
    ],
)
def test_coerce_value_canonical_forms(column_type, value, expected):
    assert coerce_value(column_type, value) == expected


@pytest.mark.parametrize(
    "column_type, value",
    [
        (ColumnType.NUMBER, "12"),
        (ColumnType.NUMBER, True),
        (ColumnType.DATE, "2024-02-30"),
        (ColumnType.BOOLEAN, "yes"),
        (ColumnType.TEXT, 5),
    ],
)
def test_coerce_value_rejects_wrong_types(column_type, value):
    with pytest.raises(ValueError):
        coerce_value(column_type, value)


def test_dataset_checks_schema(line_list_columns):
    with pytest.raises(ValueError, match="unknown columns"):
        Dataset(line_list_columns, [Record("r1", {"weight": 3.0})])
    with pytest.raises(ValueError, match="Duplicate record id"):
        Dataset(line_list_columns, [Record("r1", {}), Record("r1", {})])
    with pytest.raises(ValueError, match="Duplicate column key"):
        Dataset([Column("a", "A"), Column("a", "A again")], [])
    with pytest.raises(ValueError, match="column 'age'"):
        Dataset(line_list_columns, [Record("r1", {"age": "old"})])
    with pytest.raises(TypeError):
        Dataset(line_list_columns, None)


def test_dataset_from_rows_and_frame(line_list_columns):
    dataset = Dataset.from_rows(
        line_list_columns,
        [{"case_id": "C1", "age": 30}, {"case_id": "C2", "onset_date": date(2024, 1, 2)}],
    )
    assert dataset.source is DatasetSource.FORM
    assert len(dataset) == 2
    assert list(dataset.values("age")) == [30.0, None]
    assert dataset.column("age").type is ColumnType.NUMBER
    assert dataset.column("nope") is None

    frame = dataset.to_frame()
    assert list(frame.columns) == dataset.column_keys
    assert frame.index.name == "id"
    assert frame.loc[dataset.records[1].id, "onset_date"] == "2024-01-02"
