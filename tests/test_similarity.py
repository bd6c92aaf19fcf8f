import pytest

from epicore.dataset import Column, ColumnType
from epicore.similarity import (
    dates_within_range,
    edit_distance,
    field_similarity,
    jaro_winkler_similarity,
    normalize_text,
    record_similarity,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("  Maria   LOPEZ ", "maria lopez"),
        (None, ""),
        (True, "true"),
        (12.0, "12"),
        (12.5, "12.5"),
    ],
)
def test_normalize_text(value, expected):
    assert normalize_text(value) == expected


def test_edit_distance_ignores_case_and_spacing():
    assert edit_distance("Lopez", "lopes") == 1
    assert edit_distance("Maria  Lopez", "maria lopez") == 0
    assert edit_distance("", "abc") == 3


def test_jaro_winkler_similarity():
    assert jaro_winkler_similarity("Martha", "MARTHA") == 1.0
    assert jaro_winkler_similarity("", "Martha") == 0.0
    assert jaro_winkler_similarity("Martha", "Marhta") == pytest.approx(0.961, abs=1e-3)
    assert jaro_winkler_similarity("Li", "Lu") < 0.85


def test_dates_within_range():
    assert dates_within_range("2024-03-01", "2024-03-03", 2)
    assert not dates_within_range("2024-03-01", "2024-03-03", 1)
    assert not dates_within_range("soon", "2024-03-01", 30)


@pytest.mark.parametrize(
    "first, second, column_type, expected",
    [
        (None, " ", ColumnType.TEXT, 1.0),
        ("Maria", None, ColumnType.TEXT, 0.0),
        ("Maria", "maria", ColumnType.TEXT, 1.0),
        (34.0, "34", ColumnType.NUMBER, 1.0),
        (34.0, 35.0, ColumnType.NUMBER, 0.0),
        ("yes", True, ColumnType.BOOLEAN, 1.0),
        ("no", True, ColumnType.BOOLEAN, 0.0),
        ("maybe", True, ColumnType.BOOLEAN, None),
        ("2024-03-01", "soon", ColumnType.DATE, None),
        ("2024-03-01", "2024-03-01", ColumnType.DATE, 1.0),
    ],
)
def test_field_similarity(first, second, column_type, expected):
    assert field_similarity(first, second, column_type) == expected


def test_record_similarity_compares_by_column_type():
    columns = [Column("age", "Age", ColumnType.NUMBER), Column("onset", "Onset", ColumnType.DATE)]
    first = {"age": 34.0, "onset": "2024-03-02"}
    second = {"age": 34.0, "onset": "2024-03-03"}

    assert record_similarity(first, second, columns) == 0.5
    assert record_similarity(first, second, columns, date_tolerance_days=1) == 1.0
    # nothing comparable
    assert record_similarity({"onset": "soon"}, {"onset": "later"}, columns[1:]) == 0.0
