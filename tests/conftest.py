import os

import pytest

from epicore.dataset import Column, ColumnType, Dataset, Record


@pytest.fixture(scope="session")
def fpath_test_dir() -> str:
    """
    Path to `tests/data/` folder.
    """
    return os.path.join(os.path.dirname(__file__), "data")


@pytest.fixture(scope="session")
def fpath_outbreak_csv(fpath_test_dir: str) -> str:
    return os.path.join(fpath_test_dir, "outbreak.csv")


@pytest.fixture(scope="session")
def fpath_check_config(fpath_test_dir: str) -> str:
    return os.path.join(fpath_test_dir, "check_config.json")


@pytest.fixture
def line_list_columns() -> list[Column]:
    return [
        Column("case_id", "Case ID"),
        Column("first_name", "First Name"),
        Column("last_name", "Last Name"),
        Column("age", "Age", ColumnType.NUMBER),
        Column("exposure_date", "Exposure Date", ColumnType.DATE),
        Column("onset_date", "Onset Date", ColumnType.DATE),
        Column("report_date", "Report Date", ColumnType.DATE),
        Column("case_status", "Case Status"),
        Column("lab_result", "Lab Result"),
    ]


@pytest.fixture
def make_dataset(line_list_columns):
    """
    Build a Dataset from (record_id, values) pairs over the line-list columns,
    so that tests can refer to records by readable ids.
    """
    def _make(*rows, columns=None):
        records = [Record(id=record_id, values=values) for record_id, values in rows]
        return Dataset(columns=columns or line_list_columns, records=records)

    return _make
