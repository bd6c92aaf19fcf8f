"""
Dataset domain model.

Defines Column, Record and Dataset: the canonical, schema-checked in-memory
representation shared by ingestion, the quality checks and the analyses.
Values are validated against their column's declared type when the Dataset
is built, not when they are read.
"""

from __future__ import annotations

import math
import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence

import pandas as pd

from .dates import parse_calendar_date

_VALID_KEY = re.compile(r"^[A-Za-z0-9_]+$")


class ColumnType(Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    CATEGORICAL = "categorical"

    @classmethod
    def from_label(cls, label: str) -> "ColumnType":
        try:
            return cls(label.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown column type: {label!r}")


class DatasetSource(Enum):
    IMPORT = "import"
    FORM = "form"


@dataclass(frozen=True)
class Column:
    """
    One variable of the dataset.

    Attributes:
        key: Identifier used in records (lower-case, underscores).
        label: Display name, usually the original header text.
        type: ColumnType assigned at ingestion.
        value_order: Optional display order for categorical values.
    """

    key: str
    label: str
    type: ColumnType = ColumnType.TEXT
    value_order: Optional[tuple[str, ...]] = None

    def __post_init__(self):
        if not isinstance(self.key, str) or not _VALID_KEY.match(self.key):
            raise ValueError(f"Invalid column key: {self.key!r}")
        if not isinstance(self.type, ColumnType):
            raise ValueError(f"type must be a ColumnType, got {type(self.type).__name__}")
        if self.value_order is not None:
            object.__setattr__(self, "value_order", tuple(str(v) for v in self.value_order))


def new_record_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Record:
    """
    One case (row). `values` maps column key -> typed value, or None if missing.
    """

    id: str
    values: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id:
            raise ValueError(f"Invalid record id: {self.id!r}")
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    @classmethod
    def create(cls, values: Mapping[str, Any], record_id: Optional[str] = None) -> "Record":
        return cls(id=record_id or new_record_id(), values=values)

    def get(self, key: Optional[str], default: Any = None) -> Any:
        if key is None:
            return default
        return self.values.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.values[key]

    def keys(self):
        return self.values.keys()


def coerce_value(column_type: ColumnType, value: Any) -> Any:
    """
    Check one value against a column type and return its canonical form:
    - number  -> float (int accepted; bool rejected; NaN -> None)
    - date    -> str naming a real calendar date (date/datetime -> ISO string)
    - boolean -> bool
    - text / categorical -> str
    Empty strings and None are missing (None) for every type.
    Raises ValueError when the value does not fit the type.
    """
    if value is None or (isinstance(value, str) and value == ""):
        return None

    if column_type is ColumnType.NUMBER:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"expected a number, got {value!r}")
        number = float(value)
        return None if math.isnan(number) else number

    if column_type is ColumnType.DATE:
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if not isinstance(value, str) or parse_calendar_date(value) is None:
            raise ValueError(f"expected a calendar date, got {value!r}")
        return value

    if column_type is ColumnType.BOOLEAN:
        if not isinstance(value, bool):
            raise ValueError(f"expected a boolean, got {value!r}")
        return value

    if not isinstance(value, str):
        raise ValueError(f"expected text, got {value!r}")
    return value


@dataclass(frozen=True)
class Dataset:
    """
    Ordered columns + ordered records + provenance.

    Invariants checked on construction:
      - column keys are unique
      - record ids are unique
      - every record key is a column key
      - every present value fits its column's type (values are canonicalized)
    """

    columns: Sequence[Column]
    records: Sequence[Record]
    source: DatasetSource = DatasetSource.IMPORT
    name: Optional[str] = None

    def __post_init__(self):
        if self.columns is None or self.records is None:
            raise TypeError("Dataset requires a column list and a record list")
        columns = tuple(self.columns)
        by_key = {}
        for column in columns:
            if column.key in by_key:
                raise ValueError(f"Duplicate column key: {column.key!r}")
            by_key[column.key] = column

        seen_ids = set()
        records = []
        for record in self.records:
            if record.id in seen_ids:
                raise ValueError(f"Duplicate record id: {record.id!r}")
            seen_ids.add(record.id)
            unknown = set(record.keys()) - by_key.keys()
            if unknown:
                raise ValueError(f"Record {record.id!r}: unknown columns {sorted(unknown)}")
            canonical = {}
            for key, value in record.values.items():
                try:
                    canonical[key] = coerce_value(by_key[key].type, value)
                except ValueError as e:
                    raise ValueError(f"Record {record.id!r}, column {key!r}: {e}")
            records.append(Record(id=record.id, values=canonical))

        object.__setattr__(self, "columns", columns)
        object.__setattr__(self, "records", tuple(records))

    @classmethod
    def from_rows(
        cls,
        columns: Sequence[Column],
        rows: Iterable[Mapping[str, Any]],
        source: DatasetSource = DatasetSource.FORM,
        name: Optional[str] = None,
    ) -> "Dataset":
        """Build a dataset from plain dicts, generating a record id per row."""
        records = [Record.create(row) for row in rows]
        return cls(columns=columns, records=records, source=source, name=name)

    @property
    def column_keys(self) -> list[str]:
        return [column.key for column in self.columns]

    def column(self, key: str) -> Optional[Column]:
        for column in self.columns:
            if column.key == key:
                return column
        return None

    def values(self, key: str) -> Iterator[Any]:
        return (record.get(key) for record in self.records)

    def __len__(self) -> int:
        return len(self.records)

    def to_frame(self) -> pd.DataFrame:
        """One row per record, indexed by record id, columns in dataset order."""
        frame = pd.DataFrame.from_records(
            [dict(record.values) for record in self.records],
            index=pd.Index([record.id for record in self.records], name="id"),
            columns=self.column_keys,
        )
        return frame
