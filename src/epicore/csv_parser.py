"""
CSV ingestion and export.

Turns delimited text into columns + records (delimiter detection, quoting,
header sanitizing, type inference, value parsing) and serializes a dataset
back to delimited text. Malformed rows are reported, never fatal.
"""

from __future__ import annotations

import logging
import math
import re
import typing
from collections import defaultdict
from dataclasses import dataclass, field

from .dataset import Column, ColumnType, Dataset, DatasetSource, Record, new_record_id
from .dates import DateOrder, detect_date_order, looks_like_date, normalize_date_text
from .locale_numbers import DEFAULT_PROFILE, LocaleProfile, format_csv_number, parse_flexible_number

logger = logging.getLogger(__name__)

CANDIDATE_DELIMITERS = (",", ";", "\t", "|")
TYPE_SAMPLE_ROWS = 10
BOOLEAN_TOKENS = {"true", "false", "yes", "no", "1", "0"}
TRUE_TOKENS = {"true", "yes", "1"}
FALSE_TOKENS = {"false", "no", "0"}

_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class CsvParseOptions:
    """
    delimiter: force a delimiter instead of detecting it from the header
    profile: locale used to read numeric cells (period-decimal if None)
    source: provenance recorded on the resulting dataset
    day_first: how to read date columns that fit both DD/MM and MM/DD
      (None: month-first, with a warning)
    """
    delimiter: typing.Optional[str] = None
    profile: typing.Optional[LocaleProfile] = None
    source: DatasetSource = DatasetSource.IMPORT
    day_first: typing.Optional[bool] = None


@dataclass(frozen=True)
class CsvExportOptions:
    delimiter: typing.Optional[str] = None
    profile: typing.Optional[LocaleProfile] = None


@dataclass
class ParseResult:
    columns: list[Column] = field(default_factory=list)
    records: list[Record] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    delimiter: str = ","
    source: DatasetSource = DatasetSource.IMPORT
    # record id -> row number in the source file, header being row 1
    record_lines: dict[str, int] = field(default_factory=dict)

    def to_dataset(self, name: typing.Optional[str] = None) -> Dataset:
        return Dataset(columns=self.columns, records=self.records, source=self.source, name=name)


def detect_delimiter(header_line: str) -> str:
    """
    Pick the candidate delimiter occurring most often in the header row.
    Ties go to the earlier candidate; no candidate at all means ",".
    """
    best, best_count = ",", 0
    for delimiter in CANDIDATE_DELIMITERS:
        count = header_line.count(delimiter)
        if count > best_count:
            best, best_count = delimiter, count
    return best


def parse_csv_line(line: str, delimiter: str = ",") -> list[str]:
    """
    Split one logical CSV line. A quote opens a quoted section only at the
    start of a field; elsewhere it is ordinary text (5'10"). Inside quotes a
    doubled quote is a literal quote and the delimiter is ordinary text.
    Fields are trimmed.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    while i < len(line):
        char = line[i]
        if in_quotes:
            if char == '"' and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 1
            elif char == '"':
                in_quotes = False
            else:
                current.append(char)
        else:
            if char == '"' and not "".join(current).strip():
                current = []
                in_quotes = True
            elif char == delimiter:
                fields.append("".join(current).strip())
                current = []
            else:
                current.append(char)
        i += 1
    fields.append("".join(current).strip())
    return fields


def _ends_in_quotes(line: str, in_quotes: bool, delimiter: str) -> bool:
    """Quote state at the end of one physical line, using the same rules as parse_csv_line."""
    at_field_start = not in_quotes
    i = 0
    while i < len(line):
        char = line[i]
        if in_quotes:
            if char == '"' and i + 1 < len(line) and line[i + 1] == '"':
                i += 1
            elif char == '"':
                in_quotes = False
        elif char == delimiter:
            at_field_start = True
        elif char == '"' and at_field_start:
            in_quotes = True
            at_field_start = False
        elif not char.isspace():
            at_field_start = False
        i += 1
    return in_quotes


def _split_lines(content: str, delimiter: str) -> tuple[list[tuple[int, str]], list[str]]:
    """
    Split content into (line_number, logical_line) pairs. A newline inside a
    quoted field does not end the line. A quote left open at the end of the
    file is reported and its row falls back to its own physical line, so the
    lines after it are still read. Blank lines are kept.
    """
    physical = content.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    lines: list[tuple[int, str]] = []
    errors: list[str] = []
    start = 0
    while start < len(physical):
        end = start
        in_quotes = _ends_in_quotes(physical[start], False, delimiter)
        while in_quotes and end + 1 < len(physical):
            end += 1
            in_quotes = _ends_in_quotes(physical[end], True, delimiter)
        if in_quotes:
            errors.append(f"Row {start + 1}: Unterminated quoted field")
            end = start
        lines.append((start + 1, "\n".join(physical[start:end + 1])))
        start = end + 1
    return lines, errors


def _is_blank(text: str) -> bool:
    # a line of delimiters is a record of missing values, not a blank line
    return not text.strip(" ")


def sanitize_column_key(header: str) -> str:
    """'Onset Date (dd/mm)' -> 'onset_date_dd_mm'"""
    return _NON_ALNUM_RUN.sub("_", header.strip().lower()).strip("_")


def _unique_keys(headers: typing.Sequence[str]) -> list[str]:
    keys: list[str] = []
    used: dict[str, int] = defaultdict(int)
    for position, header in enumerate(headers, start=1):
        key = sanitize_column_key(header) or f"column_{position}"
        used[key] += 1
        if used[key] > 1:
            candidate = f"{key}_{used[key]}"
            while candidate in used:
                used[key] += 1
                candidate = f"{key}_{used[key]}"
            used[candidate] += 1
            key = candidate
        keys.append(key)
    return keys


def infer_column_type(samples: typing.Sequence[str], profile: typing.Optional[LocaleProfile] = None) -> ColumnType:
    """
    Infer a column type from its non-empty sample values, in priority order:
    number, date, boolean, text.
    """
    values = [v for v in samples if v is not None and v != ""]
    if not values:
        return ColumnType.TEXT
    profile = profile or DEFAULT_PROFILE

    if all(math.isfinite(parse_flexible_number(v, profile)) for v in values):
        return ColumnType.NUMBER
    if all(looks_like_date(v) for v in values):
        return ColumnType.DATE
    if all(v.strip().lower() in BOOLEAN_TOKENS for v in values):
        return ColumnType.BOOLEAN
    return ColumnType.TEXT


def parse_boolean(value: typing.Any) -> typing.Optional[bool]:
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    token = str(value).strip().lower()
    if token in TRUE_TOKENS:
        return True
    if token in FALSE_TOKENS:
        return False
    return None


def parse_value(
    raw: typing.Optional[str],
    column_type: ColumnType,
    profile: typing.Optional[LocaleProfile] = None,
    date_order: typing.Optional[DateOrder] = None,
) -> typing.Any:
    """
    Convert one cell to the canonical value for `column_type`.
    Empty/None -> None for every type; a cell that cannot be read as the
    column's type also becomes None. With a `date_order`, dates are rewritten
    as ISO text.
    """
    if raw is None or raw == "":
        return None
    if column_type is ColumnType.NUMBER:
        number = parse_flexible_number(raw, profile or DEFAULT_PROFILE)
        return number if math.isfinite(number) else None
    if column_type is ColumnType.DATE:
        text = raw.strip()
        if date_order is not None:
            return normalize_date_text(text, date_order)
        return text if looks_like_date(text) else None
    if column_type is ColumnType.BOOLEAN:
        return parse_boolean(raw)
    return raw


def _resolve_date_order(
    column: Column, values: typing.Sequence[str], options: CsvParseOptions, result: ParseResult
) -> typing.Optional[DateOrder]:
    """
    Order used to read a date column. A column that fits both DD/MM and MM/DD
    follows `options.day_first`, and is read month-first with a warning when
    that is not set. A column of mixed formats keeps its values as typed.
    """
    analysis = detect_date_order(values)
    if analysis.ambiguous:
        if options.day_first is None:
            result.warnings.append(
                f"Column {column.label!r}: dates fit both DD/MM/YYYY and MM/DD/YYYY; read as MM/DD/YYYY"
            )
            return DateOrder.MONTH_FIRST
        return DateOrder.DAY_FIRST if options.day_first else DateOrder.MONTH_FIRST
    return analysis.detected


def build_result(
    headers: typing.Sequence[str],
    rows: typing.Sequence[tuple[int, typing.Sequence[str]]],
    options: CsvParseOptions,
    delimiter: str = ",",
) -> ParseResult:
    """
    Shared by the CSV and workbook paths: header -> columns, sample -> types,
    rows -> records. `rows` holds (line_number, fields) pairs.
    """
    result = ParseResult(delimiter=delimiter, source=options.source)
    if not headers or all(not h.strip() for h in headers):
        result.errors.append("No columns found in header")
        return result

    keys = _unique_keys(headers)
    sample_rows = [fields for _, fields in rows[:TYPE_SAMPLE_ROWS]]
    for index, (key, header) in enumerate(zip(keys, headers)):
        samples = [row[index] for row in sample_rows if index < len(row) and row[index] != ""]
        column_type = infer_column_type(samples, options.profile)
        logger.debug(f"Column {key!r} inferred as {column_type.value}")
        result.columns.append(Column(key=key, label=header.strip(), type=column_type))

    complete_rows = [(n, fields) for n, fields in rows if len(fields) == len(headers)]
    date_orders: dict[str, typing.Optional[DateOrder]] = {}
    for index, column in enumerate(result.columns):
        if column.type is ColumnType.DATE:
            values = [fields[index] for _, fields in complete_rows]
            date_orders[column.key] = _resolve_date_order(column, values, options, result)
            logger.debug(f"Column {column.key!r} dates read as {date_orders[column.key]}")

    for line_number, fields in rows:
        if len(fields) != len(headers):
            result.errors.append(
                f"Row {line_number}: Expected {len(headers)} columns, found {len(fields)}"
            )
            continue
        values = {}
        for column, raw in zip(result.columns, fields):
            value = parse_value(raw, column.type, options.profile, date_orders.get(column.key))
            if value is None and raw not in (None, ""):
                result.warnings.append(
                    f"Row {line_number}, column {column.label!r}: cannot read {raw!r} as {column.type.value}"
                )
            values[column.key] = value
        record = Record(id=new_record_id(), values=values)
        result.records.append(record)
        result.record_lines[record.id] = line_number

    return result


def parse_csv(content: str, options: typing.Optional[CsvParseOptions] = None) -> ParseResult:
    """
    Parse delimited text. Never raises for malformed content: empty input and
    header-less input come back as errors with zero columns/records, and rows
    with the wrong number of fields or an unterminated quote are reported.
    """
    options = options or CsvParseOptions()
    content = content or ""
    first_line = next((line for line in content.splitlines() if not _is_blank(line)), None)
    if first_line is None:
        return ParseResult(errors=["File is empty"], source=options.source)

    delimiter = options.delimiter or detect_delimiter(first_line)
    lines, quote_errors = _split_lines(content, delimiter)
    while _is_blank(lines[0][1]):
        lines.pop(0)
    _, header_line = lines[0]
    headers = parse_csv_line(header_line, delimiter)

    body = lines[1:]
    if len(headers) == 1:
        # one column: an empty line is a record whose only value is missing
        while body and _is_blank(body[-1][1]):
            body.pop()
    else:
        body = [(number, text) for number, text in body if not _is_blank(text)]
    rows = [(number, parse_csv_line(text, delimiter)) for number, text in body]

    result = build_result(headers, rows, options, delimiter)
    result.errors[:0] = quote_errors
    logger.debug(
        f"Parsed {len(result.records)} records, {len(result.columns)} columns "
        f"(delimiter {delimiter!r}, {len(result.errors)} row errors)"
    )
    return result


def escape_csv_value(value: str, delimiter: str = ",") -> str:
    if delimiter in value or '"' in value or "\n" in value or "\r" in value:
        return '"' + value.replace('"', '""') + '"'
    return value


def _export_cell(column: Column, value: typing.Any, delimiter: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if column.type is ColumnType.NUMBER and isinstance(value, (int, float)):
        return format_csv_number(value)
    if isinstance(value, float):
        return format_csv_number(value)
    return escape_csv_value(str(value), delimiter)


def export_to_csv(
    columns: typing.Sequence[Column],
    records: typing.Sequence[Record],
    options: typing.Optional[CsvExportOptions] = None,
) -> str:
    """
    Serialize columns + records. Numbers always use "." as the decimal
    separator; the field delimiter follows the explicit option, then the
    profile's CSV delimiter, then ",".
    """
    options = options or CsvExportOptions()
    delimiter = options.delimiter or (options.profile.csv_delimiter if options.profile else ",")

    lines = [delimiter.join(escape_csv_value(column.label, delimiter) for column in columns)]
    for record in records:
        lines.append(
            delimiter.join(_export_cell(column, record.get(column.key), delimiter) for column in columns)
        )
    return "\n".join(lines)
