import logging
import math
import numbers
import typing
from datetime import date, datetime

import pandas as pd

from .csv_parser import CsvParseOptions, ParseResult, build_result
from .locale_numbers import format_csv_number, format_locale_number

logger = logging.getLogger(__name__)

_MIDNIGHT_SUFFIXES = (" 00:00:00", "T00:00:00")


def load_workbook_tables(workbook_path: str) -> dict[str, pd.DataFrame]:
    """
    Read each worksheet into a DataFrame:
      - first row = header
      - every cell read as text, empty cells stay "" (no NaN)
    Header sanitizing and typing happen later, in frame_to_parse_result.
    """
    excel = pd.ExcelFile(workbook_path, engine="openpyxl")
    tables: dict[str, pd.DataFrame] = {}

    for sheet_name in excel.sheet_names:
        df = pd.read_excel(
            excel, sheet_name=sheet_name, header=0, dtype=str, keep_default_na=False, engine="openpyxl"
        )
        tables[sheet_name] = df

    logger.debug(f"Loaded sheets {list(tables)} from {workbook_path!r}")
    return tables


def _cell_text(value: typing.Any, options: CsvParseOptions) -> str:
    """
    Render one DataFrame cell as the text a user would have typed.
    Native numbers are written in the active profile so they parse back unchanged.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, numbers.Real):
        if math.isnan(float(value)):
            return ""
        if options.profile is not None:
            return format_locale_number(value, options.profile)
        return format_csv_number(value)
    if value is pd.NaT:
        return ""
    if isinstance(value, (datetime, date)):
        value = value.isoformat()
    text = str(value).strip()
    for suffix in _MIDNIGHT_SUFFIXES:
        if text.endswith(suffix):
            return text[: -len(suffix)]
    return text


def frame_to_parse_result(frame: pd.DataFrame, options: typing.Optional[CsvParseOptions] = None) -> ParseResult:
    """
    Apply the CSV ingestion rules (header keys, type inference, value
    parsing) to a DataFrame. Row numbers in messages count the header as row 1.
    """
    options = options or CsvParseOptions()
    headers = [str(column).strip() for column in frame.columns]
    rows = [
        (position + 2, [_cell_text(cell, options) for cell in row])
        for position, row in enumerate(frame.itertuples(index=False, name=None))
    ]
    # drop rows that are entirely empty, as the CSV path drops blank lines
    rows = [(number, fields) for number, fields in rows if any(fields)]
    return build_result(headers, rows, options)


def load_workbook_dataset(
    workbook_path: str,
    sheet_name: typing.Optional[str] = None,
    options: typing.Optional[CsvParseOptions] = None,
) -> ParseResult:
    """
    Ingest one worksheet (the first one unless `sheet_name` is given).
    """
    options = options or CsvParseOptions()
    tables = load_workbook_tables(workbook_path)
    if not tables:
        return ParseResult(errors=["File is empty"], source=options.source)

    if sheet_name is None:
        sheet_name = next(iter(tables))
    elif sheet_name not in tables:
        # allow case-insensitive selection, e.g. "linelist" for "LineList"
        matches = [name for name in tables if name.strip().casefold() == sheet_name.strip().casefold()]
        if not matches:
            return ParseResult(errors=[f"Sheet {sheet_name!r} not found"], source=options.source)
        sheet_name = matches[0]

    frame = tables[sheet_name]
    if frame.columns.empty:
        return ParseResult(errors=["No columns found in header"], source=options.source)
    return frame_to_parse_result(frame, options)
