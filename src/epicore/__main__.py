"""
Command-line interface for epicore: check a line list for data quality
problems, run two-by-two analyses, describe a variable, and re-export a file
as period-decimal CSV.
"""

import json
import logging
import pathlib
import sys
import typing

import click
from stairval.notepad import create_notepad

from .csv_parser import CsvExportOptions, CsvParseOptions, ParseResult, export_to_csv, parse_csv, sanitize_column_key
from .dataset import Column, ColumnType, Dataset
from .descriptive import calculate_descriptive_stats, calculate_frequency
from .loader import load_workbook_dataset
from .locale_numbers import LocaleProfile, NumberFormat, format_locale_number, format_locale_percent
from .quality import DataQualityConfig, Severity, check_dataset, get_check_name
from .statistics import (
    ExposureDefinition,
    OutcomeDefinition,
    StudyDesign,
    analyze_exposures,
    design_percentages,
    format_ci,
    format_p_value,
    format_ratio,
    suggest_exposed_value,
)

logger = logging.getLogger(__name__)

WORKBOOK_SUFFIXES = {".xlsx", ".xlsm"}
NUMBER_FORMATS = [f.value for f in NumberFormat]


@click.group()
@click.option(
    "--verbose-logging",
    is_flag=True,
    help="Also emit debug logs to stderr",
)
@click.option(
    "--log-file-path",
    type=click.Path(dir_okay=False, writable=True),
    help="Append timestamped logs to this file",
)
def main(verbose_logging: bool = False, log_file_path: typing.Optional[str] = None):
    """epicore: outbreak line-list checks and two-by-two analysis."""
    _configure_logging(verbose_logging, log_file_path)


def _configure_logging(verbose_logging: bool, log_file_path: typing.Optional[str]):
    handlers: list[logging.Handler] = []
    if log_file_path:
        handlers.append(logging.FileHandler(log_file_path, mode="a", encoding="utf-8"))
    if verbose_logging:
        handlers.append(logging.StreamHandler(sys.stderr))
    if handlers:
        logging.basicConfig(
            level=logging.DEBUG if verbose_logging else logging.INFO,
            format="%(asctime)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            handlers=handlers,
        )


def input_options(command):
    """Options shared by every command that reads a data file."""
    command = click.option(
        "--day-first/--month-first",
        "day_first",
        default=None,
        help="how to read dates such as 03/04/2024 (default: month first, with a warning)",
    )(command)
    command = click.option(
        "--sheet",
        "sheet_name",
        default=None,
        help="worksheet to read from a workbook (default: the first one)",
    )(command)
    command = click.option(
        "--delimiter",
        default=None,
        help="field delimiter of a CSV input (default: detected from the header)",
    )(command)
    command = click.option(
        "--number-format",
        type=click.Choice(NUMBER_FORMATS),
        default=NumberFormat.PERIOD_DECIMAL.value,
        show_default=True,
        help="how numbers are written in the input",
    )(command)
    command = click.option(
        "-i",
        "--input-path",
        "input_path",
        required=True,
        type=click.Path(exists=True, dir_okay=False),
        help="CSV file or Excel workbook",
    )(command)
    return command


def _profile(number_format: str) -> LocaleProfile:
    return LocaleProfile.for_format(NumberFormat.from_label(number_format))


def _read_input(
    input_path: str,
    profile: LocaleProfile,
    delimiter: typing.Optional[str] = None,
    sheet_name: typing.Optional[str] = None,
    day_first: typing.Optional[bool] = None,
) -> ParseResult:
    options = CsvParseOptions(delimiter=delimiter, profile=profile, day_first=day_first)
    path = pathlib.Path(input_path)
    logging.info(f"Reading '{input_path}'")
    if path.suffix.lower() in WORKBOOK_SUFFIXES:
        return load_workbook_dataset(str(path), sheet_name=sheet_name, options=options)
    # utf-8-sig drops the byte-order mark spreadsheet programs put in front of CSV exports
    content = path.read_text(encoding="utf-8-sig")
    return parse_csv(content, options)


def _load_input(notepad, input_path, number_format, delimiter, sheet_name, day_first=None) -> ParseResult:
    """
    Parse the input. Row errors and cell warnings go to the notepad; an input
    with no columns ends the command with status 1.
    """
    result = _read_input(input_path, _profile(number_format), delimiter, sheet_name, day_first)
    for error in result.errors:
        notepad.add_error(error)
    for warning in result.warnings:
        notepad.add_warning(warning)
    if not result.columns:
        _report_issues(notepad)
        click.echo(f"Error: could not read any columns from {input_path}", err=True)
        sys.exit(1)
    return result


def _load_dataset(notepad, input_path, number_format, delimiter, sheet_name, day_first=None) -> Dataset:
    result = _load_input(notepad, input_path, number_format, delimiter, sheet_name, day_first)
    return result.to_dataset(name=pathlib.Path(input_path).stem)


def _report_issues(notepad):
    # if there were errors, show them
    if notepad.has_errors(include_subsections=True):
        click.echo("Errors found:")
        for err in notepad.errors():
            click.echo(f"- {err.message}")
    # show any warnings but keep going
    if notepad.has_warnings(include_subsections=True):
        click.echo("Warnings found:")
        for w in notepad.warnings():
            click.echo(f"- {w.message}")


def _resolve_column(columns: typing.Sequence[Column], name: str) -> typing.Optional[Column]:
    """Find a column by key, by label, or by the key its label would sanitize to."""
    for column in columns:
        if column.key == name or column.label == name:
            return column
    key = sanitize_column_key(name)
    for column in columns:
        if column.key == key:
            return column
    return None


@main.command(name="check")
@input_options
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON file with the field mapping and check settings",
)
def check(
    input_path: str,
    number_format: str,
    delimiter: typing.Optional[str],
    sheet_name: typing.Optional[str],
    day_first: typing.Optional[bool],
    config_path: typing.Optional[str] = None,
):
    """
    Run the data quality checks over a line list and list every issue found.
    """
    config = _load_config(config_path)
    notepad = create_notepad("check")
    parsed = _load_input(notepad, input_path, number_format, delimiter, sheet_name, day_first)
    dataset = parsed.to_dataset(name=pathlib.Path(input_path).stem)

    issues = check_dataset(dataset, config)
    for issue in issues:
        where = ", ".join(str(parsed.record_lines.get(record_id, record_id)) for record_id in issue.record_ids)
        line = f"{get_check_name(issue.check_type)}: {issue.message} (rows {where})"
        if issue.details:
            line += f" - {issue.details}"
        if issue.severity is Severity.ERROR:
            notepad.add_error(line)
        else:
            notepad.add_warning(line)

    _report_issues(notepad)
    errors = sum(1 for i in issues if i.severity is Severity.ERROR)
    warnings = len(issues) - errors
    click.echo(f"Checked {len(dataset)} records: {errors} errors, {warnings} warnings")


def _load_config(config_path: typing.Optional[str]) -> DataQualityConfig:
    if not config_path:
        return DataQualityConfig()
    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        click.echo(f"Error: {config_path} is not valid JSON: {e}", err=True)
        sys.exit(1)
    if not isinstance(data, dict):
        click.echo(f"Error: {config_path} must hold a JSON object", err=True)
        sys.exit(1)
    return DataQualityConfig.from_dict(data)


@main.command(name="twobytwo")
@input_options
@click.option("--outcome", required=True, help="outcome column (key or header text)")
@click.option("--case-value", "case_values", multiple=True, required=True, help="value meaning ill; repeatable")
@click.option(
    "--non-case-value",
    "non_case_values",
    multiple=True,
    help="value meaning not ill; repeatable (default: any other value)",
)
@click.option(
    "--exposure",
    "exposures",
    multiple=True,
    required=True,
    help="COLUMN or COLUMN=EXPOSED_VALUE; repeatable",
)
@click.option(
    "--design",
    type=click.Choice([d.value for d in StudyDesign]),
    default=StudyDesign.COHORT.value,
    show_default=True,
)
@click.option("--json", "as_json", is_flag=True, help="print results as JSON")
def twobytwo(
    input_path: str,
    number_format: str,
    delimiter: typing.Optional[str],
    sheet_name: typing.Optional[str],
    day_first: typing.Optional[bool],
    outcome: str,
    case_values: tuple[str, ...],
    non_case_values: tuple[str, ...],
    exposures: tuple[str, ...],
    design: str,
    as_json: bool = False,
):
    """
    Build one two-by-two table per exposure against the outcome and report
    attack rates, risk / odds ratios with confidence intervals and tests.
    """
    notepad = create_notepad("twobytwo")
    dataset = _load_dataset(notepad, input_path, number_format, delimiter, sheet_name, day_first)
    study_design = StudyDesign.from_label(design)

    outcome_column = _resolve_column(dataset.columns, outcome)
    if outcome_column is None:
        _report_issues(notepad)
        click.echo(f"Error: outcome column {outcome!r} not found", err=True)
        sys.exit(1)
    outcome_definition = OutcomeDefinition(
        outcome_column.key, frozenset(case_values), frozenset(non_case_values) if non_case_values else None
    )

    definitions = []
    for item in exposures:
        name, _, value = item.partition("=")
        column = _resolve_column(dataset.columns, name.strip())
        if column is None:
            notepad.add_error(f"Exposure column {name.strip()!r} not found")
            continue
        exposed_value = value.strip() or suggest_exposed_value(dataset.records, column.key)
        if exposed_value is None:
            notepad.add_error(f"Exposure column {column.label!r} has no values")
            continue
        if not value.strip():
            notepad.add_warning(f"Exposure {column.label!r}: using {exposed_value!r} as the exposed value")
        definitions.append(ExposureDefinition(column.key, exposed_value))

    results = analyze_exposures(dataset.records, outcome_definition, definitions, study_design, dataset.columns)
    if as_json:
        click.echo(json.dumps([r.to_dict() for r in results], indent=2))
        return

    _report_issues(notepad)
    profile = _profile(number_format)
    for result in results:
        _print_two_by_two(result, study_design, profile)


def _print_two_by_two(result, design: StudyDesign, profile: LocaleProfile):
    r = result.results
    t = result.table
    percentages = design_percentages(r, design)

    def pct(value):
        return format_locale_percent(value / 100, profile) or "-"

    click.echo("")
    click.echo(f"Exposure: {result.label} (exposed = {result.exposure.exposed_value})")
    if design is StudyDesign.CASE_CONTROL:
        click.echo(f"{'':12}{'Cases':>10}{'Controls':>10}{'Total':>8}")
        click.echo(f"{'Exposed':12}{t.a:>10}{t.b:>10}{r.total_exposed:>8}")
        click.echo(f"{'Unexposed':12}{t.c:>10}{t.d:>10}{r.total_unexposed:>8}")
        click.echo(f"{'% exposed':12}{pct(percentages['a']):>10}{pct(percentages['b']):>10}")
    else:
        click.echo(f"{'':12}{'Ill':>8}{'Not ill':>10}{'Total':>8}{'Attack rate':>14}")
        click.echo(f"{'Exposed':12}{t.a:>8}{t.b:>10}{r.total_exposed:>8}{pct(percentages['a']):>14}")
        click.echo(f"{'Unexposed':12}{t.c:>8}{t.d:>10}{r.total_unexposed:>8}{pct(percentages['c']):>14}")

    level = format_locale_number(r.confidence * 100, profile)
    measure = result.primary
    click.echo(f"{measure.name}: {format_ratio(measure.estimate)} ({level}% CI {format_ci(measure.ci)})")
    click.echo(f"Chi-square: {format_ratio(r.chi_square)} (p = {format_p_value(r.chi_square_p_value)})")
    if r.fisher_exact_p_value is not None:
        click.echo(f"Fisher exact p: {format_p_value(r.fisher_exact_p_value)}")


@main.command(name="export")
@input_options
@click.option(
    "-o",
    "--output-path",
    "output_path",
    required=True,
    type=click.Path(dir_okay=False, writable=True),
    help="where to write the CSV",
)
@click.option(
    "--output-delimiter",
    default=None,
    help="field delimiter of the written CSV (default: the number format's CSV delimiter)",
)
def export(
    input_path: str,
    number_format: str,
    delimiter: typing.Optional[str],
    sheet_name: typing.Optional[str],
    day_first: typing.Optional[bool],
    output_path: str,
    output_delimiter: typing.Optional[str] = None,
):
    """
    Re-write a CSV or workbook as CSV with period-decimal numbers.
    """
    notepad = create_notepad("export")
    dataset = _load_dataset(notepad, input_path, number_format, delimiter, sheet_name, day_first)
    _report_issues(notepad)

    text = export_to_csv(
        dataset.columns,
        dataset.records,
        CsvExportOptions(delimiter=output_delimiter, profile=_profile(number_format)),
    )
    with open(output_path, "w", encoding="utf-8", newline="") as out_f:
        out_f.write(text + "\n")
    click.echo(f"Wrote {len(dataset)} records to {output_path}")


@main.command(name="describe")
@input_options
@click.option("--column", "column_name", required=True, help="column to describe (key or header text)")
def describe(
    input_path: str,
    number_format: str,
    delimiter: typing.Optional[str],
    sheet_name: typing.Optional[str],
    day_first: typing.Optional[bool],
    column_name: str,
):
    """
    Summary statistics for a numeric column, or a frequency table for any other.
    """
    notepad = create_notepad("describe")
    dataset = _load_dataset(notepad, input_path, number_format, delimiter, sheet_name, day_first)
    column = _resolve_column(dataset.columns, column_name)
    if column is None:
        click.echo(f"Error: column {column_name!r} not found", err=True)
        sys.exit(1)
    profile = _profile(number_format)

    click.echo(f"{column.label} ({column.type.value})")
    if column.type is ColumnType.NUMBER:
        s = calculate_descriptive_stats(dataset.values(column.key))

        def num(value):
            return format_locale_number(value, profile, 2) or "-"

        click.echo(f"  n: {s.count} (missing {s.missing})")
        click.echo(f"  mean: {num(s.mean)}  sd: {num(s.std_dev)}")
        click.echo(f"  median: {num(s.median)}  IQR: {num(s.q1)} - {num(s.q3)}")
        click.echo(f"  min: {num(s.min)}  max: {num(s.max)}")
        if s.mode is not None:
            click.echo(f"  mode: {num(s.mode)}")
        return

    for item in calculate_frequency(dataset.values(column.key)):
        percent = format_locale_number(item.percent, profile, 1)
        click.echo(f"  {item.value}: {item.count} ({percent}%)")


if __name__ == "__main__":
    main()
