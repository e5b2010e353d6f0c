# File: project_root/tide_tools.py

import argparse
import logging
import os
import sys
from datetime import date, datetime

import pandas as pd

from tide_table import (DATE_FORMAT_STR, DEFAULT_HEIGHT_RANGE, DEFAULT_TARGET_HEIGHT,
                        EXPECTED_COLUMN_NAMES, TABLE_DATE_FORMAT_STR, HeightRange,
                        TideKind, find_height_occurrences, height_range,
                        parse_tide_rows, select_day)

EXCEL_EXTENSIONS = ('.xls', '.xlsx')
CSV_EXTENSIONS = ('.csv',)
READING_COLUMNS = ['Date', 'Time', 'Height', 'Kind', 'Label']
OCCURRENCE_COLUMNS = ['Time', 'Direction']
KIND_ICONS = {TideKind.HIGH: '↑', TideKind.LOW: '↓', TideKind.OTHER: '~'}


def read_tide_rows(filename):
    """
    Reads the raw rows of a tide table spreadsheet.

    The first sheet of an Excel workbook (or a CSV file) is read without any
    type conversion; the first row is the header and is dropped.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file type is not supported or it cannot be read.
    """
    extension = os.path.splitext(filename)[1].lower()
    if extension not in EXCEL_EXTENSIONS + CSV_EXTENSIONS:
        raise ValueError(
            f"Unsupported file type '{extension or filename}'. "
            "Expected an .xls, .xlsx or .csv file."
        )
    try:
        if extension in EXCEL_EXTENSIONS:
            data = pd.read_excel(filename, sheet_name=0, header=None, dtype=object)
        else:
            data = pd.read_csv(filename, header=None, dtype=object,
                               skip_blank_lines=True)
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"The file {filename} was not found.") from exc
    except pd.errors.EmptyDataError:
        print(f"Warning: File {filename} is empty.", file=sys.stderr)
        return []
    except Exception as exc:
        raise ValueError(f"Error reading spreadsheet {filename}: {exc}") from exc

    if len(data) <= 1:
        print(f"Warning: No data rows read from {filename}.", file=sys.stderr)
        return []

    return list(data.iloc[1:].itertuples(index=False, name=None))


def load_tide_readings(filename):
    return parse_tide_rows(read_tide_rows(filename))


def readings_to_dataframe(readings):
    """Tabulates readings with the columns in READING_COLUMNS."""
    records = [
        (reading.date, reading.time, reading.height, reading.kind.value, reading.label)
        for reading in readings
    ]
    return pd.DataFrame.from_records(records, columns=READING_COLUMNS)


def occurrences_to_dataframe(occurrences):
    records = [(occurrence.time, occurrence.direction) for occurrence in occurrences]
    return pd.DataFrame.from_records(records, columns=OCCURRENCE_COLUMNS)


def day_statistics(readings, target_height):
    """
    Summary figures for a day's readings.

    Unlike height_range, min/max here are the actual heights (not floored),
    and all figures are 0.0 when there are no readings.
    """
    heights = pd.Series([reading.height for reading in readings], dtype=float)
    if heights.empty:
        max_height = min_height = 0.0
    else:
        max_height, min_height = float(heights.max()), float(heights.min())
    return {
        'max_height': max_height,
        'min_height': min_height,
        'amplitude': max_height - min_height,
        'target_height': float(target_height),
    }


def display_range(readings):
    """Height range padded by 10% of the amplitude, lower bound floored at 0."""
    heights = [reading.height for reading in readings]
    if not heights:
        return DEFAULT_HEIGHT_RANGE
    actual = HeightRange(min=min(heights), max=max(heights))
    return HeightRange(min=max(0.0, actual.min - actual.padding),
                       max=actual.max + actual.padding)


def _format_date(value):
    if hasattr(value, 'strftime'):
        return value.strftime(TABLE_DATE_FORMAT_STR)
    return str(value)


def format_tide_table(readings, daylight_saving=False):
    """Plain-text table of readings; shifted times are marked with '*'."""
    if not readings:
        return "No tide readings found for this day."

    marker = '*' if daylight_saving else ''
    lines = [f"{'Date':<10}  {'Time':<6}  {'Height (m)':>10}  Tide"]
    for reading in readings:
        time_col = f"{reading.time}{marker}"
        lines.append(
            f"{_format_date(reading.date):<10}  {time_col:<6}  {reading.height:>10.2f}  "
            f"{KIND_ICONS[reading.kind]} {reading.label}"
        )
    if daylight_saving:
        lines.append("* Time adjusted for daylight saving time (+1 hour)")
    return "\n".join(lines)


def format_occurrences(occurrences, target_height):
    if not occurrences:
        return f"The height {target_height:.1f}m does not occur on the selected day."
    lines = [f"Times when the height {target_height:.1f}m occurs ({len(occurrences)}):"]
    for occurrence in occurrences:
        lines.append(f"  {occurrence.time}  {occurrence.direction}")
    return "\n".join(lines)


def _parse_day_argument(value):
    if value is None:
        return date.today()
    try:
        return datetime.strptime(value, DATE_FORMAT_STR).date()
    except ValueError as exc:
        raise ValueError(
            f"Date '{value}' is not in the correct 'YYYY-MM-DD' format."
        ) from exc


def main():
    """
    Main function to parse arguments and print the tide table for one day.
    """
    parser = argparse.ArgumentParser(
        description="Show the tide table and target-height times for one day."
    )
    parser.add_argument(
        "data_path",
        type=str,
        help="Path to a tide table spreadsheet (.xls, .xlsx or .csv) with the columns "
             "Date, Time, Height (m) and Tide (e.g. 'Preia-Mar' or 'Baixa-Mar')."
    )
    parser.add_argument(
        "--date",
        type=str,
        help="Day to show (YYYY-MM-DD). Defaults to today."
    )
    parser.add_argument(
        "--height",
        type=float,
        default=DEFAULT_TARGET_HEIGHT,
        help="Target height in metres whose times of occurrence are listed."
    )
    parser.add_argument(
        "-d", "--daylight-saving",
        action="store_true",
        help="Shift the day's times one hour forward for daylight saving time."
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output for more details during execution."
    )

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    try:
        day = _parse_day_argument(args.date)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        readings = load_tide_readings(args.data_path)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error processing the file {args.data_path}: {e}", file=sys.stderr)
        print("Check that the file is a valid tide table spreadsheet.", file=sys.stderr)
        sys.exit(1)

    if not readings:
        print(f"Error: No valid tide readings found in {args.data_path}. "
              "Expected columns:", file=sys.stderr)
        for letter, column in zip("ABCD", EXPECTED_COLUMN_NAMES):
            print(f"  Column {letter}: {column}", file=sys.stderr)
        sys.exit(1)

    if args.verbose:
        print(f"Loaded {len(readings)} readings from {args.data_path}.")

    day_readings = select_day(readings, day, args.daylight_saving)
    heading = f"Tide readings ({len(day_readings)} for {day.strftime(TABLE_DATE_FORMAT_STR)})"
    if args.daylight_saving:
        heading += " (daylight saving +1h)"
    print(heading)
    print(format_tide_table(day_readings, args.daylight_saving))

    if args.verbose:
        bounds = height_range(day_readings)
        print(f"Display range for {day}: {bounds.min:.2f}m to {bounds.max:.2f}m")

    stats = day_statistics(day_readings, args.height)
    lowest, highest = stats['min_height'], stats['max_height']
    if day_readings and not lowest <= args.height <= highest:
        print(f"Warning: target height {args.height:.2f}m lies outside the day's "
              f"range ({lowest:.2f}m to {highest:.2f}m).", file=sys.stderr)

    occurrences = find_height_occurrences(day_readings, args.height)
    print()
    print(format_occurrences(occurrences, args.height))

    print()
    print(f"Max height: {highest:.2f}m")
    print(f"Min height: {lowest:.2f}m")
    print(f"Amplitude: {stats['amplitude']:.2f}m")
    print(f"Target height: {stats['target_height']:.1f}m")

if __name__ == "__main__":
    main()
