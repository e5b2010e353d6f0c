"""
Tide Table Core

This module turns tide-table spreadsheet rows into tide readings, selects the
readings for one calendar day (optionally shifted for daylight saving time),
finds every time of that day at which the tide reaches a chosen height and
summarizes the day's height range.
Spreadsheet loading, table formatting and the command line live in 'tide_tools'.
"""
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

MINUTES_PER_DAY: int = 24 * 60
HEIGHT_TOLERANCE_M: float = 0.01
DAYLIGHT_SAVING_SHIFT_MINUTES: int = 60
DEFAULT_TARGET_HEIGHT: float = 2.4
MIN_CELLS_PER_ROW: int = 4
# Spreadsheet serial day 0 (1900 date system, after the 1900-02-29 bug)
EXCEL_EPOCH: date = date(1899, 12, 30)
EXCEL_LEAP_BUG_SERIAL: int = 61
EXPECTED_COLUMN_NAMES: list[str] = ['Date', 'Time', 'Height (m)', 'Tide']
# Date format used when parsing --date and printing table dates
DATE_FORMAT_STR: str = '%Y-%m-%d'
TABLE_DATE_FORMAT_STR: str = '%d/%m/%Y'

_CLOCK_TIME_RE = re.compile(r'^(\d{1,2}):(\d{2})(?::\d{2}(?:\.\d+)?)?$')
_YEAR_FIRST_DATE_RE = re.compile(r'^(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})(?:[ T].*)?$')
_DAY_FIRST_DATE_RE = re.compile(r'^(\d{1,2})[-/.](\d{1,2})[-/.](\d{4})(?:[ T].*)?$')
_HIGH_TIDE_MARKERS = ('high', 'preia', 'alta')
_LOW_TIDE_MARKERS = ('low', 'baixa')


class TideKind(str, Enum):
    """
    Tide phase of a reading, derived from the free-text column.

    - HIGH: high water ("High", "Preia-Mar", "Maré alta").
    - LOW: low water ("Low", "Baixa-Mar").
    - OTHER: anything else.
    """
    HIGH = "high"
    LOW = "low"
    OTHER = "other"


@dataclass(frozen=True)
class TideReading:
    """One tabulated tide sample."""

    date: date | str
    time: str
    height: float
    kind: TideKind = TideKind.OTHER
    label: str = ""

    @property
    def minutes(self) -> int | None:
        return time_to_minutes(self.time)


@dataclass(frozen=True)
class HeightOccurrence:
    """A time of day at which the tide equals or crosses a target height."""

    time: str
    is_exact: bool
    is_rising: bool

    @property
    def minutes(self) -> int | None:
        return time_to_minutes(self.time)

    @property
    def direction(self) -> str:
        if self.is_exact:
            return "exact"
        return "rising" if self.is_rising else "falling"


@dataclass(frozen=True)
class HeightRange:
    """Lower and upper height bound (metres) of a day's readings."""

    min: float
    max: float

    @property
    def amplitude(self) -> float:
        return self.max - self.min

    @property
    def padding(self) -> float:
        return self.amplitude * 0.1


DEFAULT_HEIGHT_RANGE = HeightRange(min=0.0, max=5.0)


def classify_tide_kind(text: str) -> TideKind:
    """Maps the free-text tide column to a TideKind (case-insensitive)."""
    lowered = str(text).lower()
    if any(marker in lowered for marker in _HIGH_TIDE_MARKERS):
        return TideKind.HIGH
    if any(marker in lowered for marker in _LOW_TIDE_MARKERS):
        return TideKind.LOW
    return TideKind.OTHER


def time_to_minutes(time_str: str) -> int | None:
    """Minutes since midnight for an 'HH:MM' string, None if it is not a clock time."""
    match = _CLOCK_TIME_RE.match(str(time_str).strip())
    if match is None:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours >= 24 or minutes >= 60:
        return None
    return hours * 60 + minutes


def minutes_to_time(minutes: int) -> str:
    minutes = int(minutes) % MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _is_number(value) -> bool:
    return (isinstance(value, (int, float, np.integer, np.floating))
            and not isinstance(value, (bool, np.bool_)))


def _is_blank(cell) -> bool:
    if cell is None:
        return True
    if isinstance(cell, str):
        return not cell.strip()
    try:
        return bool(pd.isna(cell))
    except (TypeError, ValueError):
        return False


def _calendar_date_or_text(year: str, month: str, day: str, text: str) -> date | str:
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return text


def _parse_date_cell(cell) -> date | str:
    """
    Normalizes a spreadsheet date cell to a calendar date.

    Numeric cells are serial day counts in the 1900 date system; native date
    values keep their calendar date; text is read year-first when it starts
    with a four-digit year ('2024-03-05') and day-first otherwise
    ('05/03/2024'). Anything that cannot be recognized, impossible dates
    included, is returned stringified.
    """
    if _is_number(cell):
        serial = int(np.floor(float(cell)))
        if serial < EXCEL_LEAP_BUG_SERIAL:
            serial += 1
        return EXCEL_EPOCH + timedelta(days=serial)
    if isinstance(cell, np.datetime64):
        return pd.Timestamp(cell).date()
    if isinstance(cell, datetime):
        return cell.date()
    if isinstance(cell, date):
        return cell
    if isinstance(cell, str):
        text = cell.strip()
        match = _YEAR_FIRST_DATE_RE.match(text)
        if match is not None:
            year, month, day = match.groups()
            return _calendar_date_or_text(year, month, day, text)
        match = _DAY_FIRST_DATE_RE.match(text)
        if match is not None:
            day, month, year = match.groups()
            return _calendar_date_or_text(year, month, day, text)
        parsed = pd.to_datetime(text, dayfirst=True, errors='coerce')
        if pd.isna(parsed):
            return text
        return parsed.date()
    return str(cell)


def _parse_time_cell(cell) -> str:
    """Normalizes a spreadsheet time cell to 'HH:MM' (text that is not a time passes through)."""
    if _is_number(cell):
        return minutes_to_time(round(float(cell) * MINUTES_PER_DAY))
    if isinstance(cell, (datetime, time)):
        seconds = cell.hour * 3600 + cell.minute * 60 + cell.second + cell.microsecond / 1e6
        return minutes_to_time(round(seconds / 60))
    text = str(cell).strip()
    minutes = time_to_minutes(text)
    if minutes is None:
        return text
    return minutes_to_time(minutes)


def _parse_height_cell(cell) -> float:
    """Parses a height in metres; unparsable values become 0.0."""
    if _is_number(cell):
        value = float(cell)
    else:
        text = str(cell).strip().replace(',', '.')
        if text.upper().endswith('M'):
            text = text[:-1].strip()
        value = pd.to_numeric(text, errors='coerce')
    if pd.isna(value) or np.isinf(value):
        return 0.0
    return float(value)


def parse_tide_rows(rows: Iterable[Sequence]) -> list[TideReading]:
    """
    Converts raw spreadsheet rows into tide readings.

    Each row is expected to hold at least four cells: date, time, height and
    tide kind. Rows that are too short or miss any of those cells are dropped;
    this never raises.

    Args:
        rows (Iterable[Sequence]): Raw rows, header already removed.

    Returns:
        list[TideReading]: The valid readings, in input order.
    """
    readings = []
    dropped = 0
    for row in rows:
        try:
            cells = list(row)[:MIN_CELLS_PER_ROW]
        except TypeError:
            dropped += 1
            continue
        if len(cells) < MIN_CELLS_PER_ROW or any(_is_blank(cell) for cell in cells):
            dropped += 1
            continue
        date_cell, time_cell, height_cell, kind_cell = cells
        try:
            reading_date = _parse_date_cell(date_cell)
            reading_time = _parse_time_cell(time_cell)
        except (OverflowError, ValueError) as exc:
            logger.debug("Skipping row %r: %s", cells, exc)
            dropped += 1
            continue
        label = str(kind_cell).strip()
        readings.append(TideReading(
            date=reading_date,
            time=reading_time,
            height=_parse_height_cell(height_cell),
            kind=classify_tide_kind(label),
            label=label,
        ))
    if dropped:
        logger.debug("Dropped %d incomplete rows while parsing tide data.", dropped)
    return readings


def _shift_time(time_str: str, shift_minutes: int) -> str:
    minutes = time_to_minutes(time_str)
    if minutes is None:
        return time_str
    return minutes_to_time(minutes + shift_minutes)


def select_day(
    readings: Iterable[TideReading],
    day: date,
    daylight_saving: bool = False
) -> list[TideReading]:
    """
    Extracts the readings of one calendar day.

    Membership is plain calendar-date equality on the reading's own date. When
    daylight_saving is set each selected time is moved one hour forward,
    wrapping past midnight; the order of the readings is kept.

    Args:
        readings (Iterable[TideReading]): The full series.
        day (date): Day to select (a datetime or Timestamp also works).
        daylight_saving (bool): Apply the +1 h display shift.

    Returns:
        list[TideReading]: Readings of that day, empty if there are none.
    """
    if isinstance(day, datetime):
        day = day.date()
    shift = DAYLIGHT_SAVING_SHIFT_MINUTES if daylight_saving else 0
    selected = []
    for reading in readings:
        if not isinstance(reading.date, date) or reading.date != day:
            continue
        if shift:
            reading = TideReading(
                date=reading.date,
                time=_shift_time(reading.time, shift),
                height=reading.height,
                kind=reading.kind,
                label=reading.label,
            )
        selected.append(reading)
    return selected


def _is_exact_match(height: float, target_height: float) -> bool:
    return abs(height - target_height) < HEIGHT_TOLERANCE_M


def find_height_occurrences(
    readings: Iterable[TideReading],
    target_height: float
) -> list[HeightOccurrence]:
    """
    Finds every time of day at which the tide is at, or passes, target_height.

    Readings within HEIGHT_TOLERANCE_M of the target are reported as exact
    matches. Between consecutive readings the crossing time is linearly
    interpolated and rounded to the minute; intervals touching an exact match
    or with a height change below the tolerance are skipped. Nothing is
    extrapolated beyond the first and last reading.

    Args:
        readings (Iterable[TideReading]): One day's readings, any order.
        target_height (float): Height in metres.

    Returns:
        list[HeightOccurrence]: Occurrences sorted by time, one per minute at most.
    """
    timed = [(reading.minutes, reading) for reading in readings]
    timed = [(minutes, reading) for minutes, reading in timed if minutes is not None]
    if len(timed) < 2:
        return []
    timed.sort(key=lambda item: item[0])

    occurrences = []
    for minutes, reading in timed:
        if _is_exact_match(reading.height, target_height):
            occurrences.append((minutes, HeightOccurrence(
                time=minutes_to_time(minutes), is_exact=True, is_rising=False)))

    for (m0, current), (m1, following) in zip(timed, timed[1:]):
        h0, h1 = current.height, following.height
        if not min(h0, h1) <= target_height <= max(h0, h1):
            continue
        if _is_exact_match(h0, target_height) or _is_exact_match(h1, target_height):
            continue
        if abs(h1 - h0) < HEIGHT_TOLERANCE_M:
            continue
        ratio = (target_height - h0) / (h1 - h0)
        interpolated = round(m0 + ratio * (m1 - m0))
        occurrences.append((interpolated, HeightOccurrence(
            time=minutes_to_time(interpolated), is_exact=False, is_rising=h1 > h0)))

    occurrences.sort(key=lambda item: item[0])
    result = []
    seen_times = set()
    for _, occurrence in occurrences:
        if occurrence.time in seen_times:
            continue
        seen_times.add(occurrence.time)
        result.append(occurrence)
    return result


def height_range(readings: Iterable[TideReading]) -> HeightRange:
    """Min (floored at 0 for display) and max height of the readings."""
    heights = [reading.height for reading in readings]
    if not heights:
        return DEFAULT_HEIGHT_RANGE
    return HeightRange(min=max(0.0, min(heights)), max=max(heights))
