"""
Date arithmetic for the fixed 365 day (no-leap) model calendar.

Model runs may span many millennia and start at year 0 or 1, so the
standard library and arrow calendars (proleptic Gregorian, years 1-9999)
cannot be used here.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from histcat.errors import BadDateStringError, UnsupportedCalendarError

DAYS_PER_YEAR = 365

DAYS_IN_MONTH = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)

# Days in the year before the first of each month.
CUMULATIVE_DAYS = tuple(sum(DAYS_IN_MONTH[:month]) for month in range(12))

NOLEAP_CALENDAR = "noleap"

SUPPORTED_CALENDARS = frozenset({NOLEAP_CALENDAR, "365_day"})


@dataclass(frozen=True, order=True)
class CalendarDate:
    """A day in the no-leap calendar."""

    year: int
    month: int
    day: int

    def __post_init__(self) -> None:
        """Check the month and day exist in the no-leap calendar."""
        if not 1 <= self.month <= 12:  # noqa: PLR2004
            msg = f"Month {self.month} is out of range in {self.year:04d}-{self.month}-{self.day}"
            raise BadDateStringError(msg)
        if not 1 <= self.day <= DAYS_IN_MONTH[self.month - 1]:
            msg = (
                f"Day {self.day} is out of range for month {self.month} "
                f"in {self.year:04d}-{self.month:02d}-{self.day}"
            )
            raise BadDateStringError(msg)

    @property
    def day_of_year(self) -> int:
        """The 1-based day of the year."""
        return CUMULATIVE_DAYS[self.month - 1] + self.day

    def __str__(self) -> str:
        """Return the date as YYYYMMDD, see ``format_date``."""
        return format_date(self)


def format_year(year: int) -> str:
    """
    Zero-pad a year to 4 digits, or 5 or 6 for multi-millennial runs.

    :param year: The year to format.
    :return: The padded year.
    """
    if year > 99999:  # noqa: PLR2004
        return f"{year:06d}"
    if year > 9999:  # noqa: PLR2004
        return f"{year:05d}"
    return f"{year:04d}"


def format_date(date: CalendarDate) -> str:
    """
    Format a date as YYYYMMDD with the year width scaled to its magnitude.

    :param date: The date to format.
    :return: The formatted date, e.g. ``00050101``.
    """
    return f"{format_year(date.year)}{date.month:02d}{date.day:02d}"


def check_calendar(calendar: str) -> None:
    """
    Fail fast for calendars other than the no-leap calendar.

    :param calendar: The calendar name, compared case-insensitively.
    :raises UnsupportedCalendarError: If the calendar is not supported.
    """
    if calendar.strip().lower() not in SUPPORTED_CALENDARS:
        msg = f"Calendar type '{calendar}' is not supported, only '{NOLEAP_CALENDAR}' is."
        raise UnsupportedCalendarError(msg)


def resolve(time_offset: float, year0: int, calendar: str = NOLEAP_CALENDAR) -> CalendarDate:
    """
    Convert a time offset in days since the start of ``year0`` into a calendar date.

    Fractional days are rounded up, so a time stamp at the end of day N (as
    written for daily means) resolves to day N.

    :param time_offset: Days since January 1st of ``year0``.
    :param year0: The year the time axis starts.
    :param calendar: The calendar of the time axis.
    :return: The calendar date.
    :raises UnsupportedCalendarError: If the calendar is not the no-leap calendar.
    :raises BadDateStringError: If the time offset is not a finite number.
    """
    check_calendar(calendar)
    if not math.isfinite(time_offset):
        msg = f"Bad time value, '{time_offset}'"
        raise BadDateStringError(msg)

    day_of_run = math.ceil(time_offset)
    year = year0 + (day_of_run - 1) // DAYS_PER_YEAR
    day_of_year = ((day_of_run - 1) % DAYS_PER_YEAR) + 1

    month = 12
    while day_of_year <= CUMULATIVE_DAYS[month - 1]:
        month -= 1

    return CalendarDate(year=year, month=month, day=day_of_year - CUMULATIVE_DAYS[month - 1])


def day_of_run(date: CalendarDate, year0: int) -> int:
    """
    Return the 1-based day of the run for a date, the inverse of ``resolve``.

    :param date: The calendar date.
    :param year0: The year the time axis starts.
    :return: The number of days since January 1st of ``year0``, counting that day as 1.
    """
    return (date.year - year0) * DAYS_PER_YEAR + date.day_of_year


def decode_date_integer(value: float) -> CalendarDate:
    """
    Decode an integer date as written by the atmosphere and land models.

    These models store the date of each frame as ``year * 10000 + month * 100 + day``.

    :param value: The encoded date.
    :return: The calendar date.
    :raises BadDateStringError: If the value does not encode a valid date.
    """
    if not math.isfinite(value) or value < 0 or value != int(value):
        msg = f"Bad encoded date value, '{value}'"
        raise BadDateStringError(msg)

    encoded = int(value)
    return CalendarDate(
        year=encoded // 10000,
        month=(encoded // 100) % 100,
        day=encoded % 100,
    )
