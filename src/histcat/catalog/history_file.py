"""The classified history file and the identifiers derived from its name."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from histcat.calendar.date_resolver import DAYS_IN_MONTH, CalendarDate, format_year
from histcat.errors import BadDateStringError

if TYPE_CHECKING:
    from histcat.catalog.components import ComponentType

NETCDF_SUFFIX = ".nc"

_DATE_FIELD_REGEX = re.compile(
    r"^(?P<year>\d{4,6})(?:-(?P<month>\d{2}))?(?:-(?P<day>\d{2}))?(?:-(?P<seconds>\d{5}))?$",
)
_YEARLY_FILE_REGEX = re.compile(r"\.\d{4,6}\.nc$")
_MONTHLY_FILE_REGEX = re.compile(r"\.\d{4,6}-\d{2}\.nc$")


@dataclass(frozen=True, order=True)
class StreamId:
    """
    Identifies one independently-cadenced output series of a model.

    For example ``cam.h0`` or, for multi-instance runs, ``cam_0001.h1``.
    """

    model: str
    stream: str

    def __str__(self) -> str:
        """Return the stream id as it appears in filenames."""
        return f"{self.model}.{self.stream}"


@dataclass(frozen=True)
class DateKey:
    """
    The resolved date of one frame.

    Coarser streams leave the month and/or the day absent: a yearly file only
    knows its year, a monthly file its year and month.
    """

    year: int
    month: int | None = None
    day: int | None = None

    def __post_init__(self) -> None:
        """Check the month and day against the no-leap calendar."""
        if self.day is not None and self.month is None:
            msg = f"Date key for year {self.year} has a day but no month"
            raise BadDateStringError(msg)
        self.first_day()

    @staticmethod
    def from_calendar_date(date: CalendarDate) -> DateKey:
        """Create a full date key from a calendar date."""
        return DateKey(year=date.year, month=date.month, day=date.day)

    @property
    def sort_key(self) -> tuple[int, int, int]:
        """A total order where a coarser key sorts before the days it covers."""
        return (self.year, self.month or 0, self.day or 0)

    def first_day(self) -> CalendarDate:
        """The first calendar day covered by this key."""
        return CalendarDate(self.year, self.month or 1, self.day or 1)

    def last_day(self) -> CalendarDate:
        """The last calendar day covered by this key."""
        month = self.month or 12
        return CalendarDate(self.year, month, self.day or DAYS_IN_MONTH[month - 1])

    def __str__(self) -> str:
        """Return the key as YYYY, YYYY-MM or YYYY-MM-DD."""
        parts = [format_year(self.year)]
        if self.month is not None:
            parts.append(f"{self.month:02d}")
        if self.day is not None:
            parts.append(f"{self.day:02d}")
        return "-".join(parts)


class ClassificationStrategy(Enum):
    """How the dates of a history file were derived."""

    FILENAME = "filename"
    METADATA = "metadata"


@dataclass(frozen=True)
class HistoryFile:
    """A history file with its stream and the resolved date of every frame."""

    path: str
    component: ComponentType
    stream_id: StreamId
    date_field: str
    """
    The raw date field of the filename, e.g. ``0005-01-01-00000``.
    """
    frame_dates: tuple[DateKey, ...]
    strategy: ClassificationStrategy

    @property
    def frame_count(self) -> int:
        """The number of frames (time steps) in the file."""
        return len(self.frame_dates)

    @property
    def date_key(self) -> DateKey:
        """The earliest frame date, used to order files chronologically."""
        return min(self.frame_dates, key=lambda date: date.sort_key)

    @property
    def name(self) -> str:
        """The base filename."""
        return self.path.rsplit("/", 1)[-1]


def parse_date_field(date_field: str) -> DateKey:
    """
    Parse the date field of a history filename.

    Accepts ``YYYY``, ``YYYY-MM``, ``YYYY-MM-DD`` and ``YYYY-MM-DD-SSSSS``, with
    4 to 6 year digits.

    :param date_field: The date field.
    :return: The date key.
    :raises BadDateStringError: If the field cannot be parsed.
    """
    match = _DATE_FIELD_REGEX.match(date_field)
    if match is None:
        msg = f"Bad date field in filename, '{date_field}'"
        raise BadDateStringError(msg)

    month = match.group("month")
    day = match.group("day")
    return DateKey(
        year=int(match.group("year")),
        month=int(month) if month is not None else None,
        day=int(day) if day is not None else None,
    )


def is_netcdf(path: str) -> bool:
    """Whether a path looks like a NetCDF file."""
    return path.endswith(NETCDF_SUFFIX)


def is_yearly_file(path: str) -> bool:
    """Whether a filename date field only holds a year, e.g. ``case.blom.hy.0010.nc``."""
    return _YEARLY_FILE_REGEX.search(path) is not None


def is_monthly_file(path: str) -> bool:
    """Whether a filename date field holds a year and month, e.g. ``case.clm2.h0.0012-07.nc``."""
    return _MONTHLY_FILE_REGEX.search(path) is not None
