"""Merge modes, group keys and the merge units built from a catalog."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from histcat.calendar.date_resolver import format_date, format_year
from histcat.errors import ArgumentError

if TYPE_CHECKING:
    from histcat.catalog.components import ComponentType
    from histcat.catalog.history_file import DateKey, HistoryFile, StreamId


class MergeMode(Enum):
    """How history files of one stream are grouped into merged outputs."""

    YEARLY = "yearly"
    """
    One output per stream and year.
    """
    MONTHLY = "monthly"
    """
    One output per stream, year and month.
    """
    MERGE_ALL = "mergeall"
    """
    One output per stream, covering the whole run.
    """
    COMPRESS_ONLY = "compressonly"
    """
    One output per input file, compressed but not concatenated.
    """

    @property
    def needs_frame_dates(self) -> bool:
        """Whether grouping needs the date of every frame rather than the filename date."""
        return self in (MergeMode.YEARLY, MergeMode.MONTHLY)

    @staticmethod
    def from_name(name: str) -> MergeMode:
        """
        Look up a merge mode by name.

        :param name: The name, e.g. ``yearly``.
        :return: The merge mode.
        :raises ArgumentError: If no merge mode has that name.
        """
        try:
            return MergeMode(name)
        except ValueError as exc:
            msg = f"Undefined merge type, '{name}'"
            raise ArgumentError(msg) from exc


class BucketKind(Enum):
    """The granularity a bucket collapses dates into."""

    YEAR = "year"
    MONTH = "month"
    WHOLE_RUN = "whole_run"
    FILE = "file"
    PASSTHROUGH = "passthrough"


@dataclass(frozen=True)
class Bucket:
    """
    The granularity bucket of a merge unit.

    Only the fields relevant to the kind are set: ``year`` for year buckets,
    ``year`` and ``month`` for month buckets, ``name`` for per-file buckets.
    """

    kind: BucketKind
    year: int | None = None
    month: int | None = None
    name: str | None = None

    @staticmethod
    def for_year(year: int) -> Bucket:
        """Create the bucket holding every frame of a year."""
        return Bucket(kind=BucketKind.YEAR, year=year)

    @staticmethod
    def for_month(year: int, month: int) -> Bucket:
        """Create the bucket holding every frame of a month."""
        return Bucket(kind=BucketKind.MONTH, year=year, month=month)

    @staticmethod
    def whole_run() -> Bucket:
        """Create the bucket holding every frame of a stream."""
        return Bucket(kind=BucketKind.WHOLE_RUN)

    @staticmethod
    def for_file(date_field: str) -> Bucket:
        """Create the bucket holding a single file, keyed by its filename date field."""
        return Bucket(kind=BucketKind.FILE, name=date_field)

    @staticmethod
    def passthrough(relative_path: str) -> Bucket:
        """Create the bucket of a file that is copied without classification."""
        return Bucket(kind=BucketKind.PASSTHROUGH, name=relative_path)

    @property
    def sort_key(self) -> tuple[int, int, str]:
        """A total order over buckets of any kind."""
        return (
            self.year if self.year is not None else -1,
            self.month if self.month is not None else 0,
            self.name or "",
        )

    @property
    def label(self) -> str:
        """
        The date label of the bucket in output filenames.

        Whole-run buckets have no label of their own: it depends on the dates of
        their members, see ``MergeUnit.label``.
        """
        if self.kind is BucketKind.YEAR and self.year is not None:
            return format_year(self.year)
        if self.kind is BucketKind.MONTH and self.year is not None:
            return f"{format_year(self.year)}-{self.month:02d}"
        return self.name or ""


@dataclass(frozen=True)
class MergeUnitKey:
    """The typed key of a merge unit."""

    component: ComponentType
    stream_id: StreamId | None
    bucket: Bucket

    @property
    def sort_key(self) -> tuple[str, str, tuple[int, int, str]]:
        """Catalog order: by stream, then chronologically by bucket."""
        return (
            self.component.type_name,
            str(self.stream_id) if self.stream_id is not None else "",
            self.bucket.sort_key,
        )


@dataclass(frozen=True)
class DateRange:
    """The first and last dates seen in a merge-all unit."""

    first: DateKey
    last: DateKey

    def including(self, date: DateKey) -> DateRange:
        """Return the range widened to include a date."""
        first = date if date.sort_key < self.first.sort_key else self.first
        last = date if date.sort_key > self.last.sort_key else self.last
        return DateRange(first=first, last=last)

    @property
    def label(self) -> str:
        """The range as ``<first-day>-<last-day>``, e.g. ``00100101-00111231``."""
        return f"{format_date(self.first.first_day())}-{format_date(self.last.last_day())}"


@dataclass(frozen=True)
class MergeUnit:
    """
    The set of source files destined to become one output file.

    Members are in chronological order, so that concatenating them keeps time
    monotonic. Pass-through units hold exactly one source that is copied (or
    recompressed) without being classified.
    """

    key: MergeUnitKey
    members: tuple[HistoryFile, ...]
    output_path: str
    source_paths: tuple[str, ...]
    date_range: DateRange | None = None

    @property
    def passthrough(self) -> bool:
        """Whether the unit is copied without classification or verification."""
        return self.key.bucket.kind is BucketKind.PASSTHROUGH

    @property
    def label(self) -> str:
        """The date label of the output filename."""
        if self.date_range is not None:
            return self.date_range.label
        return self.key.bucket.label
