"""Derives the stream and frame dates of a history file."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from histcat.calendar.date_resolver import check_calendar, decode_date_integer, resolve
from histcat.catalog.components import ComponentType, DateSource
from histcat.catalog.history_file import (
    ClassificationStrategy,
    DateKey,
    HistoryFile,
    StreamId,
    is_monthly_file,
    is_yearly_file,
    parse_date_field,
)
from histcat.errors import (
    BadDateStringError,
    MissingFileError,
    UnsupportedCalendarError,
    UnsupportedTimeUnitsError,
)
from histcat.logging import logger

if TYPE_CHECKING:
    from fsspec import AbstractFileSystem

    from histcat.catalog.components import ComponentSpec
    from histcat.catalog.metadata_provider import MetadataProvider

_TIME_UNITS_REGEX = re.compile(r"days since (?P<year0>\d{4,})-01-01 00:00")


class FileClassifier:
    """
    Classifies history files of one case.

    Dates are taken from the filename when it already says enough (pre-aggregated
    yearly or monthly files, sea ice files when their names are trusted, or when
    the merge mode only needs the filename), otherwise from the file metadata.
    """

    def __init__(
        self,
        *,
        filesystem: AbstractFileSystem,
        metadata_provider: MetadataProvider,
        case_name: str,
        use_ice_filenames: bool = True,
    ) -> None:
        """
        Initialize the FileClassifier.

        :param filesystem: The filesystem holding the case archive.
        :param metadata_provider: Reads date variables when the filename is not enough.
        :param case_name: The name of the case, the first field of every filename.
        :param use_ice_filenames: Trust the dates in sea ice filenames instead of
        reading them from the files.
        """
        self.filesystem = filesystem
        self.metadata_provider = metadata_provider
        self.case_name = case_name
        self.use_ice_filenames = use_ice_filenames

    def classify(
        self,
        path: str,
        spec: ComponentSpec,
        *,
        filename_only: bool = False,
    ) -> HistoryFile:
        """
        Classify a history file.

        :param path: The path of the file.
        :param spec: The component the file belongs to.
        :param filename_only: Take the date from the filename whatever the component.
        :return: The classified history file.
        :raises MissingFileError: If the file does not exist.
        :raises ClassificationError: If the stream or the dates cannot be derived.
        """
        if not self.filesystem.exists(path):
            msg = f"File does not exist, '{path}'"
            raise MissingFileError(msg)

        name = path.rsplit("/", 1)[-1]
        match = spec.history_file_regex(self.case_name).match(name)
        if match is None:
            msg = f"'{name}' is not a history file of {spec} for case '{self.case_name}'"
            raise BadDateStringError(msg)

        stream_id = StreamId(model=match.group("model"), stream=match.group("stream"))
        date_field = match.group("date")

        if filename_only or self._filename_has_dates(path, spec.component):
            frame_dates: tuple[DateKey, ...] = (parse_date_field(date_field),)
            strategy = ClassificationStrategy.FILENAME
        else:
            frame_dates = self._dates_from_metadata(path, spec.component)
            strategy = ClassificationStrategy.METADATA

        return HistoryFile(
            path=path,
            component=spec.component,
            stream_id=stream_id,
            date_field=date_field,
            frame_dates=frame_dates,
            strategy=strategy,
        )

    def _filename_has_dates(self, path: str, component: ComponentType) -> bool:
        if is_yearly_file(path) or is_monthly_file(path):
            return True
        return component is ComponentType.ICE and self.use_ice_filenames

    def _dates_from_metadata(self, path: str, component: ComponentType) -> tuple[DateKey, ...]:
        date_source = component.date_source
        if date_source is None:
            msg = f"Component '{component.type_name}' has no dated history files, '{path}'"
            raise BadDateStringError(msg)

        if date_source is DateSource.TIME_VARIABLE:
            frame_dates = self._dates_from_time_variable(path)
        else:
            values = self.metadata_provider.extract(path, date_source.variable)
            frame_dates = tuple(
                DateKey.from_calendar_date(decode_date_integer(value)) for value in values
            )

        if not frame_dates:
            msg = f"No frames found in '{path}'"
            raise BadDateStringError(msg)

        logger.debug(f"Found {len(frame_dates)} frame(s) in {path}")
        return frame_dates

    def _dates_from_time_variable(self, path: str) -> tuple[DateKey, ...]:
        year0 = self._year0_from_time_attributes(path)
        times = self.metadata_provider.extract(path, DateSource.TIME_VARIABLE.variable)
        return tuple(DateKey.from_calendar_date(resolve(time, year0)) for time in times)

    def _year0_from_time_attributes(self, path: str) -> int:
        attributes = self.metadata_provider.attributes(path, DateSource.TIME_VARIABLE.variable)

        calendar = attributes.get("calendar")
        if calendar is None:
            msg = f"No time calendar found for '{path}'"
            raise UnsupportedCalendarError(msg)
        try:
            check_calendar(str(calendar))
        except UnsupportedCalendarError as exc:
            msg = f"Unsupported time calendar for '{path}', '{calendar}'"
            raise UnsupportedCalendarError(msg) from exc

        units = str(attributes.get("units", ""))
        match = _TIME_UNITS_REGEX.search(units)
        if match is None:
            msg = f"Unsupported time units for '{path}', '{units}'"
            raise UnsupportedTimeUnitsError(msg)

        return int(match.group("year0"))
