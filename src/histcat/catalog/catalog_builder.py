"""Scans the history directories of a case and groups files into merge units."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from histcat.catalog.history_file import DateKey, HistoryFile, is_monthly_file, is_netcdf
from histcat.catalog.merge_unit import (
    Bucket,
    DateRange,
    MergeMode,
    MergeUnit,
    MergeUnitKey,
)
from histcat.errors import (
    BadDateStringError,
    InternalInvariantError,
    MultipleMonthsError,
    MultipleYearsError,
)
from histcat.logging import logger

if TYPE_CHECKING:
    from fsspec import AbstractFileSystem

    from histcat.catalog.classifier import FileClassifier
    from histcat.catalog.components import ComponentSpec

DEFAULT_PROGRESS_INTERVAL = 1000


@dataclass(frozen=True)
class ComponentCatalog:
    """The frozen merge units of one component, in catalog order."""

    spec: ComponentSpec
    source_dir: str
    output_dir: str
    units: tuple[MergeUnit, ...]
    file_count: int

    @property
    def member_count(self) -> int:
        """The number of source files across all units."""
        return sum(len(unit.source_paths) for unit in self.units)


@dataclass
class _UnitBuilder:
    key: MergeUnitKey
    members: list[HistoryFile] = field(default_factory=list)
    source_paths: list[str] = field(default_factory=list)
    date_range: DateRange | None = None

    def append(self, history_file: HistoryFile, *, track_range: bool) -> None:
        self.members.append(history_file)
        self.source_paths.append(history_file.path)
        if track_range:
            for date in history_file.frame_dates:
                self._include(date)

    def _include(self, date: DateKey) -> None:
        if self.date_range is None:
            self.date_range = DateRange(first=date, last=date)
        else:
            self.date_range = self.date_range.including(date)

    def freeze(self, output_path: str) -> MergeUnit:
        members = sorted(
            self.members,
            key=lambda history_file: (history_file.date_key.sort_key, history_file.path),
        )
        return MergeUnit(
            key=self.key,
            members=tuple(members),
            output_path=output_path,
            source_paths=tuple(member.path for member in members) or tuple(self.source_paths),
            date_range=self.date_range,
        )


class CatalogBuilder:
    """
    Builds the catalog of merge units for the components of a case.

    History files are classified and grouped by stream and by the bucket the
    merge mode collapses their dates into. Restart files and files that are not
    NetCDF are not classified, each becomes a pass-through unit of its own.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        filesystem: AbstractFileSystem,
        classifier: FileClassifier,
        case_path: str,
        output_path: str,
        merge_mode: MergeMode,
        keep_monthly: bool = False,
        progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
    ) -> None:
        """
        Initialize the CatalogBuilder.

        :param filesystem: The filesystem holding the case archive.
        :param classifier: Classifies each history file.
        :param case_path: The root directory of the case archive.
        :param output_path: The root directory of the outputs.
        :param merge_mode: How files are grouped.
        :param keep_monthly: In yearly mode, leave monthly files out of the yearly outputs.
        :param progress_interval: Log progress every this many files.
        """
        self.filesystem = filesystem
        self.classifier = classifier
        self.case_path = case_path.rstrip("/")
        self.output_path = output_path.rstrip("/")
        self.merge_mode = merge_mode
        self.keep_monthly = keep_monthly and merge_mode is MergeMode.YEARLY
        self.progress_interval = max(progress_interval, 1)

    @property
    def case_name(self) -> str:
        """The name of the case, the first field of every filename."""
        return self.classifier.case_name

    def source_dir(self, spec: ComponentSpec) -> str:
        """The directory holding the files of a component."""
        if spec.component.is_restart:
            return f"{self.case_path}/{spec.component.type_name}"
        return f"{self.case_path}/{spec.component.type_name}/hist"

    def output_dir(self, spec: ComponentSpec) -> str:
        """The directory the outputs of a component are written to."""
        if spec.component.is_restart:
            return f"{self.output_path}/{spec.component.type_name}"
        return f"{self.output_path}/{spec.component.type_name}/hist"

    def build(self, spec: ComponentSpec) -> ComponentCatalog | None:
        """
        Scan, classify and group the files of a component.

        :param spec: The component to catalog.
        :return: The catalog, or None if the component has no directory in the case.
        :raises ClassificationError: If a file cannot be classified. Grouping cannot
        be trusted after that, so the whole component is abandoned.
        :raises InternalInvariantError: If two files claim the same single-file unit.
        """
        source_dir = self.source_dir(spec)
        if not self.filesystem.isdir(source_dir):
            logger.warning(f"Case path '{source_dir}' not found, skipping {spec}")
            return None

        source_files = self._list_source_files(spec, source_dir)
        logger.info(f"{spec.component.type_name} files: {len(source_files)}")
        logger.info(f"Cataloging files for {spec}")

        output_dir = self.output_dir(spec)
        builders: dict[MergeUnitKey, _UnitBuilder] = {}
        for count, path in enumerate(source_files, start=1):
            self._fold(spec, source_dir, path, builders)
            self._report_progress(count, len(source_files))

        units = sorted(
            (
                builder.freeze(self._output_file(output_dir, source_dir, builder))
                for builder in builders.values()
            ),
            key=lambda unit: unit.key.sort_key,
        )
        return ComponentCatalog(
            spec=spec,
            source_dir=source_dir,
            output_dir=output_dir,
            units=tuple(units),
            file_count=len(source_files),
        )

    def _list_source_files(self, spec: ComponentSpec, source_dir: str) -> list[str]:
        if spec.component.is_restart:
            # Only files inside restart set directories, e.g. rest/0011-01-01-00000/<file>
            return sorted(
                path
                for path in self.filesystem.find(source_dir, maxdepth=2)
                if _relative(path, source_dir).count("/") == 1
            )

        pattern = spec.history_file_regex(self.case_name)
        matching = []
        for path in self.filesystem.find(source_dir, maxdepth=1):
            if pattern.match(posixpath.basename(path)):
                matching.append(path)
            else:
                logger.debug(f"Ignoring '{path}', not a history file of {spec}")
        return sorted(matching)

    def _fold(
        self,
        spec: ComponentSpec,
        source_dir: str,
        path: str,
        builders: dict[MergeUnitKey, _UnitBuilder],
    ) -> None:
        if spec.component.is_restart or not is_netcdf(path):
            key = MergeUnitKey(
                component=spec.component,
                stream_id=None,
                bucket=Bucket.passthrough(_relative(path, source_dir)),
            )
            builders[key] = _UnitBuilder(key=key, source_paths=[path])
            return

        mode = self._effective_mode(path)
        history_file = self.classifier.classify(
            path,
            spec,
            filename_only=not mode.needs_frame_dates,
        )
        key = MergeUnitKey(
            component=spec.component,
            stream_id=history_file.stream_id,
            bucket=self._bucket_for(history_file, mode),
        )

        builder = builders.get(key)
        if builder is None:
            builder = _UnitBuilder(key=key)
            builders[key] = builder
        elif mode is MergeMode.COMPRESS_ONLY:
            msg = f"Key clash for '{key.stream_id}' at '{key.bucket.label}' with '{path}'"
            raise InternalInvariantError(msg)

        builder.append(history_file, track_range=mode is MergeMode.MERGE_ALL)

    def _effective_mode(self, path: str) -> MergeMode:
        if self.keep_monthly and is_monthly_file(path):
            # Monthly files stay monthly rather than being merged into a yearly file
            return MergeMode.MONTHLY
        return self.merge_mode

    def _bucket_for(self, history_file: HistoryFile, mode: MergeMode) -> Bucket:
        if mode is MergeMode.YEARLY:
            years = {date.year for date in history_file.frame_dates}
            if len(years) > 1:
                msg = f"Multiple years found in {history_file.path}: {sorted(years)}"
                raise MultipleYearsError(msg)
            return Bucket.for_year(years.pop())

        if mode is MergeMode.MONTHLY:
            if any(date.month is None for date in history_file.frame_dates):
                msg = f"No month found in the dates of {history_file.path}"
                raise BadDateStringError(msg)
            months = {(date.year, date.month) for date in history_file.frame_dates}
            if len(months) > 1:
                msg = f"Multiple months found in {history_file.path}"
                raise MultipleMonthsError(msg)
            year, month = months.pop()
            return Bucket.for_month(year, month or 0)

        if mode is MergeMode.MERGE_ALL:
            return Bucket.whole_run()

        return Bucket.for_file(history_file.date_field)

    def _output_file(self, output_dir: str, source_dir: str, builder: _UnitBuilder) -> str:
        key = builder.key
        if key.stream_id is None:
            return f"{output_dir}/{_relative(builder.source_paths[0], source_dir)}"

        label = builder.date_range.label if builder.date_range else key.bucket.label
        return f"{output_dir}/{self.case_name}.{key.stream_id}.{label}.nc"

    def _report_progress(self, count: int, total: int) -> None:
        if count == total or count % self.progress_interval == 0:
            logger.info(f"{count} / {total} files cataloged")


def _relative(path: str, base: str) -> str:
    return posixpath.relpath("/" + path.lstrip("/"), "/" + base.lstrip("/"))
