"""Checks merged outputs against the history files they were made from."""

from __future__ import annotations

import posixpath
import tempfile
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

from histcat.errors import ArgumentError, MetadataError, VerificationError
from histcat.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fsspec import AbstractFileSystem

    from histcat.catalog.components import ComponentType
    from histcat.catalog.metadata_provider import MetadataProvider
    from histcat.tools.cprnc import CprncDiffTool
    from histcat.tools.nco import NcoFrameExtractor

TIME_VARIABLE = "time"


class CompareMode(Enum):
    """How many of the inputs of a merged output are compared against it."""

    NONE = "None"
    SPOT = "Spot"
    """
    The first and last inputs plus about one in ten of the others.
    """
    FULL = "Full"

    @staticmethod
    def from_name(name: str) -> CompareMode:
        """
        Look up a compare mode by name, ignoring case.

        :param name: The name, e.g. ``spot``.
        :return: The compare mode.
        :raises ArgumentError: If no compare mode has that name.
        """
        for mode in CompareMode:
            if mode.value.lower() == name.lower():
                return mode
        msg = f"Unknown compare type, '{name}', must be one of None, Spot or Full"
        raise ArgumentError(msg)


def select_spot_indices(count: int) -> list[int]:
    """
    Choose which of ``count`` inputs a spot check compares.

    Always the first and the last, plus ``(count + 7) // 10`` interior inputs
    spread evenly between them.

    :param count: The number of inputs.
    :return: The sorted, distinct positions of the inputs to compare.
    """
    if count <= 0:
        return []
    interior = (count + 7) // 10
    positions = np.rint(np.linspace(0, count - 1, interior + 2)).astype(int)
    return np.unique(positions).tolist()


def locate_frames(
    output_times: Sequence[float],
    source_times: Sequence[float],
) -> tuple[int, int] | None:
    """
    Find the frames of a source file in a merged output.

    :param output_times: The time coordinate of the merged output.
    :param source_times: The time coordinate of the source file.
    :return: The first and last (inclusive) frame indices in the output, or None
    if some source frames are missing or the frames are not contiguous.
    """
    source = np.asarray(source_times)
    if source.size == 0:
        return None
    matches = np.flatnonzero(np.isin(np.asarray(output_times), source))
    if matches.size != source.size:
        return None
    first, last = int(matches[0]), int(matches[-1])
    if last - first + 1 != matches.size:
        return None
    return first, last


@dataclass(frozen=True)
class VerificationReport:
    """The outcome of verifying one merged output."""

    output_path: str
    mode: CompareMode
    checked: tuple[str, ...] = ()
    differing: tuple[str, ...] = ()

    @property
    def failure_count(self) -> int:
        """The number of inputs that differ from their frames in the output."""
        return len(self.differing)

    @property
    def passed(self) -> bool:
        """Whether every compared input matched."""
        return not self.differing


class VerificationSampler:
    """
    Compares a sample of the inputs of a merged output against the output.

    The frames of each selected input are extracted from the output with
    ``ncks`` and compared to the original file with ``cprnc``.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        mode: CompareMode,
        filesystem: AbstractFileSystem,
        metadata_provider: MetadataProvider,
        extractor: NcoFrameExtractor,
        differ: CprncDiffTool,
        dry_run: bool = False,
    ) -> None:
        """
        Initialize the VerificationSampler.

        :param mode: How many inputs to compare.
        :param filesystem: The filesystem the diff reports are written to.
        :param metadata_provider: Reads the time coordinates.
        :param extractor: Extracts frames from the merged output.
        :param differ: Compares extracted frames with the original inputs.
        :param dry_run: Log the comparisons instead of running them.
        """
        self.mode = mode
        self.filesystem = filesystem
        self.metadata_provider = metadata_provider
        self.extractor = extractor
        self.differ = differ
        self.dry_run = dry_run

    def select(self, inputs: Sequence[str]) -> list[int]:
        """Return the positions of the inputs the configured mode compares."""
        if self.mode is CompareMode.NONE:
            return []
        if self.mode is CompareMode.FULL:
            return list(range(len(inputs)))
        return select_spot_indices(len(inputs))

    def verify(
        self,
        output: str,
        component: ComponentType,
        inputs: Sequence[str],
    ) -> VerificationReport:
        """
        Verify a merged output against a selection of its inputs.

        Every selected input is compared, even after a difference is found.

        :param output: The merged output.
        :param component: The component the output belongs to.
        :param inputs: The inputs of the output, in time order.
        :return: The inputs checked and those that differ.
        :raises VerificationError: If a time coordinate cannot be read.
        :raises ToolInvocationError: If extraction or comparison fails to run.
        """
        positions = self.select(inputs)
        selected = [inputs[position] for position in positions]
        if not selected:
            return VerificationReport(output_path=output, mode=self.mode)

        logger.info(
            f"Verifying {output} against {len(selected)} of {len(inputs)} "
            f"{component.type_name} input(s) ({self.mode.value})",
        )
        if self.dry_run:
            for source in selected:
                logger.info(f"Dry run, not comparing frames of {source} in {output}")
            return VerificationReport(output_path=output, mode=self.mode, checked=tuple(selected))

        output_times = self._times(output)
        differing: list[str] = []
        output_dir = posixpath.dirname(output)
        with tempfile.TemporaryDirectory(dir=output_dir, prefix=".histcat-verify-") as scratch_dir:
            for position in positions:
                source = inputs[position]
                if not self._matches(output, output_times, source, scratch_dir, position):
                    differing.append(source)

        if differing:
            logger.warning(
                f"{len(differing)} of {len(selected)} compared input(s) differ from {output}",
            )
        else:
            logger.debug(f"{output} matches its {len(selected)} compared input(s)")

        return VerificationReport(
            output_path=output,
            mode=self.mode,
            checked=tuple(selected),
            differing=tuple(differing),
        )

    def _matches(  # noqa: PLR0913
        self,
        output: str,
        output_times: list[float],
        source: str,
        scratch_dir: str,
        position: int,
    ) -> bool:
        frames = locate_frames(output_times, self._times(source))
        if frames is None:
            logger.warning(f"Frames of {source} are missing or not contiguous in {output}")
            return False

        first, last = frames
        scratch = f"{scratch_dir}/{posixpath.basename(source)}"
        self.extractor.slice(output, first, last, scratch)
        result = self.differ.compare(source, scratch)
        if result.identical:
            return True

        report_path = (
            f"{posixpath.dirname(output)}/cprnc_diff.{posixpath.basename(output)}.f{position}.txt"
        )
        with self.filesystem.open(report_path, "w") as report:
            report.write(result.report)
        logger.warning(f"{source} differs from frames {first}-{last} of {output}, see {report_path}")
        return False

    def _times(self, path: str) -> list[float]:
        try:
            return self.metadata_provider.extract(path, TIME_VARIABLE)
        except MetadataError as exc:
            msg = f"Unable to read the time coordinate of {path}: {exc.message}"
            raise VerificationError(msg) from exc
