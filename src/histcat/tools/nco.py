"""Concatenation and frame extraction with the NetCDF Operators (NCO)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from histcat.errors import ArgumentError, ErrorKind
from histcat.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from histcat.tools.tool_runner import ToolRunner

MIN_COMPRESSION_LEVEL = 1
MAX_COMPRESSION_LEVEL = 9


class NcoConcatenator:
    """Concatenates history files along time into one NetCDF-4 file with ``ncrcat``."""

    def __init__(self, *, runner: ToolRunner, executable: str, compression_level: int) -> None:
        """
        Initialize the NcoConcatenator.

        :param runner: Runs the tool.
        :param executable: The path of ``ncrcat``.
        :param compression_level: The deflate level, 1 to 9.
        """
        if not MIN_COMPRESSION_LEVEL <= compression_level <= MAX_COMPRESSION_LEVEL:
            msg = (
                f"Compression level must be between {MIN_COMPRESSION_LEVEL} and "
                f"{MAX_COMPRESSION_LEVEL}, got {compression_level}"
            )
            raise ArgumentError(msg)
        self.runner = runner
        self.executable = executable
        self.compression_level = compression_level

    def concat(self, sources: Sequence[str], output: str) -> None:
        """
        Concatenate and compress sources into one output, overwriting it.

        A single source is recompressed without concatenation.

        :param sources: The files to concatenate, in time order.
        :param output: The file to write.
        :raises ToolInvocationError: If ``ncrcat`` fails.
        """
        logger.debug(
            f"Concatenating {len(sources)} file(s) to {output} "
            f"using level {self.compression_level} compression",
        )
        self.runner.run(
            [
                self.executable,
                "-O",
                "-4",
                "-L",
                str(self.compression_level),
                *sources,
                "-o",
                output,
            ],
            error_kind=ErrorKind.CONCATENATE,
        )


class NcoFrameExtractor:
    """Extracts a range of frames from a NetCDF file with ``ncks``."""

    def __init__(self, *, runner: ToolRunner, executable: str, dimension: str = "time") -> None:
        """
        Initialize the NcoFrameExtractor.

        :param runner: Runs the tool.
        :param executable: The path of ``ncks``.
        :param dimension: The record dimension to slice.
        """
        self.runner = runner
        self.executable = executable
        self.dimension = dimension

    def slice(self, source: str, first_index: int, last_index: int, output: str) -> None:
        """
        Extract frames ``first_index`` to ``last_index`` (inclusive, 0-based) into a new file.

        :param source: The file to extract from.
        :param first_index: The index of the first frame.
        :param last_index: The index of the last frame.
        :param output: The file to write.
        :raises ToolInvocationError: If ``ncks`` fails.
        """
        # Integer bounds are indices for ncks, decimal bounds would be coordinate values
        self.runner.run(
            [
                self.executable,
                "-O",
                "-d",
                f"{self.dimension},{first_index},{last_index}",
                source,
                output,
            ],
            error_kind=ErrorKind.EXTRACT,
        )
