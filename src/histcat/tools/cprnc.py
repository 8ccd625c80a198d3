"""Compares NetCDF files with ``cprnc``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from histcat.errors import ErrorKind

if TYPE_CHECKING:
    from histcat.tools.tool_runner import ToolRunner

IDENTICAL_MARKER = "IDENTICAL"
DIFF_TEST_MARKER = "diff_test"


@dataclass(frozen=True)
class DiffResult:
    """The outcome of comparing two files."""

    identical: bool
    report: str


class CprncDiffTool:
    """
    Compares two NetCDF files variable by variable.

    ``cprnc`` prints a ``diff_test`` summary line that contains ``IDENTICAL``
    when every field matches.
    """

    def __init__(self, *, runner: ToolRunner, executable: str) -> None:
        """
        Initialize the CprncDiffTool.

        :param runner: Runs the tool.
        :param executable: The path of ``cprnc``.
        """
        self.runner = runner
        self.executable = executable

    def compare(self, file_a: str, file_b: str) -> DiffResult:
        """
        Compare two files.

        :param file_a: The reference file.
        :param file_b: The file to check against the reference.
        :return: Whether the files are identical, with the full ``cprnc`` report.
        :raises ToolInvocationError: If ``cprnc`` fails to run.
        """
        result = self.runner.run([self.executable, file_a, file_b], error_kind=ErrorKind.DIFF_TOOL)
        if result.dry_run:
            return DiffResult(identical=True, report="")

        identical = any(
            DIFF_TEST_MARKER in line and IDENTICAL_MARKER in line
            for line in result.stdout.splitlines()
        )
        return DiffResult(identical=identical, report=result.stdout)
