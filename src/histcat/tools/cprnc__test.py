from unittest.mock import create_autospec

import pytest

from histcat.errors import ErrorKind
from histcat.tools.cprnc import CprncDiffTool
from histcat.tools.tool_runner import ToolResult, ToolRunner

IDENTICAL_REPORT = """
  SUMMARY of cprnc:
   A total number of      5 fields were compared
   diff_test: the two files seem to be IDENTICAL
"""
DIFFERENT_REPORT = """
  SUMMARY of cprnc:
   A total number of      5 fields were compared
          of which        1 had non-zero differences
   diff_test: the two files seem to be DIFFERENT
"""


@pytest.fixture
def runner():
    return create_autospec(ToolRunner, instance=True)


def _result(stdout, dry_run=False):
    return ToolResult(args=("cprnc",), returncode=0, stdout=stdout, stderr="", dry_run=dry_run)


def test__compare__identical_files__reports_identical(runner):
    runner.run.return_value = _result(IDENTICAL_REPORT)

    result = CprncDiffTool(runner=runner, executable="cprnc").compare("a.nc", "b.nc")

    assert result.identical
    runner.run.assert_called_once_with(["cprnc", "a.nc", "b.nc"], error_kind=ErrorKind.DIFF_TOOL)


def test__compare__different_files__reports_difference_with_report(runner):
    runner.run.return_value = _result(DIFFERENT_REPORT)

    result = CprncDiffTool(runner=runner, executable="cprnc").compare("a.nc", "b.nc")

    assert not result.identical
    assert result.report == DIFFERENT_REPORT


def test__compare__identical_outside_summary_line__is_not_identical(runner):
    runner.run.return_value = _result("field IDENTICAL\n diff_test: DIFFERENT\n")

    result = CprncDiffTool(runner=runner, executable="cprnc").compare("a.nc", "b.nc")

    assert not result.identical


def test__compare__dry_run__counts_as_identical(runner):
    runner.run.return_value = _result("", dry_run=True)

    result = CprncDiffTool(runner=runner, executable="cprnc").compare("a.nc", "b.nc")

    assert result.identical
