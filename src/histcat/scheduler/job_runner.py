"""Runs the steps of one job: compress, checksum, verify and move the sources."""

from __future__ import annotations

import posixpath
from typing import TYPE_CHECKING

from histcat.catalog.history_file import is_netcdf
from histcat.errors import ErrorKind, HistcatError, InternalInvariantError
from histcat.logging import logger
from histcat.scheduler.run_state import Job, JobState

if TYPE_CHECKING:
    from histcat.catalog.merge_unit import MergeUnit
    from histcat.scheduler.run_state import RunState
    from histcat.tools.file_operations import FileOperations
    from histcat.tools.nco import NcoConcatenator
    from histcat.tools.xxhsum import XxhsumDigestTool
    from histcat.verification.sampler import VerificationSampler


class JobRunner:
    """
    Turns one merge unit into one output file.

    The steps of a job run strictly in order. The sources are only moved once
    the output has been verified, and never when a difference was found.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        run_state: RunState,
        concatenator: NcoConcatenator,
        file_operations: FileOperations,
        digest_tool: XxhsumDigestTool,
        sampler: VerificationSampler,
        move_dir: str | None = None,
    ) -> None:
        """
        Initialize the JobRunner.

        :param run_state: Where job states and errors are recorded.
        :param concatenator: Concatenates and compresses history files.
        :param file_operations: Copies, stamps and moves files.
        :param digest_tool: Appends the checksum of each output to a digest file.
        :param sampler: Verifies outputs against their inputs.
        :param move_dir: Where verified sources are moved, None to leave them in place.
        """
        self.run_state = run_state
        self.concatenator = concatenator
        self.file_operations = file_operations
        self.digest_tool = digest_tool
        self.sampler = sampler
        self.move_dir = move_dir

    def run(self, unit: MergeUnit) -> Job:
        """
        Run a job that is already registered in the created state.

        Errors never escape: they put the job in the error state and are
        recorded against the run.

        :param unit: The merge unit the job turns into an output.
        :return: The final state of the job.
        """
        output = unit.output_path
        try:
            self._run_steps(unit)
        except HistcatError as exc:
            return self.run_state.fail_job(output, exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception(f"Unexpected failure while processing {output}")
            error = InternalInvariantError(f"Unexpected failure processing {output}: {exc!r}")
            return self.run_state.fail_job(output, error)
        return self.run_state.job(output)

    def _run_steps(self, unit: MergeUnit) -> None:
        output = unit.output_path
        sources = list(unit.source_paths)
        if not sources:
            msg = f"No files to compress for {output}"
            raise HistcatError(msg, kind=ErrorKind.NOTHING_TO_COMPRESS)

        self.run_state.transition(output, JobState.COMPRESSING)
        self.file_operations.ensure_directory(posixpath.dirname(output))
        if unit.passthrough and not is_netcdf(sources[0]):
            self.file_operations.copy(sources[0], output)
        else:
            self.concatenator.concat(sources, output)

        self.run_state.transition(output, JobState.COMPRESSED)
        self.file_operations.stamp_modification_time(output, sources)
        self.digest_tool.digest(output)

        if unit.passthrough:
            self.run_state.transition(output, JobState.DONE, f"Copied {sources[0]}")
            return

        self.run_state.transition(output, JobState.VERIFYING)
        report = self.sampler.verify(output, unit.key.component, sources)
        if not report.passed:
            self.run_state.record_compare_failures(
                output,
                report.failure_count,
                f"{report.failure_count} input(s) differ from the output, sources kept",
            )
            return

        self.run_state.transition(output, JobState.VERIFIED)
        if self.move_dir is not None:
            self.run_state.transition(output, JobState.MOVING)
            self.file_operations.move_into(sources, self.move_dir)

        self.run_state.transition(output, JobState.DONE, f"Merged {len(sources)} file(s)")
