"""Summarizes the jobs and errors of a run once it has finished."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import polars as pl

from histcat.errors import SUCCESS_EXIT_CODE, InternalInvariantError
from histcat.logging import logger

if TYPE_CHECKING:
    from histcat.errors import ErrorKind
    from histcat.scheduler.run_state import Job, RecordedError, RunState


@dataclass(frozen=True)
class RunReport:
    """The final summary of a run."""

    fatal_kind: ErrorKind | None
    tracked_jobs: int
    launched_jobs: int
    state_counts: dict[str, int] = field(default_factory=dict)
    failed_jobs: tuple[Job, ...] = ()
    errors: tuple[RecordedError, ...] = ()

    @property
    def fatal(self) -> bool:
        """Whether the run stopped on a fatal error."""
        return self.fatal_kind is not None

    @property
    def exit_code(self) -> int:
        """
        The process exit code.

        The code of the first fatal error, otherwise success. Compare failures and
        non-fatal errors are listed in the report but do not fail the run.
        """
        if self.fatal_kind is not None:
            return self.fatal_kind.exit_code
        return SUCCESS_EXIT_CODE


def count_states(jobs: list[Job]) -> dict[str, int]:
    """
    Count the jobs in each state.

    :param jobs: The jobs to count.
    :return: The number of jobs per state name, for states with at least one job.
    """
    frame = pl.DataFrame(
        {"state": [job.state.type_name for job in jobs]},
        schema={"state": pl.String},
    )
    counts = frame.group_by("state").agg(pl.len().alias("jobs")).sort("state")
    return dict(zip(counts["state"].to_list(), counts["jobs"].to_list()))


class StatusReporter:
    """
    Builds and logs the final report of a run.

    The report is built once: later calls return the same report without
    logging it again.
    """

    def __init__(self) -> None:
        """Initialize the StatusReporter."""
        self._lock = threading.Lock()
        self._report: RunReport | None = None

    def report(self, run_state: RunState, launched_jobs: int) -> RunReport:
        """
        Report on every job and error of a run.

        Unless the run stopped on a fatal error, the number of jobs tracked by the
        run state must match the number the scheduler launched; a mismatch is
        recorded as an internal error.

        :param run_state: The state of the finished run.
        :param launched_jobs: The number of jobs the scheduler launched.
        :return: The report.
        """
        with self._lock:
            if self._report is None:
                self._report = self._build(run_state, launched_jobs)
            return self._report

    def _build(self, run_state: RunState, launched_jobs: int) -> RunReport:
        jobs = run_state.jobs()
        if run_state.fatal:
            logger.error("Run stopped on a fatal error, job counts are not reconciled")
        elif len(jobs) != launched_jobs:
            run_state.record_error(
                InternalInvariantError(
                    f"{len(jobs)} job(s) tracked but {launched_jobs} launched",
                ),
            )

        state_counts = count_states(jobs)
        failed_jobs = tuple(job for job in jobs if job.failure_count > 0)
        report = RunReport(
            fatal_kind=run_state.fatal_kind,
            tracked_jobs=len(jobs),
            launched_jobs=launched_jobs,
            state_counts=state_counts,
            failed_jobs=failed_jobs,
            errors=tuple(run_state.errors()),
        )

        summary = ", ".join(f"{state}: {count}" for state, count in state_counts.items())
        logger.info(f"{len(jobs)} job(s) tracked, {launched_jobs} launched ({summary or 'none'})")
        for job in failed_jobs:
            logger.warning(
                f"{job.output_path}: {job.state.type_name} with {job.failure_count} "
                f"failure(s): {job.message}",
            )
        if report.fatal:
            logger.error(f"Run failed with exit code {report.exit_code}")
        elif failed_jobs or report.errors:
            logger.warning(
                f"Run finished with {len(report.errors)} error(s) and {len(failed_jobs)} "
                "failed job(s), sources of failed jobs were kept",
            )
        else:
            logger.info("Run completed successfully")
        return report
