"""Launches jobs on a bounded pool of worker threads."""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

from histcat.errors import HistcatError, InternalInvariantError
from histcat.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from histcat.catalog.merge_unit import MergeUnit
    from histcat.scheduler.job_runner import JobRunner
    from histcat.scheduler.run_state import Job, RunState

DEFAULT_WORKER_COUNT = 4


class JobScheduler:
    """
    Runs one job per merge unit, at most ``max_workers`` at a time.

    A worker slot is taken before a job is registered and given back only once
    the job reaches a terminal state, so no more than ``max_workers`` jobs are
    ever in flight. Once the run is marked fatal no new job is started; jobs
    already running are left to finish.
    """

    def __init__(
        self,
        *,
        run_state: RunState,
        job_runner: JobRunner,
        max_workers: int = DEFAULT_WORKER_COUNT,
    ) -> None:
        """
        Initialize the JobScheduler.

        :param run_state: Where jobs are registered and the fatal flag is read.
        :param job_runner: Runs the steps of each job.
        :param max_workers: The maximum number of jobs running at once.
        """
        if max_workers < 1:
            msg = f"max_workers must be at least 1, got {max_workers}"
            raise ValueError(msg)
        self.run_state = run_state
        self.job_runner = job_runner
        self.max_workers = max_workers
        self._slots = threading.BoundedSemaphore(max_workers)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="histcat-job",
        )
        self._futures: list[Future[Job]] = []
        self._launched = 0

    @property
    def launched_count(self) -> int:
        """The number of jobs launched so far."""
        return self._launched

    def dispatch(self, units: Iterable[MergeUnit]) -> int:
        """
        Launch a job for each unit, in order, blocking while every slot is busy.

        :param units: The merge units to process.
        :return: The number of jobs launched by this call.
        """
        launched = 0
        for unit in units:
            if self.run_state.fatal:
                logger.warning("Fatal error recorded, not launching further jobs")
                break

            self._slots.acquire()
            if self.run_state.fatal:
                self._slots.release()
                logger.warning("Fatal error recorded, not launching further jobs")
                break

            try:
                self.run_state.create_job(unit.output_path)
            except HistcatError as exc:
                self._slots.release()
                self.run_state.record_error(exc, unit.output_path)
                break
            except BaseException:
                self._slots.release()
                raise

            logger.debug(f"Launching job for {unit.output_path}")
            self._futures.append(self._executor.submit(self._run, unit))
            self._launched += 1
            launched += 1
        return launched

    def _run(self, unit: MergeUnit) -> Job:
        try:
            return self.job_runner.run(unit)
        finally:
            self._slots.release()

    def drain(self) -> None:
        """Wait for every launched job to finish, then stop the workers."""
        if self._futures:
            logger.info(f"Waiting for {len(self._futures)} job(s) to finish")
        done, _ = wait(self._futures)
        self._executor.shutdown(wait=True)
        for future in done:
            exc = future.exception()
            if exc is not None:
                self.run_state.record_error(
                    InternalInvariantError(f"Job failed outside of its error handling: {exc!r}"),
                )
        self._futures.clear()
