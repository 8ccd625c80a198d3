"""The synchronized registry of job states, errors and the fatal flag of one run."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from enum import Enum

from histcat.errors import ErrorKind, HistcatError, InternalInvariantError
from histcat.logging import logger


class JobState(Enum):
    """The state of a job, see ``ALLOWED_TRANSITIONS``."""

    CREATED = ("created", False)
    COMPRESSING = ("compressing", False)
    COMPRESSED = ("compressed", False)
    VERIFYING = ("verifying", False)
    VERIFIED = ("verified", False)
    COMPARE_FAILED = ("compare_failed", True)
    """
    Some frames of the output differ from their source, the sources were kept.
    """
    MOVING = ("moving", False)
    DONE = ("done", True)
    ERROR = ("error", True)

    def __init__(self, type_name: str, terminal: bool) -> None:  # noqa: FBT001
        """
        Initialize the JobState with a name and terminal flag.

        :param type_name: The name of the state.
        :param terminal: Whether a job in this state is finished.
        """
        self.type_name = type_name
        self.terminal = terminal


ALLOWED_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.CREATED: frozenset({JobState.COMPRESSING}),
    JobState.COMPRESSING: frozenset({JobState.COMPRESSED}),
    # Pass-through jobs are not verified
    JobState.COMPRESSED: frozenset({JobState.VERIFYING, JobState.DONE}),
    JobState.VERIFYING: frozenset({JobState.VERIFIED, JobState.COMPARE_FAILED}),
    JobState.VERIFIED: frozenset({JobState.MOVING, JobState.DONE}),
    JobState.MOVING: frozenset({JobState.DONE}),
    JobState.COMPARE_FAILED: frozenset(),
    JobState.DONE: frozenset(),
    JobState.ERROR: frozenset(),
}


@dataclass(frozen=True)
class Job:
    """A snapshot of the state of one job, keyed by its output path."""

    output_path: str
    state: JobState = JobState.CREATED
    error_kind: ErrorKind | None = None
    failure_count: int = 0
    message: str = ""


@dataclass(frozen=True)
class RecordedError:
    """An error recorded against the run."""

    kind: ErrorKind
    message: str
    output_path: str | None = None


class RunState:
    """
    The process-wide state of one run.

    Every read and write goes through a single lock, so jobs running on
    different worker threads never see or leave a partial update. Readers get
    immutable snapshots.
    """

    def __init__(self) -> None:
        """Initialize an empty run state."""
        self._lock = threading.Lock()
        self._jobs: dict[str, Job] = {}
        self._errors: list[RecordedError] = []
        self._fatal_kind: ErrorKind | None = None

    def create_job(self, output_path: str) -> Job:
        """
        Register a new job in the created state.

        :param output_path: The output the job writes, which identifies it.
        :return: The new job.
        :raises InternalInvariantError: If a job already writes that output.
        """
        with self._lock:
            if output_path in self._jobs:
                msg = f"A job for '{output_path}' already exists"
                raise InternalInvariantError(msg)
            job = Job(output_path=output_path)
            self._jobs[output_path] = job
            return job

    def transition(self, output_path: str, state: JobState, message: str = "") -> Job:
        """
        Move a job to a new state.

        :param output_path: The output identifying the job.
        :param state: The new state.
        :param message: A status message, keeps the current one if empty.
        :return: The updated job.
        :raises InternalInvariantError: If the job is unknown or the transition is not allowed.
        """
        with self._lock:
            job = self._require_job(output_path)
            if state not in ALLOWED_TRANSITIONS[job.state]:
                msg = (
                    f"Job '{output_path}' cannot go from {job.state.type_name} "
                    f"to {state.type_name}"
                )
                raise InternalInvariantError(msg)
            job = replace(job, state=state, message=message or job.message)
            self._jobs[output_path] = job
            return job

    def record_compare_failures(self, output_path: str, failures: int, message: str) -> Job:
        """
        Put a job in the compare failed state after some frames differed.

        Compare failures are recorded against the job only, they are not fatal.

        :param output_path: The output identifying the job.
        :param failures: The number of source files that differed.
        :param message: A status message.
        :return: The updated job.
        """
        with self._lock:
            job = self._require_job(output_path)
            if JobState.COMPARE_FAILED not in ALLOWED_TRANSITIONS[job.state]:
                msg = f"Job '{output_path}' cannot fail comparison in state {job.state.type_name}"
                raise InternalInvariantError(msg)
            job = replace(
                job,
                state=JobState.COMPARE_FAILED,
                error_kind=job.error_kind or ErrorKind.COMPARE,
                failure_count=job.failure_count + failures,
                message=message,
            )
            self._jobs[output_path] = job
            return job

    def fail_job(self, output_path: str, error: HistcatError) -> Job:
        """
        Put a job in the error state and record the error against the run.

        :param output_path: The output identifying the job.
        :param error: The error that stopped the job.
        :return: The updated job.
        """
        with self._lock:
            job = self._require_job(output_path)
            if job.state.terminal:
                msg = f"Job '{output_path}' already finished as {job.state.type_name}"
                raise InternalInvariantError(msg)
            job = replace(
                job,
                state=JobState.ERROR,
                error_kind=job.error_kind or error.kind,
                failure_count=job.failure_count + 1,
                message=error.message,
            )
            self._jobs[output_path] = job
            self._record_locked(error, output_path)
            return job

    def record_error(self, error: HistcatError, output_path: str | None = None) -> None:
        """
        Record an error against the run, setting the fatal flag for fatal kinds.

        :param error: The error to record.
        :param output_path: The output of the job it concerns, if any.
        """
        with self._lock:
            self._record_locked(error, output_path)

    def _record_locked(self, error: HistcatError, output_path: str | None) -> None:
        self._errors.append(
            RecordedError(kind=error.kind, message=error.message, output_path=output_path),
        )
        prefix = "INTERNAL ERROR" if error.kind is ErrorKind.INTERNAL else "ERROR"
        logger.error(f"{prefix} {error.kind.exit_code}: {error.message}")
        if error.fatal and self._fatal_kind is None:
            self._fatal_kind = error.kind

    def _require_job(self, output_path: str) -> Job:
        job = self._jobs.get(output_path)
        if job is None:
            msg = f"No job registered for '{output_path}'"
            raise InternalInvariantError(msg)
        return job

    @property
    def fatal(self) -> bool:
        """Whether a fatal error occurred; once set it is never cleared."""
        with self._lock:
            return self._fatal_kind is not None

    @property
    def fatal_kind(self) -> ErrorKind | None:
        """The kind of the first fatal error, if any."""
        with self._lock:
            return self._fatal_kind

    def job(self, output_path: str) -> Job:
        """Return a snapshot of one job."""
        with self._lock:
            return self._require_job(output_path)

    def jobs(self) -> list[Job]:
        """Return a snapshot of every job, in creation order."""
        with self._lock:
            return list(self._jobs.values())

    def errors(self) -> list[RecordedError]:
        """Return the recorded errors, in the order they occurred."""
        with self._lock:
            return list(self._errors)

    def active_job_count(self) -> int:
        """The number of jobs that are not yet in a terminal state."""
        with self._lock:
            return sum(1 for job in self._jobs.values() if not job.state.terminal)
