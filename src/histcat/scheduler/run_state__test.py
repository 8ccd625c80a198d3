from concurrent.futures import ThreadPoolExecutor

import pytest

from histcat.errors import ErrorKind, HistcatError, InternalInvariantError, ToolInvocationError
from histcat.scheduler.run_state import ALLOWED_TRANSITIONS, JobState, RunState

OUTPUT = "/out/ice/hist/N1850.cice.h.0005.nc"


@pytest.fixture
def run_state():
    state = RunState()
    state.create_job(OUTPUT)
    return state


def test__create_job__starts_created(run_state):
    assert run_state.job(OUTPUT).state is JobState.CREATED
    assert run_state.active_job_count() == 1


def test__create_job__same_output_twice__raises_internal_error(run_state):
    with pytest.raises(InternalInvariantError):
        run_state.create_job(OUTPUT)


def test__transition__full_lifecycle__reaches_done(run_state):
    for state in (
        JobState.COMPRESSING,
        JobState.COMPRESSED,
        JobState.VERIFYING,
        JobState.VERIFIED,
        JobState.MOVING,
        JobState.DONE,
    ):
        run_state.transition(OUTPUT, state)

    assert run_state.job(OUTPUT).state is JobState.DONE
    assert run_state.active_job_count() == 0


def test__transition__skipping_a_step__raises_internal_error(run_state):
    with pytest.raises(InternalInvariantError, match="created to compressed"):
        run_state.transition(OUTPUT, JobState.COMPRESSED)


def test__transition__unknown_job__raises_internal_error(run_state):
    with pytest.raises(InternalInvariantError):
        run_state.transition("/out/other.nc", JobState.COMPRESSING)


def test__terminal_states__have_no_way_out():
    terminal = {state for state in JobState if state.terminal}

    assert terminal == {JobState.DONE, JobState.COMPARE_FAILED, JobState.ERROR}
    assert all(not ALLOWED_TRANSITIONS[state] for state in terminal)


def test__record_compare_failures__is_not_fatal(run_state):
    for state in (JobState.COMPRESSING, JobState.COMPRESSED, JobState.VERIFYING):
        run_state.transition(OUTPUT, state)

    job = run_state.record_compare_failures(OUTPUT, 2, "2 inputs differ")

    assert job.state is JobState.COMPARE_FAILED
    assert job.failure_count == 2
    assert job.error_kind is ErrorKind.COMPARE
    assert not run_state.fatal


def test__record_compare_failures__before_verification__raises_internal_error(run_state):
    with pytest.raises(InternalInvariantError):
        run_state.record_compare_failures(OUTPUT, 1, "too early")


def test__fail_job__fatal_kind__sets_fatal_flag(run_state):
    run_state.transition(OUTPUT, JobState.COMPRESSING)

    job = run_state.fail_job(OUTPUT, ToolInvocationError("ncrcat failed", kind=ErrorKind.CONCATENATE))

    assert job.state is JobState.ERROR
    assert job.failure_count == 1
    assert run_state.fatal
    assert run_state.fatal_kind is ErrorKind.CONCATENATE
    assert [error.output_path for error in run_state.errors()] == [OUTPUT]


def test__fail_job__already_finished__raises_internal_error(run_state):
    run_state.fail_job(OUTPUT, ToolInvocationError("ncrcat failed"))

    with pytest.raises(InternalInvariantError):
        run_state.fail_job(OUTPUT, ToolInvocationError("again"))


def test__record_error__keeps_first_fatal_kind():
    run_state = RunState()

    run_state.record_error(HistcatError("unreadable", kind=ErrorKind.NO_ACCESS))
    assert not run_state.fatal

    run_state.record_error(HistcatError("bad date", kind=ErrorKind.BAD_DATE_STRING))
    run_state.record_error(InternalInvariantError("later"))

    assert run_state.fatal_kind is ErrorKind.BAD_DATE_STRING
    assert [error.kind for error in run_state.errors()] == [
        ErrorKind.NO_ACCESS,
        ErrorKind.BAD_DATE_STRING,
        ErrorKind.INTERNAL,
    ]


def test__concurrent_updates__no_job_is_lost():
    run_state = RunState()
    outputs = [f"/out/{index}.nc" for index in range(200)]

    def _lifecycle(output):
        run_state.create_job(output)
        run_state.transition(output, JobState.COMPRESSING)
        run_state.transition(output, JobState.COMPRESSED)
        run_state.transition(output, JobState.DONE)

    with ThreadPoolExecutor(max_workers=16) as executor:
        list(executor.map(_lifecycle, outputs))

    assert len(run_state.jobs()) == len(outputs)
    assert all(job.state is JobState.DONE for job in run_state.jobs())
