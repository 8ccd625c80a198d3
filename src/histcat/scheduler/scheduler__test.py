import threading
import time

import pytest

from histcat.catalog.components import ComponentType
from histcat.catalog.history_file import StreamId
from histcat.catalog.merge_unit import Bucket, MergeUnit, MergeUnitKey
from histcat.errors import ErrorKind, ToolInvocationError
from histcat.scheduler.run_state import JobState, RunState
from histcat.scheduler.scheduler import JobScheduler

WAIT_SECONDS = 5


class _RecordingRunner:
    """Stands in for the job runner, tracking how many jobs run at once."""

    def __init__(self, run_state, gate=None, failing=()):
        self.run_state = run_state
        self.gate = gate
        self.failing = set(failing)
        self.lock = threading.Lock()
        self.active = 0
        self.max_active = 0
        self.started = []

    def run(self, unit):
        with self.lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.started.append(unit.output_path)
        try:
            if self.gate is not None:
                self.gate.wait(WAIT_SECONDS)
            else:
                time.sleep(0.01)
            self.run_state.transition(unit.output_path, JobState.COMPRESSING)
            if unit.output_path in self.failing:
                return self.run_state.fail_job(
                    unit.output_path,
                    ToolInvocationError("ncrcat failed", kind=ErrorKind.CONCATENATE),
                )
            self.run_state.transition(unit.output_path, JobState.COMPRESSED)
            return self.run_state.transition(unit.output_path, JobState.DONE)
        finally:
            with self.lock:
                self.active -= 1


def _units(count):
    return [
        MergeUnit(
            key=MergeUnitKey(ComponentType.ICE, StreamId("cice", "h"), Bucket.for_year(year)),
            members=(),
            output_path=f"/out/ice/hist/N1850.cice.h.{year:04d}.nc",
            source_paths=(f"/case/ice/hist/N1850.cice.h.{year:04d}-01-01.nc",),
        )
        for year in range(1, count + 1)
    ]


def _wait_for(predicate):
    deadline = time.monotonic() + WAIT_SECONDS
    while not predicate():
        if time.monotonic() > deadline:
            pytest.fail("Timed out waiting for the scheduler")
        time.sleep(0.005)


def test__dispatch__one_worker__runs_strictly_in_sequence():
    run_state = RunState()
    runner = _RecordingRunner(run_state)
    scheduler = JobScheduler(run_state=run_state, job_runner=runner, max_workers=1)
    units = _units(4)

    scheduler.dispatch(units)
    scheduler.drain()

    assert runner.max_active == 1
    assert runner.started == [unit.output_path for unit in units]
    assert scheduler.launched_count == 4
    assert all(job.state is JobState.DONE for job in run_state.jobs())


def test__dispatch__four_workers_five_units__fifth_waits_for_a_slot():
    run_state = RunState()
    gate = threading.Event()
    runner = _RecordingRunner(run_state, gate=gate)
    scheduler = JobScheduler(run_state=run_state, job_runner=runner, max_workers=4)
    units = _units(5)

    dispatcher = threading.Thread(target=scheduler.dispatch, args=(units,))
    dispatcher.start()
    _wait_for(lambda: len(runner.started) == 4)
    time.sleep(0.05)

    assert len(runner.started) == 4
    assert len(run_state.jobs()) == 4
    assert run_state.active_job_count() == 4

    gate.set()
    dispatcher.join(WAIT_SECONDS)
    scheduler.drain()

    assert runner.max_active == 4
    assert scheduler.launched_count == 5
    assert [job.state for job in run_state.jobs()] == [JobState.DONE] * 5


def test__dispatch__fatal_error__launches_no_further_jobs():
    run_state = RunState()
    units = _units(3)
    runner = _RecordingRunner(run_state, failing={units[0].output_path})
    scheduler = JobScheduler(run_state=run_state, job_runner=runner, max_workers=1)

    launched = scheduler.dispatch(units)
    scheduler.drain()

    assert launched == 1
    assert runner.started == [units[0].output_path]
    assert run_state.fatal_kind is ErrorKind.CONCATENATE
    assert len(run_state.jobs()) == 1


def test__dispatch__run_already_fatal__launches_nothing():
    run_state = RunState()
    run_state.record_error(ToolInvocationError("earlier failure"))
    runner = _RecordingRunner(run_state)
    scheduler = JobScheduler(run_state=run_state, job_runner=runner, max_workers=2)

    assert scheduler.dispatch(_units(2)) == 0
    scheduler.drain()
    assert run_state.jobs() == []


def test__drain__waits_for_in_flight_jobs():
    run_state = RunState()
    gate = threading.Event()
    runner = _RecordingRunner(run_state, gate=gate)
    scheduler = JobScheduler(run_state=run_state, job_runner=runner, max_workers=2)
    scheduler.dispatch(_units(2))

    threading.Timer(0.05, gate.set).start()
    scheduler.drain()

    assert run_state.active_job_count() == 0


def test__scheduler__no_workers__rejected():
    with pytest.raises(ValueError, match="at least 1"):
        JobScheduler(run_state=RunState(), job_runner=_RecordingRunner(RunState()), max_workers=0)


def test__dispatch__duplicate_output_path__recorded_as_fatal_and_stops_launching():
    run_state = RunState()
    units = _units(2)
    runner = _RecordingRunner(run_state)
    scheduler = JobScheduler(run_state=run_state, job_runner=runner, max_workers=2)

    launched = scheduler.dispatch([*units, units[0], *_units(3)[2:]])
    scheduler.drain()

    assert launched == 2
    assert scheduler.launched_count == 2
    assert run_state.fatal_kind is ErrorKind.INTERNAL
    assert [(error.kind, error.output_path) for error in run_state.errors()] == [
        (ErrorKind.INTERNAL, units[0].output_path),
    ]
    assert [job.state for job in run_state.jobs()] == [JobState.DONE] * 2


class _ExplodingRunner:
    def run(self, unit):
        msg = f"worker lost while processing {unit.output_path}"
        raise RuntimeError(msg)


def test__drain__exception_escaping_a_job__recorded_as_internal_error():
    run_state = RunState()
    scheduler = JobScheduler(run_state=run_state, job_runner=_ExplodingRunner(), max_workers=1)

    scheduler.dispatch(_units(1))
    scheduler.drain()

    assert run_state.fatal_kind is ErrorKind.INTERNAL
    assert "worker lost" in run_state.errors()[0].message
