from unittest.mock import create_autospec

import pytest

from histcat.catalog.components import ComponentType
from histcat.catalog.history_file import StreamId
from histcat.catalog.merge_unit import Bucket, MergeUnit, MergeUnitKey
from histcat.errors import ErrorKind, ToolInvocationError
from histcat.scheduler.job_runner import JobRunner
from histcat.scheduler.run_state import JobState, RunState
from histcat.tools.file_operations import FileOperations
from histcat.tools.nco import NcoConcatenator
from histcat.tools.xxhsum import XxhsumDigestTool
from histcat.verification.sampler import CompareMode, VerificationReport, VerificationSampler

OUTPUT = "/out/N1850/ice/hist/N1850.cice.h.0005.nc"
SOURCES = tuple(f"/case/N1850/ice/hist/N1850.cice.h.0005-01-{day:02d}.nc" for day in (1, 2, 3))


@pytest.fixture
def run_state():
    return RunState()


@pytest.fixture
def concatenator():
    return create_autospec(NcoConcatenator, instance=True)


@pytest.fixture
def file_operations():
    return create_autospec(FileOperations, instance=True)


@pytest.fixture
def digest_tool():
    return create_autospec(XxhsumDigestTool, instance=True)


@pytest.fixture
def sampler():
    mock_sampler = create_autospec(VerificationSampler, instance=True)
    mock_sampler.verify.return_value = VerificationReport(
        output_path=OUTPUT, mode=CompareMode.FULL, checked=SOURCES
    )
    return mock_sampler


def _runner(run_state, concatenator, file_operations, digest_tool, sampler, move_dir=None):
    return JobRunner(
        run_state=run_state,
        concatenator=concatenator,
        file_operations=file_operations,
        digest_tool=digest_tool,
        sampler=sampler,
        move_dir=move_dir,
    )


def _unit(sources=SOURCES, output=OUTPUT):
    return MergeUnit(
        key=MergeUnitKey(ComponentType.ICE, StreamId("cice", "h"), Bucket.for_year(5)),
        members=(),
        output_path=output,
        source_paths=sources,
    )


def _passthrough_unit(source, output):
    return MergeUnit(
        key=MergeUnitKey(ComponentType.REST, None, Bucket.passthrough(source.rsplit("/", 2)[-2])),
        members=(),
        output_path=output,
        source_paths=(source,),
    )


def test__run__merge_unit__compresses_checksums_verifies_and_finishes(
    run_state, concatenator, file_operations, digest_tool, sampler
):
    run_state.create_job(OUTPUT)

    job = _runner(run_state, concatenator, file_operations, digest_tool, sampler).run(_unit())

    assert job.state is JobState.DONE
    assert job.failure_count == 0
    concatenator.concat.assert_called_once_with(list(SOURCES), OUTPUT)
    file_operations.stamp_modification_time.assert_called_once_with(OUTPUT, list(SOURCES))
    digest_tool.digest.assert_called_once_with(OUTPUT)
    sampler.verify.assert_called_once_with(OUTPUT, ComponentType.ICE, list(SOURCES))
    file_operations.move_into.assert_not_called()


def test__run__move_configured__moves_sources_after_verification(
    run_state, concatenator, file_operations, digest_tool, sampler
):
    run_state.create_job(OUTPUT)
    runner = _runner(run_state, concatenator, file_operations, digest_tool, sampler, "/scratch/moved")

    job = runner.run(_unit())

    assert job.state is JobState.DONE
    file_operations.move_into.assert_called_once_with(list(SOURCES), "/scratch/moved")


def test__run__one_spot_difference__compare_failed_and_sources_kept(
    run_state, concatenator, file_operations, digest_tool, sampler
):
    run_state.create_job(OUTPUT)
    sampler.verify.return_value = VerificationReport(
        output_path=OUTPUT,
        mode=CompareMode.SPOT,
        checked=(SOURCES[0], SOURCES[1], SOURCES[2]),
        differing=(SOURCES[1],),
    )
    runner = _runner(run_state, concatenator, file_operations, digest_tool, sampler, "/scratch/moved")

    job = runner.run(_unit())

    assert job.state is JobState.COMPARE_FAILED
    assert job.failure_count == 1
    assert not run_state.fatal
    file_operations.move_into.assert_not_called()


def test__run__concatenation_fails__job_errors_and_run_is_fatal(
    run_state, concatenator, file_operations, digest_tool, sampler
):
    run_state.create_job(OUTPUT)
    concatenator.concat.side_effect = ToolInvocationError("ncrcat exploded", kind=ErrorKind.CONCATENATE)

    job = _runner(run_state, concatenator, file_operations, digest_tool, sampler).run(_unit())

    assert job.state is JobState.ERROR
    assert job.error_kind is ErrorKind.CONCATENATE
    assert job.failure_count == 1
    assert run_state.fatal_kind is ErrorKind.CONCATENATE
    digest_tool.digest.assert_not_called()
    sampler.verify.assert_not_called()


def test__run__unexpected_exception__recorded_as_internal_error(
    run_state, concatenator, file_operations, digest_tool, sampler
):
    run_state.create_job(OUTPUT)
    digest_tool.digest.side_effect = RuntimeError("boom")

    job = _runner(run_state, concatenator, file_operations, digest_tool, sampler).run(_unit())

    assert job.state is JobState.ERROR
    assert run_state.fatal_kind is ErrorKind.INTERNAL


def test__run__no_sources__nothing_to_compress(
    run_state, concatenator, file_operations, digest_tool, sampler
):
    run_state.create_job(OUTPUT)

    job = _runner(run_state, concatenator, file_operations, digest_tool, sampler).run(_unit(sources=()))

    assert job.state is JobState.ERROR
    assert job.error_kind is ErrorKind.NOTHING_TO_COMPRESS
    concatenator.concat.assert_not_called()


def test__run__non_netcdf_passthrough__copied_and_not_verified(
    run_state, concatenator, file_operations, digest_tool, sampler
):
    source = "/case/N1850/rest/0011-01-01-00000/rpointer.atm"
    output = "/out/N1850/rest/0011-01-01-00000/rpointer.atm"
    run_state.create_job(output)
    runner = _runner(run_state, concatenator, file_operations, digest_tool, sampler, "/scratch/moved")

    job = runner.run(_passthrough_unit(source, output))

    assert job.state is JobState.DONE
    file_operations.copy.assert_called_once_with(source, output)
    concatenator.concat.assert_not_called()
    digest_tool.digest.assert_called_once_with(output)
    sampler.verify.assert_not_called()
    file_operations.move_into.assert_not_called()


def test__run__netcdf_passthrough__recompressed(
    run_state, concatenator, file_operations, digest_tool, sampler
):
    source = "/case/N1850/rest/0011-01-01-00000/N1850.cam.r.0011-01-01-00000.nc"
    output = "/out/N1850/rest/0011-01-01-00000/N1850.cam.r.0011-01-01-00000.nc"
    run_state.create_job(output)

    job = _runner(run_state, concatenator, file_operations, digest_tool, sampler).run(
        _passthrough_unit(source, output)
    )

    assert job.state is JobState.DONE
    concatenator.concat.assert_called_once_with([source], output)
    file_operations.copy.assert_not_called()
