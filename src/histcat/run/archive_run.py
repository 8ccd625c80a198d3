"""Runs the whole pipeline for one case: catalog, merge, verify, report and clean up."""

from __future__ import annotations

import time
from pathlib import Path
from typing import TYPE_CHECKING

import arrow
from dependency_injector.wiring import Provide, inject

from histcat.errors import ErrorKind, HistcatError
from histcat.logging import attach_run_log, detach_run_log, logger, set_verbosity
from histcat.setup.dependency_injection import HistcatContainer, init_dependencies_from_settings

if TYPE_CHECKING:
    from fsspec import AbstractFileSystem

    from histcat.catalog.catalog_builder import CatalogBuilder
    from histcat.reporting.status_reporter import RunReport, StatusReporter
    from histcat.scheduler.run_state import RunState
    from histcat.scheduler.scheduler import JobScheduler
    from histcat.setup.run_settings import RunSettings
    from histcat.tools.file_operations import FileOperations

RUN_ID_FORMAT = "YYYYMMDD_HHmmss"


def new_run_id() -> str:
    """Return the timestamp identifying a run started now."""
    return arrow.now().format(RUN_ID_FORMAT)


def run_log_path(output_path: str, run_id: str) -> str:
    """The path of the log file of a run."""
    return f"{output_path}/histcat.{run_id}.log"


def error_marker_path(output_path: str, run_id: str) -> str:
    """The path of the file listing the errors of a run."""
    return f"{output_path}/histcat.{run_id}.error"


def _catalog_and_dispatch(
    settings: RunSettings,
    catalog_builder: CatalogBuilder,
    scheduler: JobScheduler,
    run_state: RunState,
) -> None:
    for spec in settings.components:
        if run_state.fatal:
            break
        try:
            catalog = catalog_builder.build(spec)
        except PermissionError as exc:
            run_state.record_error(
                HistcatError(f"Unable to read the files of {spec}: {exc}", kind=ErrorKind.NO_ACCESS),
            )
            continue
        except HistcatError as exc:
            run_state.record_error(exc)
            break

        if catalog is None:
            continue
        logger.info(
            f"{spec}: {catalog.member_count} file(s) to merge into {len(catalog.units)} file(s) "
            f"in {catalog.output_dir}",
        )
        scheduler.dispatch(catalog.units)


def _write_error_marker(
    settings: RunSettings,
    run_id: str,
    report: RunReport,
    filesystem: AbstractFileSystem,
) -> None:
    if settings.dry_run or not (report.errors or report.failed_jobs):
        return
    marker = error_marker_path(settings.output_path, run_id)
    with filesystem.open(marker, "w") as file:
        for error in report.errors:
            file.write(f"ERROR {error.kind.exit_code} ({error.kind.type_name}): {error.message}\n")
        for job in report.failed_jobs:
            file.write(f"{job.state.type_name.upper()}: {job.output_path}: {job.message}\n")
    logger.info(f"Errors listed in {marker}")


def _delete_moved_sources(settings: RunSettings, report: RunReport, file_operations: FileOperations) -> None:
    if not settings.delete:
        return
    if report.fatal:
        logger.warning(f"Not deleting '{settings.move_dir}' after a fatal error")
        return
    if settings.dry_run:
        logger.info(f"Dry run, not deleting the source files in '{settings.move_dir}'")
        return

    logger.warning(
        f"Deleting the source files in '{settings.move_dir}' in "
        f"{settings.delete_grace_seconds:g} seconds",
    )
    time.sleep(settings.delete_grace_seconds)
    file_operations.remove_tree(settings.move_dir)


@inject
def _archive(  # noqa: PLR0913
    settings: RunSettings,
    run_id: str,
    catalog_builder: CatalogBuilder = Provide[HistcatContainer.catalog_builder],
    scheduler: JobScheduler = Provide[HistcatContainer.scheduler],
    run_state: RunState = Provide[HistcatContainer.run_state],
    status_reporter: StatusReporter = Provide[HistcatContainer.status_reporter],
    file_operations: FileOperations = Provide[HistcatContainer.file_operations],
    filesystem: AbstractFileSystem = Provide[HistcatContainer.filesystem],
) -> RunReport:
    if settings.dry_run:
        logger.info("Dry run, no data files will be created, moved, modified or deleted")

    try:
        _catalog_and_dispatch(settings, catalog_builder, scheduler, run_state)
        scheduler.drain()
    except KeyboardInterrupt:
        run_state.record_error(HistcatError("Job interrupted by user", kind=ErrorKind.INTERRUPT))
        logger.warning("Waiting for running jobs to finish, the run can be restarted afterwards")
        scheduler.drain()

    report = status_reporter.report(run_state, scheduler.launched_count)
    file_operations.remove_leftovers(settings.output_path)
    _write_error_marker(settings, run_id, report, filesystem)
    _delete_moved_sources(settings, report, file_operations)
    return report


def archive(settings: RunSettings) -> RunReport:
    """
    Merge, compress and verify the history files of a case.

    Outside of dry runs the output directory is created and every log record of
    the run is copied into a run log there.

    :param settings: The validated settings of the run.
    :return: The final report of the run.
    """
    set_verbosity(settings.verbosity)
    run_id = new_run_id()
    container = init_dependencies_from_settings(settings, run_id)
    container.wire(modules=[__name__])

    handler = None
    if not settings.dry_run:
        Path(settings.output_path).mkdir(parents=True, exist_ok=True)
        handler = attach_run_log(Path(run_log_path(settings.output_path, run_id)))

    try:
        logger.info(f"Run {run_id}: {settings.case_path} -> {settings.output_path}")
        logger.info(
            f"Merge mode: {settings.merge_mode.value}, compression level "
            f"{settings.compression_level}, {settings.workers} thread(s), "
            f"compare: {settings.compare_mode.value}",
        )
        if settings.move:
            logger.info(f"Verified source files are moved to '{settings.move_dir}'")
        return _archive(settings, run_id)
    finally:
        container.unwire()
        if handler is not None:
            detach_run_log(handler)
