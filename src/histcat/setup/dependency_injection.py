"""Wires the components of a run together using Dependency Injection."""

from __future__ import annotations

from typing import TYPE_CHECKING

from dependency_injector import containers, providers
from fsspec.implementations.local import LocalFileSystem

from histcat.catalog.catalog_builder import CatalogBuilder
from histcat.catalog.classifier import FileClassifier
from histcat.catalog.metadata_provider import XarrayMetadataProvider
from histcat.reporting.status_reporter import StatusReporter
from histcat.scheduler.job_runner import JobRunner
from histcat.scheduler.run_state import RunState
from histcat.scheduler.scheduler import JobScheduler
from histcat.tools.cprnc import CprncDiffTool
from histcat.tools.file_operations import FileOperations
from histcat.tools.nco import NcoConcatenator, NcoFrameExtractor
from histcat.tools.tool_runner import ToolRunner
from histcat.tools.xxhsum import XxhsumDigestTool
from histcat.verification.sampler import VerificationSampler

if TYPE_CHECKING:
    from histcat.setup.run_settings import RunSettings


class HistcatContainer(containers.DeclarativeContainer):
    """
    Dependency Injection container for a histcat run.

    One container serves one run: the run state and the scheduler it holds
    are not reusable.
    """

    config = providers.Configuration(strict=True)

    filesystem: providers.Provider[LocalFileSystem] = providers.Singleton(
        LocalFileSystem,
    )

    metadata_provider = providers.Singleton(
        XarrayMetadataProvider,
    )

    run_state = providers.Singleton(
        RunState,
    )

    tool_runner = providers.Singleton(
        ToolRunner,
        dry_run=config.dry_run,
        timeout=config.tool_timeout,
    )

    file_operations = providers.Singleton(
        FileOperations,
        filesystem=filesystem,
        dry_run=config.dry_run,
    )

    classifier = providers.Singleton(
        FileClassifier,
        filesystem=filesystem,
        metadata_provider=metadata_provider,
        case_name=config.case_name,
        use_ice_filenames=config.use_ice_filenames,
    )

    catalog_builder = providers.Singleton(
        CatalogBuilder,
        filesystem=filesystem,
        classifier=classifier,
        case_path=config.case_path,
        output_path=config.output_path,
        merge_mode=config.merge_mode,
        keep_monthly=config.keep_monthly,
        progress_interval=config.progress_interval,
    )

    concatenator = providers.Singleton(
        NcoConcatenator,
        runner=tool_runner,
        executable=config.tools.ncrcat,
        compression_level=config.compression_level,
    )

    frame_extractor = providers.Singleton(
        NcoFrameExtractor,
        runner=tool_runner,
        executable=config.tools.ncks,
    )

    differ = providers.Singleton(
        CprncDiffTool,
        runner=tool_runner,
        executable=config.tools.cprnc,
    )

    digest_tool = providers.Singleton(
        XxhsumDigestTool,
        runner=tool_runner,
        executable=config.tools.xxhsum,
        filesystem=filesystem,
        run_id=config.run_id,
    )

    sampler = providers.Singleton(
        VerificationSampler,
        mode=config.compare_mode,
        filesystem=filesystem,
        metadata_provider=metadata_provider,
        extractor=frame_extractor,
        differ=differ,
        dry_run=config.dry_run,
    )

    job_runner = providers.Singleton(
        JobRunner,
        run_state=run_state,
        concatenator=concatenator,
        file_operations=file_operations,
        digest_tool=digest_tool,
        sampler=sampler,
        move_dir=config.move_dir,
    )

    scheduler = providers.Singleton(
        JobScheduler,
        run_state=run_state,
        job_runner=job_runner,
        max_workers=config.workers,
    )

    status_reporter = providers.Singleton(
        StatusReporter,
    )


def init_dependencies_from_settings(settings: RunSettings, run_id: str) -> HistcatContainer:
    """
    Create a container configured for one run.

    :param settings: The validated settings of the run.
    :param run_id: The timestamp identifying the run.
    :return: The configured container.
    """
    container = HistcatContainer()
    container.config.from_dict(
        {
            "run_id": run_id,
            "case_path": settings.case_path,
            "case_name": settings.case_name,
            "output_path": settings.output_path,
            "merge_mode": settings.merge_mode,
            "keep_monthly": settings.keep_monthly,
            "progress_interval": settings.progress_interval,
            "use_ice_filenames": not settings.check_ice_files,
            "compression_level": settings.compression_level,
            "compare_mode": settings.compare_mode,
            "workers": settings.workers,
            "dry_run": settings.dry_run,
            "move_dir": settings.move_dir if settings.move else None,
            "tool_timeout": settings.tool_timeout,
            "tools": {
                "ncrcat": settings.tools.ncrcat,
                "ncks": settings.tools.ncks,
                "cprnc": settings.tools.cprnc,
                "xxhsum": settings.tools.xxhsum,
            },
        },
    )
    return container
