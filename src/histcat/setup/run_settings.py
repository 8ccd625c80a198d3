"""Parses the command line and the environment into the settings of a run."""

from __future__ import annotations

import argparse
import os
import shutil
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version
from typing import TYPE_CHECKING

from histcat.catalog.catalog_builder import DEFAULT_PROGRESS_INTERVAL
from histcat.catalog.components import DEFAULT_COMPONENTS, ComponentSpec
from histcat.catalog.merge_unit import MergeMode
from histcat.errors import ArgumentError
from histcat.logging import logger
from histcat.scheduler.scheduler import DEFAULT_WORKER_COUNT
from histcat.tools.nco import MAX_COMPRESSION_LEVEL, MIN_COMPRESSION_LEVEL
from histcat.verification.sampler import CompareMode

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

PROG = "histcat"
DEFAULT_COMPRESSION_LEVEL = 2
DEFAULT_DELETE_GRACE_SECONDS = 30


@dataclass(frozen=True)
class ToolPaths:
    """The locations of the external tools."""

    ncrcat: str
    ncks: str
    cprnc: str
    xxhsum: str


@dataclass(frozen=True)
class RunSettings:
    """Everything that configures one run, validated."""

    case_path: str
    output_path: str
    components: tuple[ComponentSpec, ...]
    merge_mode: MergeMode
    keep_monthly: bool
    compression_level: int
    workers: int
    compare_mode: CompareMode
    move: bool
    delete: bool
    move_dir: str
    dry_run: bool
    verbosity: int
    check_ice_files: bool
    tools: ToolPaths
    tool_timeout: float | None
    delete_grace_seconds: float

    @property
    def case_name(self) -> str:
        """The name of the case, the last element of the case path."""
        return os.path.basename(self.case_path.rstrip("/"))

    @property
    def progress_interval(self) -> int:
        """How many files are cataloged between progress messages."""
        return max(DEFAULT_PROGRESS_INTERVAL // (10**self.verbosity), 1)


class _RaisingArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise ArgumentError(f"{self.prog}: {message}")


def _package_version() -> str:
    try:
        return version(PROG)
    except PackageNotFoundError:
        return "unknown"


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser; usage errors raise ArgumentError."""
    parser = _RaisingArgumentParser(
        prog=PROG,
        description=(
            "Merge and compress the history files of a climate model case into one "
            "file per stream and year, month, file or run."
        ),
    )
    parser.add_argument("case_path", help="The case archive directory")
    parser.add_argument("output_path", help="The directory the merged files are written to")
    parser.add_argument(
        "--comp",
        dest="components",
        action="append",
        metavar="COMP[:MODEL]",
        help="A component to process, e.g. atm:cam; may be repeated (default: ice:cice)",
    )

    merge = parser.add_argument_group("merge mode (the last one given wins)")
    merge.add_argument(
        "-y",
        "--year",
        "--yearly",
        dest="merge_mode",
        action="store_const",
        const=MergeMode.YEARLY,
        help="One file per stream and year (default)",
    )
    merge.add_argument(
        "-m",
        "--month",
        "--monthly",
        dest="merge_mode",
        action="store_const",
        const=MergeMode.MONTHLY,
        help="One file per stream and month",
    )
    merge.add_argument(
        "-a",
        "--merge-all",
        dest="merge_mode",
        action="store_const",
        const=MergeMode.MERGE_ALL,
        help="One file per stream for the whole run",
    )
    merge.add_argument(
        "--compress-only",
        dest="merge_mode",
        action="store_const",
        const=MergeMode.COMPRESS_ONLY,
        help="Compress each file without merging",
    )
    parser.set_defaults(merge_mode=MergeMode.YEARLY)

    parser.add_argument(
        "--keep-monthly",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="In yearly mode, keep monthly files out of the yearly files",
    )
    parser.add_argument(
        "-c",
        "--compress",
        dest="compression_level",
        type=int,
        default=DEFAULT_COMPRESSION_LEVEL,
        help=f"Compression level, {MIN_COMPRESSION_LEVEL} to {MAX_COMPRESSION_LEVEL}",
    )
    parser.add_argument(
        "-t",
        "--threads",
        dest="workers",
        type=int,
        default=DEFAULT_WORKER_COUNT,
        help="The number of files processed in parallel",
    )
    parser.add_argument(
        "--compare",
        default=CompareMode.NONE.value,
        help="Verify the merged files: None, Spot or Full",
    )
    parser.add_argument(
        "--move",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Move the source files to the move directory once verified",
    )
    parser.add_argument(
        "--delete",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Move the source files, then delete the move directory at the end of the run",
    )
    parser.add_argument("--move-dir", default=None, help="Where moved source files go")
    parser.add_argument(
        "--dryrun",
        dest="dry_run",
        action="store_true",
        help="Log what would be done without doing it",
    )
    parser.add_argument(
        "--verbose",
        dest="verbosity",
        action="count",
        default=0,
        help="Log more detail, may be repeated",
    )
    parser.add_argument(
        "--check-ice-files",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Read ice file dates from their metadata instead of their filenames",
    )
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {_package_version()}")
    return parser


def _resolve_tool(name: str, env_var: str, environ: Mapping[str, str], *, required: bool) -> str:
    executable = environ.get(env_var) or name
    resolved = shutil.which(executable)
    if resolved is not None:
        return resolved
    if required:
        msg = f"Unable to find '{executable}', install it or set {env_var}"
        raise ArgumentError(msg)
    return executable


def _resolve_tools(environ: Mapping[str, str], *, verifying: bool, dry_run: bool) -> ToolPaths:
    return ToolPaths(
        ncrcat=_resolve_tool("ncrcat", "HISTCAT_NCRCAT", environ, required=not dry_run),
        ncks=_resolve_tool("ncks", "HISTCAT_NCKS", environ, required=verifying and not dry_run),
        cprnc=_resolve_tool("cprnc", "HISTCAT_CPRNC", environ, required=verifying and not dry_run),
        xxhsum=_resolve_tool("xxhsum", "HISTCAT_XXHSUM", environ, required=not dry_run),
    )


def _float_from_env(environ: Mapping[str, str], env_var: str) -> float | None:
    raw = environ.get(env_var)
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        msg = f"{env_var} must be a number of seconds, got '{raw}'"
        raise ArgumentError(msg) from exc
    if value < 0:
        msg = f"{env_var} must not be negative, got '{raw}'"
        raise ArgumentError(msg)
    return value


def _default_move_dir(environ: Mapping[str, str]) -> str:
    user = environ.get("USER", PROG)
    return f"/scratch/{user}/SOURCE_FILES_TO_BE_DELETED"


def parse_settings(
    argv: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> RunSettings:
    """
    Parse and validate the settings of a run.

    Nothing is written and no directory is scanned while parsing.

    :param argv: The command line arguments, without the program name.
    :param environ: The environment, ``os.environ`` if not given.
    :return: The validated settings.
    :raises ArgumentError: If an argument or an environment value is invalid, or a
    required tool cannot be found.
    """
    environ = os.environ if environ is None else environ
    args = build_parser().parse_args(argv)

    if not MIN_COMPRESSION_LEVEL <= args.compression_level <= MAX_COMPRESSION_LEVEL:
        msg = (
            f"Compression level must be between {MIN_COMPRESSION_LEVEL} and "
            f"{MAX_COMPRESSION_LEVEL}, got {args.compression_level}"
        )
        raise ArgumentError(msg)
    if args.workers < 1:
        msg = f"Thread count must be at least 1, got {args.workers}"
        raise ArgumentError(msg)

    compare_mode = CompareMode.from_name(args.compare)
    parsed = [ComponentSpec.parse(comp) for comp in args.components or ()]
    components = tuple(dict.fromkeys(parsed))
    if len(components) < len(parsed):
        logger.warning("Components given more than once are only processed once")
    keep_monthly = args.keep_monthly
    if keep_monthly and args.merge_mode is not MergeMode.YEARLY:
        logger.warning(f"--keep-monthly only applies to yearly merging, ignored for {args.merge_mode.value}")
        keep_monthly = False

    case_path = args.case_path.rstrip("/") or "/"
    if not os.path.isdir(case_path):
        msg = f"Case directory, '{case_path}', does not exist"
        raise ArgumentError(msg)

    delete_grace_seconds = _float_from_env(environ, "HISTCAT_DELETE_GRACE_SECONDS")
    return RunSettings(
        case_path=case_path,
        output_path=args.output_path.rstrip("/") or "/",
        components=components or DEFAULT_COMPONENTS,
        merge_mode=args.merge_mode,
        keep_monthly=keep_monthly,
        compression_level=args.compression_level,
        workers=args.workers,
        compare_mode=compare_mode,
        move=args.move or args.delete,
        delete=args.delete,
        move_dir=args.move_dir or environ.get("HISTCAT_MOVE_DIR") or _default_move_dir(environ),
        dry_run=args.dry_run,
        verbosity=args.verbosity,
        check_ice_files=args.check_ice_files,
        tools=_resolve_tools(
            environ,
            verifying=compare_mode is not CompareMode.NONE,
            dry_run=args.dry_run,
        ),
        tool_timeout=_float_from_env(environ, "HISTCAT_TOOL_TIMEOUT"),
        delete_grace_seconds=(
            DEFAULT_DELETE_GRACE_SECONDS if delete_grace_seconds is None else delete_grace_seconds
        ),
    )
