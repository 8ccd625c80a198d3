"""Checksums merged outputs with ``xxhsum`` into per-directory digest files."""

from __future__ import annotations

import posixpath
import threading
from typing import TYPE_CHECKING

from histcat.errors import ErrorKind, ToolInvocationError
from histcat.logging import logger

if TYPE_CHECKING:
    from fsspec import AbstractFileSystem

    from histcat.tools.tool_runner import ToolRunner

DIGEST_SUFFIX = ".xxhsum"


def digest_file_for(path: str, run_id: str) -> str:
    """
    Name the digest file collecting the checksums of outputs in the directory of ``path``.

    History outputs in ``<output>/<comp>/hist`` use ``<output-name>_<comp>_<run-id>.xxhsum``,
    any other directory ``<dir-name>_<run-id>.xxhsum``.

    :param path: An output file.
    :param run_id: The timestamp identifying the run.
    :return: The path of the digest file.
    """
    directory = posixpath.dirname(path)
    if posixpath.basename(directory) == "hist":
        component_dir = posixpath.dirname(directory)
        output_root = posixpath.dirname(component_dir)
        name = f"{posixpath.basename(output_root)}_{posixpath.basename(component_dir)}"
    else:
        name = posixpath.basename(directory)
    return f"{directory}/{name}_{run_id}{DIGEST_SUFFIX}"


class XxhsumDigestTool:
    """
    Appends the checksum of each output to the digest file of its directory.

    Digest files are shared by every job writing to the same directory, so
    appends are serialized.
    """

    def __init__(
        self,
        *,
        runner: ToolRunner,
        executable: str,
        filesystem: AbstractFileSystem,
        run_id: str,
    ) -> None:
        """
        Initialize the XxhsumDigestTool.

        :param runner: Runs the tool.
        :param executable: The path of ``xxhsum``.
        :param filesystem: The filesystem the digest files are written to.
        :param run_id: The timestamp identifying the run, part of the digest filenames.
        """
        self.runner = runner
        self.executable = executable
        self.filesystem = filesystem
        self.run_id = run_id
        self._append_lock = threading.Lock()

    def digest(self, path: str) -> str:
        """
        Checksum a file and append the checksum line to its directory's digest file.

        :param path: The file to checksum.
        :return: The checksum line, empty in dry-run mode.
        :raises ToolInvocationError: If ``xxhsum`` fails or prints nothing.
        """
        digest_file = digest_file_for(path, self.run_id)
        result = self.runner.run([self.executable, "-H2", path], error_kind=ErrorKind.CHECKSUM)
        if result.dry_run:
            return ""

        line = result.stdout.strip()
        if not line:
            msg = f"No checksum produced for {path}"
            raise ToolInvocationError(msg, kind=ErrorKind.CHECKSUM)

        with self._append_lock, self.filesystem.open(digest_file, "a") as file:
            file.write(f"{line}\n")

        logger.debug(f"Checksum of {path} added to {digest_file}")
        return line
