"""Filesystem side effects of a run: copies, moves, timestamps and cleanup."""

from __future__ import annotations

import os
import posixpath
from typing import TYPE_CHECKING

from histcat.errors import ErrorKind, ToolInvocationError
from histcat.logging import logger

if TYPE_CHECKING:
    from collections.abc import Collection

    from fsspec import AbstractFileSystem


class FileOperations:
    """
    Performs the file operations of a run through an fsspec filesystem.

    In dry-run mode every operation is logged and none is performed.
    """

    def __init__(self, *, filesystem: AbstractFileSystem, dry_run: bool = False) -> None:
        """
        Initialize the FileOperations.

        :param filesystem: The filesystem holding sources and outputs.
        :param dry_run: Log the operations instead of performing them.
        """
        self.filesystem = filesystem
        self.dry_run = dry_run

    def ensure_directory(self, path: str) -> None:
        """Create a directory and its parents if missing."""
        if self.dry_run:
            return
        self.filesystem.makedirs(path, exist_ok=True)

    def copy(self, source: str, destination: str) -> None:
        """
        Copy a file.

        :param source: The file to copy.
        :param destination: The path of the copy.
        :raises ToolInvocationError: If the copy fails.
        """
        if self.dry_run:
            logger.info(f"Dry run, copy '{source}' to '{destination}'")
            return

        logger.debug(f"Copying '{source}' to '{destination}'")
        try:
            self.filesystem.copy(source, destination)
        except OSError as exc:
            msg = f"Copying '{source}' to '{destination}' failed: {exc}"
            raise ToolInvocationError(msg, kind=ErrorKind.COPY) from exc

    def stamp_modification_time(self, output: str, sources: Collection[str]) -> None:
        """
        Give an output the modification time of its newest source.

        :param output: The output file.
        :param sources: The files the output was made from.
        """
        if self.dry_run or not sources:
            return

        newest = max(self.filesystem.modified(source) for source in sources)
        timestamp = newest.timestamp()
        os.utime(output, (timestamp, timestamp))

    def move_into(self, sources: Collection[str], directory: str) -> None:
        """
        Move files into a directory, keeping their names.

        :param sources: The files to move.
        :param directory: The destination directory, created if missing.
        :raises ToolInvocationError: If a file cannot be moved.
        """
        if self.dry_run:
            logger.info(f"Dry run, not moving {len(sources)} source file(s) to '{directory}'")
            return

        self.filesystem.makedirs(directory, exist_ok=True)
        for source in sources:
            destination = f"{directory.rstrip('/')}/{posixpath.basename(source)}"
            logger.debug(f"Moving '{source}' to '{destination}'")
            try:
                self.filesystem.mv(source, destination)
            except OSError as exc:
                msg = f"Moving '{source}' to '{destination}' failed: {exc}"
                raise ToolInvocationError(msg, kind=ErrorKind.COPY) from exc

    def remove_tree(self, directory: str) -> None:
        """Delete a directory and everything in it, if it exists."""
        if self.dry_run:
            logger.info(f"Dry run, not deleting '{directory}'")
            return
        if self.filesystem.exists(directory):
            self.filesystem.rm(directory, recursive=True)

    def remove_leftovers(self, directory: str, pattern: str = "*.tmp") -> list[str]:
        """
        Delete files matching a pattern directly inside a directory.

        Interrupted tool runs leave temporary files behind.

        :param directory: The directory to clean.
        :param pattern: The glob pattern of the files to delete.
        :return: The deleted paths.
        """
        leftovers = self.filesystem.glob(f"{directory.rstrip('/')}/{pattern}")
        if self.dry_run or not leftovers:
            return []
        for leftover in leftovers:
            self.filesystem.rm(leftover)
        logger.info(f"Removed {len(leftovers)} temporary file(s) from '{directory}'")
        return list(leftovers)
