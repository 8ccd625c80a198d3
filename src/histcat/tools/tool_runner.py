"""Runs the external command line tools the pipeline is built on."""

from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass
from typing import TYPE_CHECKING

from histcat.errors import ErrorKind, ToolInvocationError
from histcat.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence


@dataclass(frozen=True)
class ToolResult:
    """The outcome of a tool run."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    dry_run: bool = False


class ToolRunner:
    """
    Runs external tools as blocking subprocesses.

    In dry-run mode the command lines are logged and nothing is executed.
    A non-zero exit status, a missing executable or an expired timeout is
    raised as a ToolInvocationError of the kind given by the caller.
    """

    def __init__(self, *, dry_run: bool = False, timeout: float | None = None) -> None:
        """
        Initialize the ToolRunner.

        :param dry_run: Log the commands instead of running them.
        :param timeout: Seconds a tool may run before it is treated as failed,
        None to wait indefinitely.
        """
        self.dry_run = dry_run
        self.timeout = timeout

    def run(
        self,
        args: Sequence[str],
        *,
        error_kind: ErrorKind,
        check: bool = True,
    ) -> ToolResult:
        """
        Run a tool and capture its output.

        :param args: The command line, the executable first.
        :param error_kind: The kind of error raised if the tool fails.
        :param check: Raise on a non-zero exit status.
        :return: The result of the run; an empty, successful result in dry-run mode.
        :raises ToolInvocationError: If the tool cannot be run or fails.
        """
        command = tuple(str(arg) for arg in args)
        command_line = shlex.join(command)

        if self.dry_run:
            logger.info(f"Dry run, not calling: {command_line}")
            return ToolResult(args=command, returncode=0, stdout="", stderr="", dry_run=True)

        logger.debug(f"Calling: {command_line}")
        try:
            completed = subprocess.run(  # noqa: S603
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            msg = f"Tool '{command[0]}' not found while running: {command_line}"
            raise ToolInvocationError(msg, kind=error_kind) from exc
        except subprocess.TimeoutExpired as exc:
            msg = f"Timed out after {self.timeout}s running: {command_line}"
            raise ToolInvocationError(msg, kind=error_kind) from exc

        if check and completed.returncode != 0:
            stderr = completed.stderr.strip()
            msg = f"Error {completed.returncode} running: {command_line}"
            if stderr:
                msg = f"{msg}: {stderr}"
            raise ToolInvocationError(msg, kind=error_kind)

        return ToolResult(
            args=command,
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )
