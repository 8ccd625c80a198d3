"""The ``histcat`` command line entry point."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from histcat.errors import ArgumentError
from histcat.logging import logger
from histcat.run.archive_run import archive
from histcat.setup.run_settings import parse_settings

if TYPE_CHECKING:
    from collections.abc import Sequence


def main(argv: Sequence[str] | None = None) -> int:
    """
    Run histcat with command line arguments.

    :param argv: The arguments, without the program name; ``sys.argv`` if not given.
    :return: The process exit code.
    """
    try:
        settings = parse_settings(argv)
    except ArgumentError as exc:
        logger.error(f"ERROR {exc.kind.exit_code}: {exc.message}")
        return exc.kind.exit_code

    return archive(settings).exit_code


if __name__ == "__main__":
    sys.exit(main())
