"""Error kinds, exit codes and the exception hierarchy shared by the whole run."""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """
    The kind of an error, its process exit code and whether it is fatal to the run.

    A fatal kind stops new jobs from being launched; jobs already running are
    allowed to finish.
    """

    ARGUMENT = ("argument", 3, True)
    """
    Bad command line argument or configuration.
    """
    UNKNOWN_COMPONENT = ("unknown_component", 7, True)
    """
    The component type is not one we know how to catalog.
    """
    BAD_DATE_STRING = ("bad_date_string", 8, True)
    """
    A date could not be parsed from a filename or from file metadata.
    """
    BAD_TIME = ("bad_time", 10, True)
    """
    The time coordinate of a source file could not be read during verification.
    """
    CHECKSUM = ("checksum", 12, True)
    """
    The checksum tool failed.
    """
    COMPARE = ("compare", 13, False)
    """
    A verified frame differs between a source file and the merged output.
    """
    COPY = ("copy", 14, True)
    """
    Copying a pass-through file or moving a source file failed.
    """
    DIFF_TOOL = ("diff_tool", 15, True)
    """
    The diff tool itself failed to run.
    """
    EXTRACT = ("extract", 16, True)
    """
    Extracting frames from a merged output failed.
    """
    INTERNAL = ("internal", 17, True)
    """
    An internal invariant was violated, this indicates a logic defect.
    """
    INTERRUPT = ("interrupt", 18, True)
    """
    The run was interrupted by the user or the system.
    """
    MISSING_FILE = ("missing_file", 19, True)
    """
    An expected file does not exist.
    """
    MULTIPLE_MONTHS = ("multiple_months", 20, True)
    """
    One history file holds frames from more than one month.
    """
    MULTIPLE_YEARS = ("multiple_years", 21, True)
    """
    One history file holds frames from more than one year.
    """
    METADATA = ("metadata", 22, True)
    """
    File metadata could not be read.
    """
    CONCATENATE = ("concatenate", 23, True)
    """
    The concatenation tool failed.
    """
    NO_ACCESS = ("no_access", 24, False)
    """
    A component directory could not be read, the component is skipped.
    """
    NOTHING_TO_COMPRESS = ("nothing_to_compress", 25, True)
    """
    A merge unit has no members.
    """
    UNSUPPORTED_CALENDAR = ("unsupported_calendar", 26, True)
    """
    The calendar is not the fixed 365 day (no-leap) calendar.
    """
    UNSUPPORTED_TIME_UNITS = ("unsupported_time_units", 28, True)
    """
    The time units are not "days since YYYY-01-01 00:00".
    """

    def __init__(self, type_name: str, exit_code: int, fatal: bool) -> None:  # noqa: FBT001
        """
        Initialize the ErrorKind with a name, exit code and fatal flag.

        :param type_name: The name of the error kind.
        :param exit_code: The process exit code used when this kind ends the run.
        :param fatal: Whether this kind stops new work from being launched.
        """
        self.type_name = type_name
        self.exit_code = exit_code
        self.fatal = fatal


SUCCESS_EXIT_CODE = 0


class HistcatError(Exception):
    """Base exception for every error recorded against a run."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, *, kind: ErrorKind | None = None) -> None:
        """
        Initialize the error with a message and, optionally, a more specific kind.

        :param message: The error message to be displayed.
        :param kind: Overrides the default kind of the exception class.
        """
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    @property
    def fatal(self) -> bool:
        """Whether the error stops new work from being launched."""
        return self.kind.fatal

    @property
    def message(self) -> str:
        """The error message."""
        return str(self)


class ArgumentError(HistcatError):
    """Raised for invalid command line arguments or configuration."""

    kind = ErrorKind.ARGUMENT


class MissingFileError(HistcatError):
    """Raised when an expected file does not exist."""

    kind = ErrorKind.MISSING_FILE


class ClassificationError(HistcatError):
    """Base exception for errors deriving the date and stream of a history file."""

    kind = ErrorKind.BAD_DATE_STRING


class BadDateStringError(ClassificationError):
    """Raised when a date field or date value cannot be parsed."""

    kind = ErrorKind.BAD_DATE_STRING


class UnknownComponentError(ClassificationError):
    """Raised for component types that cannot be cataloged."""

    kind = ErrorKind.UNKNOWN_COMPONENT


class UnsupportedCalendarError(ClassificationError):
    """Raised when a calendar other than the no-leap calendar is encountered."""

    kind = ErrorKind.UNSUPPORTED_CALENDAR


class UnsupportedTimeUnitsError(ClassificationError):
    """Raised when the time units are not "days since YYYY-01-01 00:00"."""

    kind = ErrorKind.UNSUPPORTED_TIME_UNITS


class MultipleYearsError(ClassificationError):
    """Raised when a single file holds frames from more than one year in yearly mode."""

    kind = ErrorKind.MULTIPLE_YEARS


class MultipleMonthsError(ClassificationError):
    """Raised when a single file holds frames from more than one month in monthly mode."""

    kind = ErrorKind.MULTIPLE_MONTHS


class MetadataError(ClassificationError):
    """Raised when the metadata of a file cannot be read."""

    kind = ErrorKind.METADATA


class ToolInvocationError(HistcatError):
    """
    Raised when an external tool fails or cannot be started.

    The kind tells which tool failed (concatenation, copy, checksum, extraction, diff).
    """

    kind = ErrorKind.CONCATENATE


class InternalInvariantError(HistcatError):
    """Raised when an internal invariant is violated, this indicates a logic defect."""

    kind = ErrorKind.INTERNAL


class VerificationError(HistcatError):
    """Raised when the frames of a source file cannot be located in a merged output."""

    kind = ErrorKind.BAD_TIME
