"""Exception types for makellamafile.

Every error the tool reports to a user derives from MakeLlamafileError and
carries the process exit code the CLI should use.
"""

from pathlib import Path

EXIT_OK = 0
EXIT_USER_ERROR = 1
EXIT_INTERNAL_ERROR = 2


class MakeLlamafileError(Exception):
    """Base exception for makellamafile errors."""

    exit_code = EXIT_INTERNAL_ERROR


class UserInputError(MakeLlamafileError):
    """Bad flags, missing positional argument, invalid names."""

    exit_code = EXIT_USER_ERROR


class InvalidAlignment(UserInputError, ValueError):
    """Alignment is negative or not an integer."""

    pass


class ResourceError(MakeLlamafileError):
    """A file or directory could not be found, read or written.

    Attributes:
        path: The offending filesystem path.
    """

    exit_code = EXIT_USER_ERROR

    def __init__(self, message: str, path: Path | str | None = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class ModelNotFound(ResourceError):
    """Input model file is missing or unreadable."""

    pass


class StubNotFound(ResourceError):
    """Executable stub is missing."""

    pass


class StubReadError(ResourceError):
    """Executable stub could not be read fully (or is empty)."""

    pass


class DestinationNotWritable(ResourceError):
    """Output directory or artifact path cannot be written."""

    pass


class DiskFull(ResourceError):
    """The filesystem ran out of space while writing the artifact."""

    pass


class ConfigReadError(ResourceError):
    """Config file exists but cannot be read or decoded."""

    pass


class StubDownloadError(ResourceError):
    """Downloading the llamafile stub failed."""

    pass


class SmokeTestFailed(ResourceError):
    """The packaged artifact did not run successfully."""

    pass


class InternalError(MakeLlamafileError):
    """Unexpected I/O failure mid-write."""

    exit_code = EXIT_INTERNAL_ERROR
