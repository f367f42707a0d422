import os
from typing import Optional

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_ORIGIN = 1
EXIT_TEMPDIR = 2
EXIT_DIRECTORY = 3
EXIT_FILL = 4
EXIT_PHASE = 5
EXIT_INTERRUPTED = 130


class IogenError(Exception):
    exit_code = 1


class InvalidConfig(IogenError):
    exit_code = EXIT_CONFIG


class OriginError(IogenError):
    exit_code = EXIT_ORIGIN


class LogFileError(IogenError):
    exit_code = EXIT_CONFIG


class TempDirError(IogenError):
    exit_code = EXIT_TEMPDIR


class InterruptError(IogenError):
    exit_code = EXIT_INTERRUPTED


class _PathError(IogenError):
    """An I/O failure bound to the path it happened on."""

    def __init__(self, path: str, error: Optional[OSError] = None) -> None:
        super().__init__(path, error)
        self.path = path
        self.error = error

    def __str__(self) -> str:
        if self.error is None:
            return self.path
        reason = self.error.strerror
        if not reason and self.error.errno is not None:
            reason = os.strerror(self.error.errno)
        return f"{self.path}: {reason or self.error}"


class DirectoryCreateError(_PathError):
    exit_code = EXIT_DIRECTORY


class FillError(_PathError):
    exit_code = EXIT_FILL
