"""Enumerations for CLI exit codes."""
from __future__ import annotations

from enum import IntEnum

from .errors import ErrorKind


class ExitCode(IntEnum):
    """Well-known exit codes enforced across the CLI."""

    OK = 0
    VALIDATION = 2
    ENVIRONMENT = 3
    PROVIDER = 4
    SAFETY = 5


_KIND_EXIT_CODES: dict[ErrorKind, ExitCode] = {
    ErrorKind.VALIDATION: ExitCode.VALIDATION,
    ErrorKind.NOT_FOUND: ExitCode.VALIDATION,
    ErrorKind.CONFLICT: ExitCode.VALIDATION,
    ErrorKind.TRANSPORT: ExitCode.ENVIRONMENT,
    ErrorKind.COMMAND: ExitCode.ENVIRONMENT,
    ErrorKind.FILESYSTEM: ExitCode.ENVIRONMENT,
    ErrorKind.AUTH: ExitCode.PROVIDER,
    ErrorKind.PROVIDER: ExitCode.PROVIDER,
    ErrorKind.RATE_LIMIT: ExitCode.PROVIDER,
    ErrorKind.PROVIDER_SERVER: ExitCode.PROVIDER,
    ErrorKind.SAFETY: ExitCode.SAFETY,
}


def exit_code_for(kind: ErrorKind | None) -> ExitCode:
    """Return the exit code reported for a failure of *kind*."""
    if kind is None:
        return ExitCode.ENVIRONMENT
    return _KIND_EXIT_CODES.get(kind, ExitCode.ENVIRONMENT)


__all__ = ["ExitCode", "exit_code_for"]
