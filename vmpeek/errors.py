"""Error reporting for guest memory access."""

from __future__ import annotations

import sys
from enum import IntEnum
from typing import Optional


class ErrorMode(IntEnum):
    """How strictly errors stop an operation."""

    FAILHARD = 0
    FAILSOFT = 1


class ErrorType(IntEnum):
    """Severity of an internal error."""

    NONE = 0
    CRITICAL = 1
    MINOR = 2


class XAError(Exception):
    """An error that the current error mode does not allow to be ignored."""

    def __init__(
        self, error: int, error_type: int = ErrorType.NONE, message: Optional[str] = None
    ) -> None:
        self.error = error
        self.error_type = error_type
        super().__init__(message or f"error {error} (type {int(error_type)})")


def report_error(error_mode: int, error: int, error_type: int) -> int:
    """Raise XAError if the error must stop the caller; otherwise return the error."""
    try:
        mode = ErrorMode(error_mode)
    except ValueError:
        raise XAError(error, error_type, f"invalid error mode {error_mode!r}") from None
    if mode is ErrorMode.FAILHARD or error_type == ErrorType.CRITICAL:
        raise XAError(error, error_type)
    return error


def errprint(message: str) -> None:
    """Write an error message to standard error."""
    sys.stderr.write(f"XA_ERROR: {message}")


def warnprint(message: str) -> None:
    """Write a warning message to standard error."""
    sys.stderr.write(f"XA_WARNING: {message}")