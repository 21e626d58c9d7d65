"""Status codes and the error type raised by remote calls."""

from __future__ import annotations

import enum

from .context import Canceled, DeadlineExceeded


class Code(enum.Enum):
    """Canonical status codes of a remote call."""

    OK = 0
    CANCELED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16

    def __str__(self) -> str:
        if self is Code.OK:
            return "OK"
        return "".join(part.capitalize() for part in self.name.split("_"))


class StatusError(Exception):
    """An error carrying a status code and a human readable message."""

    def __init__(self, code: Code, message: str = "") -> None:
        super().__init__(code, message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"rpc error: code = {self.code!s} desc = {self.message}"


def code_of(err: BaseException | None) -> Code:
    """Return the status code of ``err``: OK for None, UNKNOWN for foreign errors."""
    if err is None:
        return Code.OK
    if isinstance(err, StatusError):
        return err.code
    return Code.UNKNOWN


def from_context_error(err: BaseException) -> StatusError:
    """Turn a context error into the matching status error."""
    if isinstance(err, DeadlineExceeded):
        return StatusError(Code.DEADLINE_EXCEEDED, str(err))
    if isinstance(err, Canceled):
        return StatusError(Code.CANCELED, str(err))
    return StatusError(Code.UNKNOWN, str(err))