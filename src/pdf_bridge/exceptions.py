"""Exception hierarchy for pdf-bridge."""

from __future__ import annotations

import enum


class ErrorKind(enum.Enum):
    """Coarse classification carried by every pdf-bridge error."""

    CALLER = "caller"
    PASSWORD = "password"
    PARSE = "parse"
    IO = "io"
    NOT_FOUND = "not_found"


class PdfBridgeError(Exception):
    """Base exception for all pdf-bridge errors."""

    kind: ErrorKind = ErrorKind.PARSE


class CallerContractError(PdfBridgeError):
    """Raised when the caller breaks an API contract.

    These are raised before any engine work happens and are never retried.
    """

    kind = ErrorKind.CALLER


class InvalidArgumentError(CallerContractError, TypeError):
    """Raised for arguments of the wrong type or shape."""


class ArgumentCountError(CallerContractError, ValueError):
    """Raised when an operation receives too few or too many positionals."""


class SessionClosedError(CallerContractError):
    """Raised when a closed (or never opened) session is used."""


class PDFError(PdfBridgeError):
    """Raised when the PDF engine fails to parse, read or write a document.

    The message is the engine's diagnostic text, unmodified.
    """

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.PARSE) -> None:
        self.kind = kind
        super().__init__(message)


class PasswordError(PDFError):
    """Raised when a document cannot be opened with the given password."""

    def __init__(self, message: str) -> None:
        super().__init__(message, kind=ErrorKind.PASSWORD)


class NotFoundError(PdfBridgeError, LookupError):
    """Raised when no live object exists at the requested object number."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, objid: int, gen: int | None = None, detail: str = "") -> None:
        self.objid = objid
        self.gen = gen
        if gen is None:
            msg = f"no object {objid}"
        else:
            msg = f"no object {objid} {gen} R"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)
