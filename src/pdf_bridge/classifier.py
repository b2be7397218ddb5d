"""Translate PDF engine failures into the pdf-bridge exception hierarchy."""

from __future__ import annotations

import contextlib
from collections.abc import Iterator

import pikepdf

from pdf_bridge.exceptions import ErrorKind, PasswordError, PDFError


def classify_engine_error(exc: BaseException) -> BaseException:
    """Return the pdf-bridge error for an engine exception.

    Password failures become :class:`PasswordError`; every other engine
    failure becomes :class:`PDFError` carrying the engine message verbatim.
    Exceptions that did not come from the engine are returned unchanged.
    """
    if isinstance(exc, pikepdf.PasswordError):
        return PasswordError(str(exc))
    if isinstance(exc, (pikepdf.PdfError, pikepdf.ForeignObjectError)):
        return PDFError(str(exc), kind=ErrorKind.PARSE)
    if isinstance(exc, OSError):
        return PDFError(str(exc), kind=ErrorKind.IO)
    return exc


@contextlib.contextmanager
def engine_errors() -> Iterator[None]:
    """Wrap a call into the engine so its failures are translated once."""
    try:
        yield
    except (pikepdf.PdfError, pikepdf.ForeignObjectError, OSError) as exc:
        raise classify_engine_error(exc) from exc
