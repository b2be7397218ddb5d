"""Normalise a document source into something the PDF engine can open.

A source is either a filesystem path (``str``, ``bytes`` or any
``os.PathLike``) or a binary stream exposing ``read`` and ``seek``.
Streams are read once into a buffer owned by the bridge, so the engine
never keeps a reference to caller-owned memory. Paths are handed to the
engine, which does its own file I/O outside the GIL.
"""

from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass
from typing import Any

from pdf_bridge.exceptions import InvalidArgumentError

logger = logging.getLogger(__name__)

MEMORY_FILENAME = "memory"

_BINARY_STREAM_REQUIRED = "stream must be binary, readable and seekable"


@dataclass(frozen=True)
class RawSource:
    """A resolved document source: exactly one of ``path`` or ``data``."""

    filename: str
    path: str | None = None
    data: bytes | None = None

    @property
    def is_memory(self) -> bool:
        return self.data is not None

    def engine_input(self) -> str | io.BytesIO:
        """Return the object to pass to :func:`pikepdf.open`."""
        if self.data is not None:
            return io.BytesIO(self.data)
        assert self.path is not None
        return self.path


def is_stream_like(obj: Any) -> bool:
    return hasattr(obj, "read") and hasattr(obj, "seek")


def fspath_str(obj: Any) -> str:
    """Convert a path-like object to ``str``.

    Raises:
        InvalidArgumentError: If *obj* is not path-like.
    """
    try:
        path = os.fspath(obj)
    except TypeError as exc:
        raise InvalidArgumentError("expected pathlike object") from exc
    if isinstance(path, bytes):
        path = os.fsdecode(path)
    return path


def resolve(source: Any) -> RawSource:
    """Resolve *source* into a :class:`RawSource`.

    Raises:
        InvalidArgumentError: If *source* is a text-mode stream, a stream
            whose ``read()`` does not return bytes, or neither a stream nor
            path-like.
    """
    if is_stream_like(source):
        # Checked before reading: a text stream must never be consumed.
        if isinstance(source, io.TextIOBase):
            raise InvalidArgumentError(_BINARY_STREAM_REQUIRED)
        data = source.read()
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise InvalidArgumentError(_BINARY_STREAM_REQUIRED)
        buffer = bytes(data)
        logger.debug("Read %d bytes from stream source", len(buffer))
        return RawSource(filename=MEMORY_FILENAME, data=buffer)

    path = fspath_str(source)
    return RawSource(filename=path, path=path)
