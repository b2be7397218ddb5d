"""Open-time options and save-time writer policy."""

from __future__ import annotations

import enum
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from typing import Any

import pikepdf

from pdf_bridge.exceptions import InvalidArgumentError

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class OpenOptions:
    """Settings applied when a document is opened."""

    password: str = ""
    ignore_xref_streams: bool = False
    suppress_warnings: bool = True
    attempt_recovery: bool = True

    @classmethod
    def from_kwargs(
        cls, kwargs: Mapping[str, Any], base: OpenOptions | None = None
    ) -> OpenOptions:
        """Validate keyword options and return them layered over *base*.

        ``password`` accepts ``str`` or ``None``; the other options accept
        ``bool`` only.

        Raises:
            InvalidArgumentError: For an unknown key or a value of the wrong
                type. Nothing else has happened yet when this is raised.
        """
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in kwargs.items():
            if key not in known:
                raise InvalidArgumentError(f"{key}: unknown option")
            if key == "password":
                if value is None:
                    value = ""
                elif not isinstance(value, str):
                    raise InvalidArgumentError(f"{key}: unsupported argument type")
            elif not isinstance(value, bool):
                raise InvalidArgumentError(f"{key}: unsupported argument type")
            values[key] = value
        return replace(base or cls(), **values)

    @classmethod
    def from_env(cls) -> OpenOptions:
        """Build options from ``PDF_BRIDGE_*`` environment variables."""
        defaults = cls()
        return cls(
            password=os.environ.get("PDF_BRIDGE_PASSWORD", defaults.password),
            ignore_xref_streams=_env_bool(
                "PDF_BRIDGE_IGNORE_XREF_STREAMS", defaults.ignore_xref_streams
            ),
            suppress_warnings=_env_bool(
                "PDF_BRIDGE_SUPPRESS_WARNINGS", defaults.suppress_warnings
            ),
            attempt_recovery=_env_bool(
                "PDF_BRIDGE_ATTEMPT_RECOVERY", defaults.attempt_recovery
            ),
        )

    def engine_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for :func:`pikepdf.open`."""
        return {
            "password": self.password,
            "ignore_xref_streams": self.ignore_xref_streams,
            "suppress_warnings": self.suppress_warnings,
            "attempt_recovery": self.attempt_recovery,
        }

    def __repr__(self) -> str:
        # Never echo the password into logs
        masked = "'***'" if self.password else "''"
        return (
            f"OpenOptions(password={masked}, "
            f"ignore_xref_streams={self.ignore_xref_streams}, "
            f"suppress_warnings={self.suppress_warnings}, "
            f"attempt_recovery={self.attempt_recovery})"
        )


class CompressionMode(enum.Enum):
    """How stream data is written."""

    PRESERVE = "preserve"  # keep each stream's existing filters
    COMPRESS = "compress"  # decode what can be decoded, then flate everything
    UNCOMPRESS = "uncompress"  # decode what can be decoded, write it plain


@dataclass(frozen=True)
class WriterPolicy:
    """Settings applied when a document is saved."""

    static_id: bool = False
    compression_mode: CompressionMode = CompressionMode.PRESERVE
    repair_pass: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.compression_mode, CompressionMode):
            raise InvalidArgumentError(
                "compression_mode: expected a CompressionMode"
            )

    @classmethod
    def for_save(
        cls, static_id: bool = False, preserve_format_a: bool = False
    ) -> WriterPolicy:
        """Policy for the ``save(static_id=..., preserve_format_a=...)`` flags.

        A static ID also writes streams uncompressed, so that output is
        byte-stable and easy to diff.
        """
        if not isinstance(static_id, bool):
            raise InvalidArgumentError("static_id: unsupported argument type")
        if not isinstance(preserve_format_a, bool):
            raise InvalidArgumentError(
                "preserve_format_a: unsupported argument type"
            )
        mode = CompressionMode.UNCOMPRESS if static_id else CompressionMode.PRESERVE
        return cls(
            static_id=static_id, compression_mode=mode, repair_pass=preserve_format_a
        )

    def engine_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for :meth:`pikepdf.Pdf.save`."""
        kwargs: dict[str, Any] = {"static_id": self.static_id}
        if self.compression_mode is CompressionMode.COMPRESS:
            kwargs["compress_streams"] = True
            kwargs["stream_decode_level"] = pikepdf.StreamDecodeLevel.generalized
        elif self.compression_mode is CompressionMode.UNCOMPRESS:
            kwargs["compress_streams"] = False
            kwargs["stream_decode_level"] = pikepdf.StreamDecodeLevel.generalized
        return kwargs
