"""Bridge between host Python values and pikepdf objects.

Three pieces live here:

* :class:`ObjectRef`, a weak ``(session, objid, gen)`` address that always
  resolves through the owning session, never through a held pointer.
* :func:`encode`, which turns host values into PDF objects. It validates the
  whole value before building anything, so a failed encode leaves the
  document untouched.
* :class:`ForeignCopier`, which deep-copies an object graph from one
  document into another, reallocating every indirect object it reaches.
"""

from __future__ import annotations

import itertools
import logging
import math
import weakref
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import pikepdf

from pdf_bridge.exceptions import InvalidArgumentError, SessionClosedError

if TYPE_CHECKING:
    from pdf_bridge.session import PdfSession

logger = logging.getLogger(__name__)

# Keys pikepdf manages itself when stream data is written
_STREAM_ENCODING_KEYS = ("/Length", "/Filter", "/DecodeParms")

# Attributes a page may inherit from its ancestors in the page tree
INHERITABLE_PAGE_KEYS = ("/Resources", "/MediaBox", "/CropBox", "/Rotate")

# PDF integers are signed 64-bit in the engine
_INT_MIN, _INT_MAX = -(2**63), 2**63 - 1

_session_ids = itertools.count(1)
_live_sessions: weakref.WeakValueDictionary[int, PdfSession] = (
    weakref.WeakValueDictionary()
)


def register_session(session: PdfSession) -> int:
    """Register a newly opened session and return its unique id."""
    session_id = next(_session_ids)
    _live_sessions[session_id] = session
    return session_id


def unregister_session(session_id: int) -> None:
    _live_sessions.pop(session_id, None)


def lookup_session(session_id: int) -> PdfSession:
    """Return the live session with *session_id*.

    Raises:
        SessionClosedError: If that session has ended.
    """
    session = _live_sessions.get(session_id)
    if session is None:
        raise SessionClosedError(f"document session {session_id} has ended")
    return session


@dataclass(frozen=True)
class ObjectRef:
    """Address of an indirect object inside one document session."""

    session_id: int
    objid: int
    gen: int = 0

    @property
    def objgen(self) -> tuple[int, int]:
        return self.objid, self.gen

    def resolve(self) -> Any:
        """Return the current handle for this reference.

        Raises:
            SessionClosedError: If the owning session has ended.
            NotFoundError: If no live object exists at this address.
        """
        return lookup_session(self.session_id).resolve(self)

    def __str__(self) -> str:
        return f"{self.objid} {self.gen} R"


@dataclass(frozen=True)
class StreamValue:
    """Host-side description of a stream: raw data plus its dictionary."""

    data: bytes
    dictionary: Mapping[str, Any] = field(default_factory=dict)


def _is_name_key(key: Any) -> bool:
    return isinstance(key, str) and len(key) > 1 and key.startswith("/")


def _validate(value: Any, session: PdfSession | None, path: str, seen: set[int]) -> None:
    """Raise InvalidArgumentError if *value* cannot be encoded."""
    if value is None or isinstance(value, bool):
        return
    if isinstance(value, int):
        if not _INT_MIN <= value <= _INT_MAX:
            raise InvalidArgumentError(
                f"{path}: integer {value} does not fit in a 64-bit PDF integer"
            )
        return
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise InvalidArgumentError(f"{path}: PDF numbers must be finite")
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidArgumentError(f"{path}: PDF numbers must be finite")
        return
    if isinstance(value, (str, bytes, bytearray, memoryview)):
        return
    if isinstance(value, ObjectRef):
        if session is None:
            raise InvalidArgumentError(
                f"{path}: object references need an owning document"
            )
        if value.session_id != session.session_id:
            raise InvalidArgumentError(
                f"{path}: reference {value} belongs to another document"
            )
        handle = session.resolve(value)
        if not isinstance(handle, pikepdf.Object):
            raise InvalidArgumentError(
                f"{path}: reference {value} points at a scalar the engine "
                "cannot refer to indirectly"
            )
        return
    if isinstance(value, pikepdf.Object):
        if value.is_indirect and (
            session is None or not value.is_owned_by(session.engine)
        ):
            raise InvalidArgumentError(
                f"{path}: indirect object belongs to another document; "
                "copy it with copy_foreign() first"
            )
        return
    if isinstance(value, StreamValue):
        if session is None:
            raise InvalidArgumentError(f"{path}: streams need an owning document")
        if not isinstance(value.data, (bytes, bytearray, memoryview)):
            raise InvalidArgumentError(f"{path}: stream data must be bytes")
        _validate(value.dictionary, session, f"{path}.dictionary", seen)
        return
    if isinstance(value, (Mapping, list, tuple)):
        if id(value) in seen:
            raise InvalidArgumentError(f"{path}: recursive structure")
        seen.add(id(value))
        if isinstance(value, Mapping):
            for key, item in value.items():
                if not _is_name_key(key):
                    raise InvalidArgumentError(
                        f"{path}: dictionary keys must be names like '/Type' "
                        f"(got {key!r})"
                    )
                _validate(item, session, f"{path}[{key!r}]", seen)
        else:
            for index, item in enumerate(value):
                _validate(item, session, f"{path}[{index}]", seen)
        seen.discard(id(value))
        return
    raise InvalidArgumentError(
        f"{path}: cannot encode {type(value).__name__} as a PDF object"
    )


def _build(value: Any, session: PdfSession | None) -> Any:
    if value is None or isinstance(value, (bool, int, float, Decimal)):
        return value
    if isinstance(value, pikepdf.Object):
        return value
    if isinstance(value, str):
        return pikepdf.String(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return pikepdf.String(bytes(value))
    if isinstance(value, ObjectRef):
        assert session is not None
        return session.resolve(value)
    if isinstance(value, StreamValue):
        assert session is not None
        entries = {str(k): _build(v, session) for k, v in value.dictionary.items()}
        stream = pikepdf.Stream(session.engine, bytes(value.data))
        for key, item in entries.items():
            if key not in _STREAM_ENCODING_KEYS:
                stream[key] = item
        return stream
    if isinstance(value, Mapping):
        return pikepdf.Dictionary({str(k): _build(v, session) for k, v in value.items()})
    return pikepdf.Array([_build(item, session) for item in value])


def encode(value: Any, session: PdfSession | None = None) -> Any:
    """Encode a host value as a PDF object.

    Scalars (``None``, ``bool``, ``int``, ``float``, ``Decimal``) come back
    as themselves, since pikepdf stores them directly. ``str`` and bytes
    become strings, sequences become arrays, mappings with name keys become
    dictionaries. :class:`ObjectRef` and :class:`StreamValue` need the
    owning *session*.

    The whole value is validated before any object is created.

    Raises:
        InvalidArgumentError: If any part of *value* cannot be encoded.
    """
    _validate(value, session, "value", set())
    return _build(value, session)


def to_python(obj: Any, session: PdfSession | None = None) -> Any:
    """Decode a PDF object into plain Python values for inspection.

    Names become ``str`` (``"/Type"``), strings become ``bytes``, streams
    become :class:`StreamValue` with decoded data. Indirect objects nested
    inside *obj* are not followed; they appear as :class:`ObjectRef` when
    *session* is given, else as ``(objid, gen)`` tuples.
    """
    return _to_python(obj, session, top=True)


def _to_python(obj: Any, session: PdfSession | None, top: bool) -> Any:
    if not isinstance(obj, pikepdf.Object):
        return obj
    if not top and obj.is_indirect:
        objid, gen = obj.objgen
        if session is not None:
            return ObjectRef(session.session_id, objid, gen)
        return objid, gen
    if isinstance(obj, pikepdf.Name):
        return str(obj)
    if isinstance(obj, pikepdf.String):
        return bytes(obj)
    if isinstance(obj, pikepdf.Array):
        return [_to_python(item, session, top=False) for item in obj]
    if isinstance(obj, pikepdf.Stream):
        dictionary = {
            key: _to_python(item, session, top=False)
            for key, item in obj.stream_dict.items()
            if key not in _STREAM_ENCODING_KEYS
        }
        return StreamValue(data=obj.read_bytes(), dictionary=dictionary)
    if isinstance(obj, pikepdf.Dictionary):
        return {key: _to_python(item, session, top=False) for key, item in obj.items()}
    return obj


def _is_page_tree_node(obj: Any) -> bool:
    return isinstance(obj, pikepdf.Dictionary) and obj.get("/Type") in (
        pikepdf.Name.Page,
        pikepdf.Name.Pages,
    )


def inherited_page_attributes(page: pikepdf.Dictionary) -> dict[str, Any]:
    """Collect inheritable attributes *page* lacks but an ancestor defines."""
    found: dict[str, Any] = {}
    missing = [key for key in INHERITABLE_PAGE_KEYS if key not in page]
    seen: set[tuple[int, int]] = set()
    node = page.get("/Parent")
    while missing and isinstance(node, pikepdf.Dictionary):
        if node.is_indirect:
            if node.objgen in seen:
                break
            seen.add(node.objgen)
        for key in list(missing):
            if key in node:
                found[key] = node[key]
                missing.remove(key)
        node = node.get("/Parent")
    return found


class ForeignCopier:
    """Deep-copy objects from other documents into *target*.

    Every indirect object reached is allocated afresh in *target*; the
    visited map (keyed by the source ``(objid, gen)``) makes shared and
    cyclic references come out shared and cyclic in the copy. Page and
    page-tree nodes other than the page being copied become null, so a
    copy never drags in another document's page tree.

    Stream data is read from the source before anything is allocated, so a
    source that fails to read leaves *target* untouched.
    """

    def __init__(self, target: pikepdf.Pdf) -> None:
        self._target = target
        self._visited: dict[tuple[int, int], Any] = {}
        self._raw_data: dict[tuple[int, int], bytes] = {}

    @property
    def copied_count(self) -> int:
        return len(self._visited)

    def copy_page(self, page: pikepdf.Dictionary) -> pikepdf.Dictionary:
        """Copy a page dictionary, detached from its source page tree."""
        own = [(key, item) for key, item in page.items() if key != "/Parent"]
        inherited = inherited_page_attributes(page)
        skip = {page.objgen} if page.is_indirect else set()
        self._preload([item for _, item in own] + list(inherited.values()), skip)

        new_page = self._target.make_indirect(pikepdf.Dictionary())
        if page.is_indirect:
            self._visited[page.objgen] = new_page
        for key, item in own:
            new_page[key] = self._copy(item)
        for key, item in inherited.items():
            new_page[key] = self._copy(item)
        return new_page

    def copy(self, obj: Any) -> Any:
        """Return a copy of *obj* that belongs to the target document."""
        self._preload([obj], set())
        return self._copy(obj)

    def _read_raw(self, stream: pikepdf.Stream) -> bytes:
        return stream.read_raw_bytes()

    def _preload(self, roots: list[Any], seen: set[tuple[int, int]]) -> None:
        """Read the raw data of every stream reachable from *roots*."""
        pending = list(roots)
        while pending:
            obj = pending.pop()
            if not isinstance(obj, pikepdf.Object):
                continue
            if obj.is_indirect:
                key = obj.objgen
                if key in seen or key in self._visited or _is_page_tree_node(obj):
                    continue
                seen.add(key)
            if isinstance(obj, pikepdf.Stream):
                self._raw_data[obj.objgen] = self._read_raw(obj)
                pending.extend(obj.stream_dict.values())
            elif isinstance(obj, pikepdf.Dictionary):
                pending.extend(obj.values())
            elif isinstance(obj, pikepdf.Array):
                pending.extend(obj)

    def _copy(self, obj: Any) -> Any:
        if not isinstance(obj, pikepdf.Object):
            return obj
        if obj.is_indirect:
            return self._copy_indirect(obj)
        return self._copy_direct(obj)

    def _copy_indirect(self, obj: pikepdf.Object) -> Any:
        key = obj.objgen
        if key in self._visited:
            return self._visited[key]
        if _is_page_tree_node(obj):
            logger.debug("Not crossing page boundary at %d %d R", *key)
            return None

        if isinstance(obj, pikepdf.Stream):
            raw = self._raw_data.pop(key, None)
            if raw is None:
                raw = self._read_raw(obj)
            new_stream = pikepdf.Stream(self._target, b"")
            self._visited[key] = new_stream
            for name, item in obj.stream_dict.items():
                if name not in _STREAM_ENCODING_KEYS:
                    new_stream[name] = self._copy(item)
            filter_ = obj.stream_dict.get("/Filter")
            if filter_ is None:
                new_stream.write(raw)
            else:
                decode_parms = obj.stream_dict.get("/DecodeParms")
                new_stream.write(
                    raw,
                    filter=self._copy(filter_),
                    decode_parms=self._copy(decode_parms),
                )
            return new_stream

        if isinstance(obj, pikepdf.Dictionary):
            new_dict = self._target.make_indirect(pikepdf.Dictionary())
            self._visited[key] = new_dict
            for name, item in obj.items():
                new_dict[name] = self._copy(item)
            return new_dict

        if isinstance(obj, pikepdf.Array):
            new_array = self._target.make_indirect(pikepdf.Array())
            self._visited[key] = new_array
            for item in obj:
                new_array.append(self._copy(item))
            return new_array

        new_obj = self._target.make_indirect(self._copy_direct(obj))
        self._visited[key] = new_obj
        return new_obj

    def _copy_direct(self, obj: pikepdf.Object) -> Any:
        if isinstance(obj, pikepdf.Dictionary):
            return pikepdf.Dictionary({name: self._copy(item) for name, item in obj.items()})
        if isinstance(obj, pikepdf.Array):
            return pikepdf.Array([self._copy(item) for item in obj])
        if isinstance(obj, pikepdf.Name):
            return pikepdf.Name(str(obj))
        if isinstance(obj, pikepdf.String):
            return pikepdf.String(bytes(obj))
        return obj
