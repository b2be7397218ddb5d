"""Document sessions: one open PDF and the object graph it owns."""

from __future__ import annotations

import contextlib
import io
import logging
import os
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

import pikepdf

from pdf_bridge.classifier import engine_errors
from pdf_bridge.exceptions import (
    ArgumentCountError,
    InvalidArgumentError,
    NotFoundError,
    SessionClosedError,
)
from pdf_bridge.objects import (
    ForeignCopier,
    ObjectRef,
    StreamValue,
    encode,
    lookup_session,
    register_session,
    to_python,
    unregister_session,
)
from pdf_bridge.options import OpenOptions, WriterPolicy
from pdf_bridge.repair import repair_pdfa
from pdf_bridge.source import fspath_str, resolve

logger = logging.getLogger(__name__)

EMPTY_FILENAME = "empty PDF"

_SCALAR_TYPES = (bool, int, float, Decimal)


def _check_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"{name}: expected int")
    return value


def _is_null(handle: Any) -> bool:
    if handle is None:
        return True
    return (
        isinstance(handle, pikepdf.Object)
        and handle._type_code == pikepdf.ObjectType.null
    )


class PdfSession:
    """In-memory representation of one PDF document.

    Create sessions with :meth:`new` or :meth:`open`; they are context
    managers and close their engine document on exit. A session is not
    internally synchronised: mutate it from one thread at a time.

    Usage::

        with PdfSession.open("in.pdf", password="secret") as pdf:
            ref = pdf.make_indirect({"/Type": pikepdf.Name.Example})
            pdf.save("out.pdf", static_id=True)
    """

    def __init__(self, pdf: pikepdf.Pdf, filename: str) -> None:
        self._pdf = pdf
        self._filename = filename
        self._warnings: list[str] = []
        self._generations: dict[int, int] = {}
        self._closed = False
        self._source_path: str | None = None
        self.session_id = register_session(self)

    # -- Lifecycle ------------------------------------------------------------

    @classmethod
    def new(cls) -> PdfSession:
        """Create a new, empty PDF. Engine warnings are suppressed."""
        with engine_errors():
            pdf = pikepdf.new()
        session = cls(pdf, EMPTY_FILENAME)
        logger.debug("Created empty document (session %d)", session.session_id)
        return session

    @classmethod
    def open(cls, *args: Any, **kwargs: Any) -> PdfSession:
        """Open an existing PDF from a path or a binary stream.

        Takes exactly one positional argument, the source. Keyword options
        are those of :class:`~pdf_bridge.options.OpenOptions`; an
        ``options=OpenOptions(...)`` keyword may supply a base set that the
        other keywords override.

        :param source: Path-like object, or binary stream with read and seek
        :param password: User or owner password, if the file is encrypted
        :param ignore_xref_streams: If True, ignore cross-reference streams
        :param suppress_warnings: If True (default), warnings are collected
            for :meth:`get_warnings` instead of being printed
        :param attempt_recovery: If True (default), try to recover from
            damaged cross-reference data
        :raises ArgumentCountError: For anything but one positional argument
        :raises InvalidArgumentError: For a bad source or option
        :raises PasswordError: If the password failed to open the file
        :raises PDFError: If for other reasons the file could not be opened
        """
        if len(args) < 1:
            raise ArgumentCountError("not enough arguments")
        if len(args) > 1:
            raise ArgumentCountError("too many arguments")

        base = kwargs.pop("options", None)
        if base is not None and not isinstance(base, OpenOptions):
            raise InvalidArgumentError("options: unsupported argument type")
        options = OpenOptions.from_kwargs(kwargs, base=base)

        source = resolve(args[0])
        logger.debug("Opening %s with %r", source.filename, options)
        with engine_errors():
            pdf = pikepdf.open(source.engine_input(), **options.engine_kwargs())

        session = cls(pdf, source.filename)
        session._source_path = source.path
        logger.debug(
            "Opened %s (PDF %s, %d page(s), session %d)",
            source.filename,
            pdf.pdf_version,
            len(pdf.pages),
            session.session_id,
        )
        return session

    def close(self) -> None:
        """Release the document. Every reference into it becomes invalid."""
        if self._closed:
            return
        self._closed = True
        unregister_session(self.session_id)
        self._pdf.close()
        logger.debug("Closed session %d (%s)", self.session_id, self._filename)

    def __enter__(self) -> PdfSession:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<PdfSession filename={self._filename!r}>"

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError(
                f"document session {self.session_id} is closed"
            )

    # -- Introspection --------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def engine(self) -> pikepdf.Pdf:
        """The underlying :class:`pikepdf.Pdf`."""
        self._ensure_open()
        return self._pdf

    @property
    def filename(self) -> str:
        """Source path, ``"memory"`` for streams, ``"empty PDF"`` for new."""
        return self._filename

    @property
    def pdf_version(self) -> str:
        """The PDF standard version, such as ``'1.7'``."""
        self._ensure_open()
        return self._pdf.pdf_version

    @property
    def extension_level(self) -> int:
        self._ensure_open()
        return self._pdf.extension_level

    @property
    def is_encrypted(self) -> bool:
        self._ensure_open()
        return self._pdf.is_encrypted

    @property
    def root(self) -> pikepdf.Dictionary:
        """The /Root (document catalog) object."""
        self._ensure_open()
        return self._pdf.Root

    @property
    def trailer(self) -> pikepdf.Dictionary:
        self._ensure_open()
        return self._pdf.trailer

    @property
    def pages(self) -> list[pikepdf.Page]:
        """Snapshot of the page list, in document order."""
        self._ensure_open()
        return list(self._pdf.pages)

    @property
    def page_refs(self) -> list[ObjectRef]:
        self._ensure_open()
        return [self._ref(page.obj) for page in self._pdf.pages]

    def get_warnings(self) -> list[str]:
        """Return and clear the warnings collected so far."""
        self._ensure_open()
        self._warnings.extend(self._pdf.get_warnings())
        drained, self._warnings = self._warnings, []
        return drained

    def show_xref_table(self) -> str:
        """Return the engine's listing of the cross-reference table."""
        self._ensure_open()
        buf = io.StringIO()
        handler = logging.StreamHandler(buf)
        handler.setFormatter(logging.Formatter("%(message)s"))
        core_logger = logging.getLogger("pikepdf._core")
        previous_level, previous_propagate = core_logger.level, core_logger.propagate
        core_logger.addHandler(handler)
        core_logger.setLevel(logging.INFO)
        core_logger.propagate = False
        try:
            with contextlib.redirect_stdout(buf), engine_errors():
                self._pdf.show_xref_table()
        finally:
            core_logger.removeHandler(handler)
            core_logger.setLevel(previous_level)
            core_logger.propagate = previous_propagate
        return buf.getvalue()

    # -- Objects --------------------------------------------------------------

    def _ref(self, handle: pikepdf.Object) -> ObjectRef:
        objid, gen = handle.objgen
        self._generations[objid] = gen
        return ObjectRef(self.session_id, objid, gen)

    def _lookup(self, objid: int, gen: int) -> Any:
        if objid <= 0 or gen < 0:
            raise NotFoundError(objid, gen)
        with engine_errors():
            handle = self._pdf.get_object((objid, gen))
        if _is_null(handle):
            raise NotFoundError(objid, gen)
        return handle

    def get_object_by_id(self, objid: int, gen: int | None = None) -> Any:
        """Return the current handle of object *objid*.

        The generation defaults to the one this session allocated the
        object with, or 0.

        Raises:
            NotFoundError: If no live object exists at that number.
        """
        self._ensure_open()
        objid = _check_int("objid", objid)
        if gen is None:
            gen = self._generations.get(objid, 0)
        gen = _check_int("gen", gen)
        return self._lookup(objid, gen)

    def resolve(self, ref: ObjectRef) -> Any:
        """Return the current handle of *ref*, which must belong here."""
        self._ensure_open()
        if not isinstance(ref, ObjectRef):
            raise InvalidArgumentError("expected an ObjectRef")
        if ref.session_id != self.session_id:
            raise InvalidArgumentError(
                f"reference {ref} belongs to another document"
            )
        return self._lookup(ref.objid, ref.gen)

    def decode(self, handle: Any) -> Any:
        """Plain-Python view of *handle*; see :func:`pdf_bridge.objects.to_python`."""
        self._ensure_open()
        if isinstance(handle, ObjectRef):
            handle = self.resolve(handle)
        return to_python(handle, self)

    def make_indirect(self, value: Any) -> ObjectRef:
        """Allocate a new indirect object holding *value*.

        *value* may be a pikepdf object or any host value :func:`encode`
        accepts. Objects already indirect in this document are returned
        as-is. Numbers, booleans and null cannot be made indirect: pikepdf
        hands them back as plain Python values with no object number.

        Raises:
            InvalidArgumentError: If *value* cannot be encoded, is a scalar,
                or is an indirect object of another document.
        """
        self._ensure_open()
        if isinstance(value, ObjectRef):
            self.resolve(value)
            return value
        if isinstance(value, pikepdf.Page):
            value = value.obj
        if isinstance(value, pikepdf.Object) and value.is_indirect:
            if value.is_owned_by(self._pdf):
                return self._ref(value)
            raise InvalidArgumentError(
                "object belongs to another document; use copy_foreign()"
            )
        if value is None or isinstance(value, _SCALAR_TYPES):
            raise InvalidArgumentError(
                f"cannot make {type(value).__name__} indirect"
            )

        encoded = encode(value, self)
        with engine_errors():
            handle = encoded if encoded.is_indirect else self._pdf.make_indirect(encoded)
        ref = self._ref(handle)
        logger.debug("Allocated %s in session %d", ref, self.session_id)
        return ref

    def replace_object(self, objid: int, gen: int, value: Any) -> None:
        """Overwrite object ``(objid, gen)`` in place with *value*.

        Every existing reference to ``(objid, gen)`` sees the new value; no
        other object changes.

        Raises:
            NotFoundError: If the object does not exist.
            InvalidArgumentError: If *value* is indirect, a stream, a scalar,
                or cannot be encoded.
        """
        self._ensure_open()
        objid = _check_int("objid", objid)
        gen = _check_int("gen", gen)
        self._lookup(objid, gen)

        if value is None or isinstance(value, _SCALAR_TYPES):
            raise InvalidArgumentError(
                f"cannot replace an object with {type(value).__name__}"
            )
        if isinstance(value, (ObjectRef, StreamValue)) or (
            isinstance(value, pikepdf.Object) and value.is_indirect
        ):
            raise InvalidArgumentError("replacement value must be a direct object")

        encoded = encode(value, self)
        with engine_errors():
            self._pdf._replace_object((objid, gen), encoded)
        self._generations[objid] = gen
        logger.debug("Replaced %d %d R in session %d", objid, gen, self.session_id)

    def copy_foreign(self, obj: Any) -> ObjectRef:
        """Deep-copy an indirect object from another document into this one."""
        self._ensure_open()
        if isinstance(obj, ObjectRef):
            obj = lookup_session(obj.session_id).resolve(obj)
        if isinstance(obj, pikepdf.Page):
            obj = obj.obj
        if not isinstance(obj, pikepdf.Object) or not obj.is_indirect:
            raise InvalidArgumentError("expected an indirect object")
        if obj.is_owned_by(self._pdf):
            return self._ref(obj)
        if isinstance(obj, pikepdf.Dictionary) and obj.get("/Type") == pikepdf.Name.Pages:
            raise InvalidArgumentError("cannot copy a page tree node")

        copier = ForeignCopier(self._pdf)
        with engine_errors():
            if isinstance(obj, pikepdf.Dictionary) and obj.get("/Type") == pikepdf.Name.Page:
                copied = copier.copy_page(obj)
            else:
                copied = copier.copy(obj)
        logger.debug(
            "Copied foreign object %d %d R (%d object(s))",
            *obj.objgen,
            copier.copied_count,
        )
        return self._ref(copied)

    # -- Pages ----------------------------------------------------------------

    def _page_dictionary(self, page: Any) -> Any:
        if isinstance(page, ObjectRef):
            return lookup_session(page.session_id).resolve(page)
        if isinstance(page, pikepdf.Page):
            return page.obj
        return page

    def add_page(self, page: Any, first: bool = False) -> ObjectRef:
        """Attach a page to this PDF.

        The page may be newly constructed or come from another document, in
        which case it is deep-copied with all the objects it uses. A copy
        never reaches into the source's other pages: references to them,
        such as a link annotation's ``/Dest``, become null in the copy, even
        if the linked page is added to this document as well.

        :param page: ``pikepdf.Page``, page dictionary, mapping or ObjectRef
        :param first: If True, prepend before the first page; if False
            append after the last page
        :returns: Reference to the page as stored in this document
        """
        self._ensure_open()
        if not isinstance(first, bool):
            raise InvalidArgumentError("first: unsupported argument type")

        page_obj = self._page_dictionary(page)
        if isinstance(page_obj, Mapping) and not isinstance(page_obj, pikepdf.Object):
            # Checked before encoding, which may allocate nested streams
            page_type = page_obj.get("/Type")
            if not (isinstance(page_type, pikepdf.Name) and page_type == pikepdf.Name.Page):
                raise InvalidArgumentError("page dictionary must have /Type /Page")
            page_obj = encode(page_obj, self)
        if not isinstance(page_obj, pikepdf.Dictionary):
            raise InvalidArgumentError("page must be a page dictionary")
        if page_obj.get("/Type") != pikepdf.Name.Page:
            raise InvalidArgumentError("page dictionary must have /Type /Page")

        with engine_errors():
            if page_obj.is_indirect and not page_obj.is_owned_by(self._pdf):
                copier = ForeignCopier(self._pdf)
                page_obj = copier.copy_page(page_obj)
                logger.debug("Copied foreign page (%d object(s))", copier.copied_count)
            if first:
                self._pdf.pages.insert(0, pikepdf.Page(page_obj))
                inserted = self._pdf.pages[0]
            else:
                self._pdf.pages.append(pikepdf.Page(page_obj))
                inserted = self._pdf.pages[-1]
        return self._ref(inserted.obj)

    def remove_page(self, page: Any) -> None:
        """Remove a page from the page list.

        Objects the page used are not deleted; the writer drops whatever is
        no longer reachable.

        Raises:
            NotFoundError: If the page is not in this document.
        """
        self._ensure_open()
        page_obj = self._page_dictionary(page)
        if not isinstance(page_obj, pikepdf.Object) or not page_obj.is_indirect:
            raise InvalidArgumentError("page must be an indirect page object")
        objid, gen = page_obj.objgen
        if page_obj.is_owned_by(self._pdf):
            for index, existing in enumerate(self._pdf.pages):
                if existing.obj.objgen == (objid, gen):
                    with engine_errors():
                        del self._pdf.pages[index]
                    return
        raise NotFoundError(objid, gen, detail="page is not in this document")

    # -- Output ---------------------------------------------------------------

    def _is_source_file(self, path: str) -> bool:
        if self._source_path is None or not os.path.exists(path):
            return False
        try:
            return os.path.samefile(path, self._source_path)
        except OSError:
            return False

    def save(
        self,
        destination: Any,
        static_id: bool = False,
        preserve_format_a: bool = False,
        *,
        policy: WriterPolicy | None = None,
    ) -> None:
        """Save the document.

        :param destination: Path-like object or writable binary stream
        :param static_id: Write deterministic IDs and uncompressed streams,
            for byte-stable output
        :param preserve_format_a: Run the PDF/A repair pass on the saved
            file (path destinations only)
        :param policy: Explicit writer policy; overrides the two flags
        """
        self._ensure_open()
        if policy is None:
            policy = WriterPolicy.for_save(static_id, preserve_format_a)
        elif not isinstance(policy, WriterPolicy):
            raise InvalidArgumentError("policy: unsupported argument type")

        path: str | None = None
        if hasattr(destination, "write"):
            if isinstance(destination, io.TextIOBase):
                raise InvalidArgumentError("stream must be binary and writable")
            if policy.repair_pass:
                raise InvalidArgumentError(
                    "preserve_format_a requires a path destination"
                )
            target: Any = destination
        else:
            path = fspath_str(destination)
            if self._is_source_file(path):
                raise InvalidArgumentError(
                    f"cannot save over {path}, the file this document was opened from"
                )
            target = path

        logger.debug(
            "Saving session %d to %s (%s)",
            self.session_id,
            path or "stream",
            policy,
        )
        with engine_errors():
            self._pdf.save(target, **policy.engine_kwargs())

        if policy.repair_pass:
            assert path is not None
            repair_pdfa(path, static_id=policy.static_id)


def new_pdf() -> PdfSession:
    """Create a new, empty PDF session."""
    return PdfSession.new()


def open_pdf(*args: Any, **kwargs: Any) -> PdfSession:
    """Open a PDF session; see :meth:`PdfSession.open`."""
    return PdfSession.open(*args, **kwargs)
