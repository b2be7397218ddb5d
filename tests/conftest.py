"""Shared pytest fixtures for pdf-bridge tests."""

from __future__ import annotations

import io

import pikepdf
import pytest

from pdf_bridge.session import PdfSession

# Standard page sizes in points
A4_WIDTH, A4_HEIGHT = 595.28, 841.89
LETTER_WIDTH, LETTER_HEIGHT = 612.0, 792.0

PASSWORD = "secret"


def make_pdf(width: float = A4_WIDTH, height: float = A4_HEIGHT, pages: int = 1) -> bytes:
    """Create a minimal blank PDF with the given dimensions."""
    pdf = pikepdf.new()
    for _ in range(pages):
        pdf.add_blank_page(page_size=(width, height))

    buf = io.BytesIO()
    pdf.save(buf)
    return buf.getvalue()


def make_encrypted_pdf(password: str = PASSWORD) -> bytes:
    pdf = pikepdf.new()
    pdf.add_blank_page(page_size=(LETTER_WIDTH, LETTER_HEIGHT))
    buf = io.BytesIO()
    pdf.save(buf, encryption=pikepdf.Encryption(owner=password, user=password))
    return buf.getvalue()


def damage_xref(data: bytes) -> bytes:
    """Point startxref at nonsense so the engine has to rebuild the xref."""
    idx = data.rindex(b"startxref")
    return data[:idx] + b"startxref\n999999\n%%EOF\n"


@pytest.fixture
def a4_pdf() -> bytes:
    """Single-page A4 PDF."""
    return make_pdf()


@pytest.fixture
def multipage_pdf() -> bytes:
    """Three-page A4 PDF."""
    return make_pdf(pages=3)


@pytest.fixture
def encrypted_pdf() -> bytes:
    """Single-page PDF encrypted with user and owner password ``secret``."""
    return make_encrypted_pdf()


@pytest.fixture
def damaged_pdf(a4_pdf) -> bytes:
    """A4 PDF whose cross-reference offset is wrong."""
    return damage_xref(a4_pdf)


@pytest.fixture
def pdf_path(tmp_path, multipage_pdf):
    """Three-page PDF on disk."""
    path = tmp_path / "input.pdf"
    path.write_bytes(multipage_pdf)
    return path


@pytest.fixture
def session():
    """An empty document session, closed after the test."""
    with PdfSession.new() as pdf:
        yield pdf


@pytest.fixture
def letter_source():
    """An open session holding one US Letter page with a font resource."""
    with PdfSession.new() as pdf:
        page = pdf.engine.add_blank_page(page_size=(LETTER_WIDTH, LETTER_HEIGHT))
        font = pdf.engine.make_indirect(
            pikepdf.Dictionary(
                Type=pikepdf.Name.Font,
                Subtype=pikepdf.Name.Type1,
                BaseFont=pikepdf.Name.Helvetica,
            )
        )
        page.obj.Resources = pikepdf.Dictionary(
            Font=pikepdf.Dictionary(F1=font)
        )
        page.obj.Contents = pikepdf.Stream(
            pdf.engine, b"BT /F1 12 Tf 72 720 Td (Letter) Tj ET"
        )
        yield pdf
