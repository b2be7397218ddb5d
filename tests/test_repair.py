"""Unit tests for the PDF/A repair pass."""

from __future__ import annotations

import pikepdf
import pytest

from conftest import make_pdf
from pdf_bridge.repair import repair_pdfa
from pdf_bridge.session import PdfSession


@pytest.fixture
def pdfa_path(tmp_path):
    """One-page file whose XMP claims PDF/A-2B."""
    path = tmp_path / "pdfa.pdf"
    pdf = pikepdf.new()
    pdf.add_blank_page()
    with pdf.open_metadata(set_pikepdf_as_editor=False) as meta:
        meta["pdfaid:part"] = "2"
        meta["pdfaid:conformance"] = "B"
        meta["dc:title"] = "Draft"
    pdf.save(path)
    return path


class TestRepairPdfa:
    def test_plain_file_untouched(self, tmp_path):
        path = tmp_path / "plain.pdf"
        path.write_bytes(make_pdf())
        before = path.read_bytes()

        assert repair_pdfa(path) is False
        assert path.read_bytes() == before

    def test_xmp_without_pdfa_claim_untouched(self, tmp_path):
        path = tmp_path / "xmp.pdf"
        pdf = pikepdf.new()
        pdf.add_blank_page()
        with pdf.open_metadata(set_pikepdf_as_editor=False) as meta:
            meta["dc:title"] = "Not archival"
        pdf.save(path)
        before = path.read_bytes()

        assert repair_pdfa(str(path)) is False
        assert path.read_bytes() == before

    def test_metadata_synced_from_docinfo(self, pdfa_path):
        with pikepdf.open(pdfa_path, allow_overwriting_input=True) as pdf:
            pdf.docinfo["/Title"] = "Final"
            pdf.save(pdfa_path)

        assert repair_pdfa(pdfa_path) is True

        with pikepdf.open(pdfa_path) as pdf:
            meta = pdf.open_metadata()
            assert meta["dc:title"] == "Final"
            assert meta.pdfa_status == "2B"


class TestSaveWithRepair:
    def test_save_runs_repair(self, tmp_path, pdfa_path):
        out = tmp_path / "out.pdf"
        with PdfSession.open(pdfa_path) as pdf:
            pdf.engine.docinfo["/Title"] = "Saved"
            pdf.save(out, preserve_format_a=True)

        with pikepdf.open(out) as result:
            assert result.open_metadata()["dc:title"] == "Saved"

    def test_save_without_repair_leaves_xmp_stale(self, tmp_path, pdfa_path):
        out = tmp_path / "out.pdf"
        with PdfSession.open(pdfa_path) as pdf:
            pdf.engine.docinfo["/Title"] = "Saved"
            pdf.save(out)

        with pikepdf.open(out) as result:
            assert result.open_metadata()["dc:title"] == "Draft"
