"""Post-save repair pass for documents that claim PDF/A conformance."""

from __future__ import annotations

import logging
import os

import pikepdf

logger = logging.getLogger(__name__)


def repair_pdfa(filename: str | os.PathLike[str], static_id: bool = False) -> bool:
    """Bring XMP metadata back in line with the document info dictionary.

    A generic save can leave /Info and the XMP packet disagreeing, which
    breaks PDF/A validation. Files whose XMP does not declare a PDF/A part
    are left untouched.

    Returns:
        True if the file was rewritten.
    """
    with pikepdf.open(filename, allow_overwriting_input=True) as pdf:
        if "/Metadata" not in pdf.Root:
            logger.debug("No XMP metadata in %s; nothing to repair", filename)
            return False

        meta = pdf.open_metadata(set_pikepdf_as_editor=False, update_docinfo=False)
        if not meta.pdfa_status:
            logger.debug("%s does not claim PDF/A; nothing to repair", filename)
            return False

        with meta:
            meta.load_from_docinfo(pdf.docinfo)
        pdf.save(filename, static_id=static_id)

    logger.info("Repaired PDF/A metadata in %s", filename)
    return True
