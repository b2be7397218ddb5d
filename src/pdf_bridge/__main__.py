"""Entry point for ``python -m pdf_bridge``.

Usage:
    python -m pdf_bridge info document.pdf
    python -m pdf_bridge xref document.pdf --password secret
    python -m pdf_bridge copy in.pdf out.pdf --static-id
    python -m pdf_bridge merge combined.pdf a.pdf b.pdf
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import replace

from pdf_bridge.exceptions import PdfBridgeError
from pdf_bridge.options import OpenOptions
from pdf_bridge.session import PdfSession

logger = logging.getLogger(__name__)


def _open(path: str, options: OpenOptions) -> PdfSession:
    pdf = PdfSession.open(path, options=options)
    for warning in pdf.get_warnings():
        logger.warning("%s: %s", path, warning)
    return pdf


def _cmd_info(args: argparse.Namespace, options: OpenOptions) -> None:
    with _open(args.path, options) as pdf:
        print(f"filename:        {pdf.filename}")
        print(f"pdf_version:     {pdf.pdf_version}")
        print(f"extension_level: {pdf.extension_level}")
        print(f"encrypted:       {'yes' if pdf.is_encrypted else 'no'}")
        print(f"pages:           {len(pdf.pages)}")


def _cmd_xref(args: argparse.Namespace, options: OpenOptions) -> None:
    with _open(args.path, options) as pdf:
        sys.stdout.write(pdf.show_xref_table())


def _cmd_copy(args: argparse.Namespace, options: OpenOptions) -> None:
    with _open(args.source, options) as pdf:
        pdf.save(
            args.destination,
            static_id=args.static_id,
            preserve_format_a=args.preserve_pdfa,
        )
    logger.info("Saved %s", args.destination)


def _cmd_merge(args: argparse.Namespace, options: OpenOptions) -> None:
    with PdfSession.new() as merged:
        for source in args.sources:
            with _open(source, options) as pdf:
                for page in pdf.pages:
                    merged.add_page(page)
                logger.info("Added %d page(s) from %s", len(pdf.pages), source)
        merged.save(args.destination, static_id=args.static_id)
    logger.info("Saved %s", args.destination)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdf_bridge", description="Inspect, copy and merge PDF documents."
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--password", default=None, help="password for encrypted input")
    sub = parser.add_subparsers(dest="command", required=True)

    info = sub.add_parser("info", help="show document properties")
    info.add_argument("path")
    info.set_defaults(func=_cmd_info)

    xref = sub.add_parser("xref", help="print the cross-reference table")
    xref.add_argument("path")
    xref.set_defaults(func=_cmd_xref)

    copy = sub.add_parser("copy", help="open a document and save it again")
    copy.add_argument("source")
    copy.add_argument("destination")
    copy.add_argument("--static-id", action="store_true", help="byte-stable output")
    copy.add_argument(
        "--preserve-pdfa", action="store_true", help="run the PDF/A repair pass"
    )
    copy.set_defaults(func=_cmd_copy)

    merge = sub.add_parser("merge", help="concatenate the pages of several documents")
    merge.add_argument("destination")
    merge.add_argument("sources", nargs="+")
    merge.add_argument("--static-id", action="store_true", help="byte-stable output")
    merge.set_defaults(func=_cmd_merge)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    level = os.environ.get("PDF_BRIDGE_LOG_LEVEL", "INFO").upper()
    if args.verbose:
        level = "DEBUG"
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    try:
        options = OpenOptions.from_env()
    except ValueError as exc:
        logger.error("Configuration error: %s", exc)
        return 1
    if args.password is not None:
        options = replace(options, password=args.password)

    try:
        args.func(args, options)
    except PdfBridgeError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
