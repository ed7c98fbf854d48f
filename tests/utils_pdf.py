from __future__ import annotations

from io import BytesIO

from pypdf import PdfReader, PdfWriter


def make_pdf(*page_widths: float, height: float = 842) -> bytes:
    """
    Build a PDF with one blank page per given width.

    Page widths double as page identities, so tests can check page order
    after a merge without rendering anything.
    """
    writer = PdfWriter()
    for width in page_widths:
        writer.add_blank_page(width=width, height=height)
    output = BytesIO()
    writer.write(output)
    return output.getvalue()


def page_widths(pdf_bytes: bytes) -> list[float]:
    """Widths of all pages of a PDF, in page order."""
    return [float(page.mediabox.width) for page in PdfReader(BytesIO(pdf_bytes)).pages]


def page_count(pdf_bytes: bytes) -> int:
    return len(PdfReader(BytesIO(pdf_bytes)).pages)
