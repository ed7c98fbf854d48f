"""
Merging of separately rendered PDF documents.

Used by two-pass PDF generation: the first page is rendered with one footer
margin, the remaining pages with another, and both renders are stitched
together here.
"""

import logging
from io import BytesIO

from pypdf import PdfReader, PdfWriter

logger = logging.getLogger(__name__)


def merge_pdfs(cover: bytes, body: bytes) -> bytes:
    """
    Build a new PDF from the first page of ``cover`` followed by every page of ``body``.

    Args:
        cover: PDF buffer with at least one page. Only page 1 is used.
        body: PDF buffer whose pages are all appended, in order.

    Returns:
        The merged document as bytes.

    Raises:
        pypdf.errors.PdfReadError: If one of the buffers cannot be decoded.
        IndexError: If ``cover`` has no pages.
    """
    cover_reader = PdfReader(BytesIO(cover))
    body_reader = PdfReader(BytesIO(body))

    writer = PdfWriter()
    writer.add_page(cover_reader.pages[0])
    for page in body_reader.pages:
        writer.add_page(page)

    output = BytesIO()
    writer.write(output)
    logger.debug("Merged cover page with %d body page(s)", len(body_reader.pages))
    return output.getvalue()
