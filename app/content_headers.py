"""Helpers for download file names and the Content-Disposition header."""

import re
from urllib.parse import quote, urlparse

_NON_ASCII_OR_QUOTE = re.compile(r'[^\x20-\x7e]|["\\]')


def derive_filename(url: str, filename: str | None = None, extension: str = ".pdf") -> str:
    """
    Work out the download name for a rendered document.

    A caller supplied ``filename`` wins. Otherwise the last path segment of
    ``url`` is used without its extension, or the hostname when the path is
    the root. ``extension`` is appended unless the name already ends with it.

    >>> derive_filename("http://example.com/reports/q1.data")
    'q1.pdf'
    >>> derive_filename("http://example.com/")
    'example.com.pdf'
    """
    if not filename:
        parsed = urlparse(url)
        filename = parsed.hostname or ""
        if parsed.path.strip("/"):
            segment = [part for part in parsed.path.split("/") if part][-1]
            dot = segment.rfind(".")
            filename = segment[:dot] if dot > 0 else segment

    if not filename.lower().endswith(extension.lower()):
        filename += extension
    return filename


def content_disposition(filename: str, disposition_type: str = "attachment") -> str:
    """
    Build a Content-Disposition value.

    Names that are not plain ASCII get an ASCII fallback plus an RFC 5987
    ``filename*`` parameter.
    """
    if not _NON_ASCII_OR_QUOTE.search(filename):
        return f'{disposition_type}; filename="{filename}"'

    fallback = _NON_ASCII_OR_QUOTE.sub("?", filename)
    return f"{disposition_type}; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"
