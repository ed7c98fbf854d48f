"""Utilities for keeping request data out of log files in a safe shape."""

import re
from urllib.parse import urlparse


def sanitize_for_logging(text: str, max_length: int = 1000) -> str:
    """Sanitize text for safe logging by:
    - Converting non-string input to string
    - Replacing newlines with spaces and removing other control characters
    - Truncating to `max_length` and appending '...[truncated]' if necessary

    Args:
        text (str): The input text to sanitize.
        max_length (int, optional): Maximum allowed length of the sanitized text. Defaults to 1000.

    Returns:
        str: The sanitized text safe for logging.

    """
    if not isinstance(text, str):
        text = str(text)

    text = text.replace("\n", " ").replace("\r", " ")
    text = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", text)

    if len(text) > max_length:
        text = text[:max_length] + "...[truncated]"

    return text


def sanitize_url_for_logging(url: str | None) -> str:
    """Sanitize a render target for logging by dropping query parameters and credentials.

    Loopback renders carry their cache key in the query string, so the key never
    reaches the logs either.

    Args:
        url: The URL to sanitize. If None, returns 'None'.

    Returns:
        str: scheme://host[:port]/path

    """
    if url is None:
        return "None"

    try:
        parsed = urlparse(url)
        safe_url = f"{parsed.scheme}://{parsed.hostname or ''}"
        if parsed.port:
            safe_url += f":{parsed.port}"
        safe_url += parsed.path or "/"
        return sanitize_for_logging(safe_url, max_length=200)
    except Exception:
        # Fallback to generic sanitization if URL parsing fails
        return sanitize_for_logging(url, max_length=200)


def mask_token(token: str | None) -> str:
    """Show only whether a token was given and its last four characters."""
    if not token:
        return "<none>"
    token = token.strip()
    if len(token) <= 8:
        return "****"
    return "****" + sanitize_for_logging(token[-4:], max_length=4)
