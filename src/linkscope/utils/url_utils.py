"""URL normalization utilities."""

import re
from urllib.parse import urlparse

from ..core.errors import LinkValidationError

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def normalize_url(url: str) -> str:
    """Trim a URL and prefix https:// when no scheme is given.

    Args:
        url: URL as entered by the user

    Returns:
        Normalized URL (original case preserved)

    Raises:
        LinkValidationError: If the URL is empty or whitespace

    Example:
        "example.com/page" -> "https://example.com/page"
    """
    if url is None or not url.strip():
        raise LinkValidationError("URL is required")

    candidate = url.strip()
    if not _SCHEME_RE.match(candidate):
        candidate = f"https://{candidate}"

    return candidate


def extract_host(url: str) -> str:
    """Return the host of a URL without a leading www."""
    host = urlparse(url).netloc
    if host.startswith("www."):
        host = host[4:]
    return host
