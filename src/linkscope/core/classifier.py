"""Derive link type and platform from a URL."""

from typing import Tuple

from ..models.link import LinkType, Platform


def classify(url: str) -> Tuple[LinkType, Platform]:
    """Classify a URL by substring match.

    Checks run in a fixed order and the first match wins. Only reels and
    IGTV count as Instagram video; plain posts are ordinary links.

    Args:
        url: URL as entered (case is ignored for matching)

    Returns:
        (type, platform) tuple
    """
    lowered = url.lower()

    if "youtube.com" in lowered or "youtu.be" in lowered:
        return LinkType.VIDEO, Platform.YOUTUBE

    if "instagram.com" in lowered and ("/reel/" in lowered or "/tv/" in lowered):
        return LinkType.VIDEO, Platform.INSTAGRAM

    if "tiktok.com" in lowered:
        return LinkType.VIDEO, Platform.TIKTOK

    return LinkType.LINK, Platform.OTHER
