"""Extractor registry — routes source locations to the right extractor."""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from ..errors import InvalidInput
from ..schemas import SourceType
from .article import is_likely_article_url, is_valid_url
from .youtube import is_youtube_url

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = {".flac", ".m4a", ".mp3", ".mp4", ".mpeg", ".mpga", ".oga", ".ogg", ".wav", ".webm"}


def detect_source_type(location: str) -> SourceType:
    """Detect the source type of a URL. Unknown web pages are treated as articles."""
    if not is_valid_url(location):
        raise InvalidInput(f"not an http(s) URL: {location!r}")

    if is_youtube_url(location):
        return SourceType.YOUTUBE

    path_lower = urlparse(location).path.lower()
    if path_lower.endswith(".pdf"):
        return SourceType.PDF
    for ext in AUDIO_EXTENSIONS:
        if path_lower.endswith(ext):
            return SourceType.AUDIO

    if not is_likely_article_url(location):
        logger.info("%s does not look like an article; extracting it as one anyway", location)
    return SourceType.ARTICLE
