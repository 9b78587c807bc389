"""Resolve a document's stored location to a URL the extractor can download."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlparse

from ..errors import ConfigurationError, InvalidInput
from ..storage import BlobStorage, storage_path_from_url

logger = logging.getLogger(__name__)


async def resolve_download_url(
    location: str,
    bucket: str,
    storage: Optional[BlobStorage],
    ttl_seconds: int,
) -> str:
    """Storage URLs and bare bucket paths get a short-lived signed URL;
    any other http(s) URL is downloaded as-is."""
    if not location:
        raise InvalidInput("document has no stored location")

    scheme = urlparse(location).scheme
    path = storage_path_from_url(location, bucket)
    if path is None and scheme in ("http", "https"):
        return location
    if path is None and scheme:
        raise InvalidInput(f"unsupported location {location!r}")

    path = path or location.lstrip("/")
    if storage is None:
        raise ConfigurationError(f"storage is not configured; cannot sign {bucket}/{path}")
    logger.debug("Signing %s/%s for %ds", bucket, path, ttl_seconds)
    return await storage.get_signed_download_url(bucket, path, ttl_seconds)
