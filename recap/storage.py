"""Blob storage collaborator — uploads, signed download URLs, public URLs.

SupabaseStorage wraps the (blocking) supabase client; each call runs in a
worker thread so extractors can await it.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Callable, Optional, Protocol, TypeVar

from . import config
from .errors import ConfigurationError, FetchFailed
from .net import http_timeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BlobStorage(Protocol):
    async def upload_blob(self, bucket: str, path: str, data: bytes, content_type: str) -> str: ...

    async def get_signed_download_url(self, bucket: str, path: str, ttl_seconds: int) -> str: ...

    async def get_public_url(self, bucket: str, path: str) -> str: ...


def storage_path_from_url(url: str, bucket: str) -> Optional[str]:
    """Return the object path for a ``/object/public/<bucket>/<path>`` URL."""
    match = re.search(rf"/object/(?:public|sign)/{re.escape(bucket)}/([^?#]+)", url)
    return match.group(1) if match else None


class SupabaseStorage:
    def __init__(self, url: str, key: str, timeout: Optional[float] = None) -> None:
        if not url or not key:
            raise ConfigurationError("Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY to use storage.")
        self._url = url
        self._key = key
        self._client = None
        self.timeout = timeout if timeout is not None else http_timeout()

    @classmethod
    def from_config(cls) -> "SupabaseStorage":
        return cls(config.get("SUPABASE_URL"), config.get("SUPABASE_SERVICE_ROLE_KEY"))

    def _bucket(self, bucket: str):
        if self._client is None:
            from supabase import create_client

            self._client = create_client(self._url, self._key)
        return self._client.storage.from_(bucket)

    async def _call(self, fn: Callable[[], T], what: str) -> T:
        # a timed-out call keeps its worker thread; only the caller stops waiting
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn), self.timeout)
        except asyncio.TimeoutError as exc:
            raise FetchFailed(f"{what} timed out after {self.timeout:g}s") from exc
        except Exception as exc:
            raise FetchFailed(f"{what} failed: {exc}") from exc

    async def upload_blob(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        def upload() -> None:
            self._bucket(bucket).upload(path, data, {"content-type": content_type})

        await self._call(upload, f"upload to {bucket}/{path}")
        logger.info("Uploaded %d bytes to %s/%s", len(data), bucket, path)
        return await self.get_public_url(bucket, path)

    async def get_signed_download_url(self, bucket: str, path: str, ttl_seconds: int) -> str:
        result = await self._call(
            lambda: self._bucket(bucket).create_signed_url(path, ttl_seconds),
            f"signing {bucket}/{path}",
        )
        signed = ""
        if isinstance(result, dict):
            signed = result.get("signedURL") or result.get("signedUrl") or ""
        if not signed:
            raise FetchFailed(f"storage returned no signed URL for {bucket}/{path}")
        return signed

    async def get_public_url(self, bucket: str, path: str) -> str:
        url = await self._call(lambda: self._bucket(bucket).get_public_url(path), f"public URL for {bucket}/{path}")
        return str(url).rstrip("?")
