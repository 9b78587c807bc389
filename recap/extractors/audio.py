"""Audio extractor — uploaded recordings are downloaded and transcribed."""

from __future__ import annotations

import logging
import mimetypes
from typing import Optional
from urllib.parse import urlparse

import httpx

from .. import config
from ..net import NO_RETRY, RetryPolicy, download_bytes, make_client
from ..schemas import Document, ExtractionResult
from ..storage import BlobStorage
from ..transcription import AudioTranscriber
from .locations import resolve_download_url

logger = logging.getLogger(__name__)


class AudioExtractor:
    def __init__(
        self,
        transcriber: AudioTranscriber,
        storage: Optional[BlobStorage] = None,
        *,
        bucket: str = "audio-uploads",
        signed_url_ttl: int = 120,
        retry: RetryPolicy = NO_RETRY,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.transcriber = transcriber
        self.storage = storage
        self.bucket = bucket
        self.signed_url_ttl = signed_url_ttl
        self.retry = retry
        self._client = client

    @classmethod
    def from_config(cls, transcriber: AudioTranscriber, storage: Optional[BlobStorage],
                    client: Optional[httpx.AsyncClient] = None) -> "AudioExtractor":
        return cls(
            transcriber,
            storage,
            bucket=config.get("RECAP_AUDIO_BUCKET", "audio-uploads"),
            signed_url_ttl=config.get_int("RECAP_SIGNED_URL_TTL", 120),
            retry=RetryPolicy.from_config(),
            client=client,
        )

    async def extract(self, document: Document) -> ExtractionResult:
        url = await resolve_download_url(document.source_location, self.bucket,
                                         self.storage, self.signed_url_ttl)
        client = self._client or make_client()
        try:
            data, content_type = await download_bytes(client, url, policy=self.retry)
        finally:
            if self._client is None:
                await client.aclose()

        result = ExtractionResult(title=document.title, source_url=document.source_location)
        if not data:
            logger.warning("Downloaded audio is empty (0 bytes) for %s", document.id)
            result.warnings.append("downloaded audio is empty")
            return result

        filename = urlparse(document.source_location).path.rsplit("/", 1)[-1]
        mime = content_type.split(";", 1)[0].strip()
        if not mime or mime in ("application/octet-stream", "binary/octet-stream"):
            mime = mimetypes.guess_type(filename)[0] or ""
        logger.info("Transcribing %d bytes of %s for %s", len(data), mime or "audio", document.id)

        result.text = await self.transcriber.transcribe(data, mime or None, filename=filename)
        if result.is_empty:
            result.warnings.append("transcription was empty")
        return result
