"""PDF extractor — stored PDF in, text layer out.

Uses pymupdf for text extraction. Three outcomes:
  - zero-byte download          → empty result (not an error)
  - fewer than 10 real chars    → empty result (scanned / image-only PDF)
  - parser rejects the bytes    → ParseFailed
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Optional

import httpx

from .. import config
from ..errors import ParseFailed
from ..net import NO_RETRY, RetryPolicy, download_bytes, make_client
from ..schemas import Document, ExtractionResult
from ..storage import BlobStorage
from .locations import resolve_download_url

logger = logging.getLogger(__name__)

MIN_MEANINGFUL_CHARS = 10


def meaningful_length(text: str) -> int:
    return len(re.sub(r"\s+", "", text))


def parse_pdf_bytes(data: bytes) -> str:
    """Extract the text layer of every page. Raises ParseFailed on bad bytes."""
    try:
        import pymupdf
    except ImportError as exc:
        raise ParseFailed("pymupdf not installed. Run: pip install pymupdf") from exc

    try:
        with pymupdf.open(stream=data, filetype="pdf") as doc:
            pages = [page.get_text().strip() for page in doc]
    except Exception as exc:
        raise ParseFailed(f"could not parse PDF: {exc}") from exc
    return "\n\n".join(p for p in pages if p)


class PdfExtractor:
    def __init__(
        self,
        documents,
        storage: Optional[BlobStorage] = None,
        *,
        bucket: str = "pdfs",
        signed_url_ttl: int = 120,
        retry: RetryPolicy = NO_RETRY,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.documents = documents
        self.storage = storage
        self.bucket = bucket
        self.signed_url_ttl = signed_url_ttl
        self.retry = retry
        self._client = client

    @classmethod
    def from_config(cls, documents, storage: Optional[BlobStorage],
                    client: Optional[httpx.AsyncClient] = None) -> "PdfExtractor":
        return cls(
            documents,
            storage,
            bucket=config.get("RECAP_PDF_BUCKET", "pdfs"),
            signed_url_ttl=config.get_int("RECAP_SIGNED_URL_TTL", 120),
            retry=RetryPolicy.from_config(),
            client=client,
        )

    async def _download(self, url: str) -> bytes:
        client = self._client or make_client()
        try:
            # Fresh uploads can 404 briefly while storage propagates.
            data, _ = await download_bytes(client, url, policy=self.retry, retry_statuses=(404,))
        finally:
            if self._client is None:
                await client.aclose()
        return data

    async def extract(self, document_id: str) -> ExtractionResult:
        document: Document = await self.documents.get_document(document_id)
        url = await resolve_download_url(document.source_location, self.bucket,
                                         self.storage, self.signed_url_ttl)
        data = await self._download(url)
        logger.info("Downloaded PDF for %s (%d bytes)", document_id, len(data))

        result = ExtractionResult(title=document.title, source_url=document.source_location)
        if not data:
            logger.warning("Downloaded PDF is empty (0 bytes) for %s", document_id)
            result.warnings.append("downloaded PDF is empty")
            return result

        text = await asyncio.to_thread(parse_pdf_bytes, data)
        if meaningful_length(text) < MIN_MEANINGFUL_CHARS:
            logger.warning("No text layer in PDF for %s (scanned or image-only?)", document_id)
            result.warnings.append("no extractable text in PDF")
            return result

        result.text = text
        logger.info("Extracted %d chars of PDF text for %s", len(text), document_id)
        return result
