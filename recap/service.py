"""Recap Service — the entry point.

ContentProcessor takes a stored Document through

    pending --(extract)--> text_extracted --(summarize)--> summarized

and owns the summary lifecycle around it: regenerate, edit, delete and
chat. Each document is processed at most once unless regeneration is
asked for explicitly; an existing summary is returned unchanged.

Stages run as shielded tasks. A caller that gets cancelled (a closed
HTTP request, Ctrl-C) lets the stage in flight finish and save its work,
but no further stage is started on its behalf.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from . import config
from .chat import ChatSession
from .errors import ConfigurationError, InvalidInput, SummaryNotFound
from .extractors import detect_source_type
from .extractors.article import extract_article
from .extractors.audio import AudioExtractor
from .extractors.pdf import PdfExtractor
from .extractors.youtube import YouTubeExtractor
from .llm import CompletionClient, LLMClient
from .schemas import (
    Document,
    DocumentStatus,
    ExtractionResult,
    ProcessOutcome,
    ProcessResult,
    SourceType,
    Summary,
    SummaryData,
)
from .storage import SupabaseStorage
from .store import DocumentStore, SqliteStore, SummaryStore
from .summarizer import Summarizer, structure_summary
from .transcription import AudioTranscriber

logger = logging.getLogger(__name__)

T = TypeVar("T")

EMPTY_MESSAGE = "This file could not be transcribed or summarized."

ArticleExtractor = Callable[[str], Awaitable[ExtractionResult]]


class ContentProcessor:
    def __init__(
        self,
        documents: DocumentStore,
        summaries: SummaryStore,
        summarizer: Optional[Summarizer] = None,
        *,
        article: Optional[ArticleExtractor] = extract_article,
        youtube: Optional[YouTubeExtractor] = None,
        pdf: Optional[PdfExtractor] = None,
        audio: Optional[AudioExtractor] = None,
        llm: Optional[CompletionClient] = None,
    ) -> None:
        self.documents = documents
        self.summaries = summaries
        self.summarizer = summarizer
        self.article = article
        self.youtube = youtube
        self.pdf = pdf
        self.audio = audio
        self.llm = llm if llm is not None else (summarizer.llm if summarizer else None)
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls) -> "ContentProcessor":
        """Wire every collaborator from env / .env.

        Missing API keys only disable the features that need them, so
        ``show`` and ``delete`` keep working without an LLM configured.
        """
        store = SqliteStore.from_config()
        storage = SupabaseStorage.from_config() if config.get("SUPABASE_URL") else None
        llm = _optional(LLMClient.from_config, "LLM")
        transcriber = _optional(AudioTranscriber.from_config, "speech-to-text")

        youtube = audio = None
        if transcriber is not None:
            youtube = YouTubeExtractor.from_config(transcriber)
            audio = AudioExtractor.from_config(transcriber, storage)
        return cls(
            store,
            store,
            Summarizer.from_config(llm) if llm is not None else None,
            youtube=youtube,
            pdf=PdfExtractor.from_config(store, storage),
            audio=audio,
            llm=llm,
        )

    # ── Stage plumbing ────────────────────────────────────────────

    def _stage_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Stage %s ended with %r", task.get_name(), task.exception())

    async def _run_stage(self, name: str, coro: Awaitable[T]) -> T:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._stage_done)
        return await asyncio.shield(task)

    async def wait_idle(self) -> None:
        """Wait for stages still running on behalf of cancelled callers."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Extraction ────────────────────────────────────────────────

    async def _dispatch(self, document: Document, source_type: SourceType,
                        location: str) -> ExtractionResult:
        if source_type is SourceType.ARTICLE:
            return await _require(self.article, "article extractor")(location)
        if source_type is SourceType.YOUTUBE:
            return await _require(self.youtube, "YouTube extractor").extract(location)
        if source_type is SourceType.PDF:
            return await _require(self.pdf, "PDF extractor").extract(document.id)
        if source_type is SourceType.AUDIO:
            return await _require(self.audio, "audio extractor").extract(document)
        raise InvalidInput(f"unsupported source type {source_type!r}")

    async def _extract(self, document: Document, source_type: SourceType,
                       location: str, *, has_summary: bool = False) -> ExtractionResult:
        logger.info("Extracting %s document %s", source_type.value, document.id)
        result = await self._dispatch(document, source_type, location)
        for warning in result.warnings:
            logger.info("Extraction warning for %s: %s", document.id, warning)
        if result.is_empty and has_summary:
            logger.warning("Re-extraction of %s came back empty; keeping stored transcript", document.id)
            return result
        await self.documents.update_document_status(
            document.id, DocumentStatus.TEXT_EXTRACTED, transcript=result.text,
        )
        return result

    # ── Summarization ─────────────────────────────────────────────

    async def _summarize_and_store(self, document: Document, source_type: SourceType,
                                   extraction: ExtractionResult, *, replace: bool) -> tuple[Summary, bool]:
        summarizer = _require(self.summarizer, "summarizer")
        title = extraction.title or document.title
        result = await summarizer.summarize(extraction.text, source_type=source_type, title=title or None)
        data = SummaryData(
            owner=document.owner,
            content=result.content,
            key_points=result.key_points,
            word_count=result.word_count,
            overview=result.overview,
            sections=result.sections,
            chat_options=result.chat_options,
            source_type=source_type,
            source_url=extraction.source_url or document.source_location,
            source_title=title,
        )

        try:
            if replace:
                summary = await self.summaries.replace(document.id, data)
            else:
                summary = await self.summaries.create(document.id, data)
        except Exception:
            # the generated summary still goes back to the caller
            logger.exception("Could not save summary for %s", document.id)
            return Summary.unsaved(document.id, data), False
        await self._mark_summarized(document.id, summary)
        return summary, True

    async def _mark_summarized(self, document_id: str, summary: Summary) -> bool:
        """Move the document to summarized. A failure is repaired on the next process call."""
        try:
            await self.documents.update_document_status(
                document_id, DocumentStatus.SUMMARIZED, summary_text=summary.content,
            )
        except Exception:
            logger.exception("Summary %s saved but status update failed for %s", summary.id, document_id)
            return False
        return True

    # ── Public operations ─────────────────────────────────────────

    async def process_document(
        self,
        document_id: str,
        source_type: Optional[SourceType] = None,
        source_location: Optional[str] = None,
        *,
        force: bool = False,
    ) -> ProcessResult:
        """Extract and summarize a stored document.

        ``source_type`` and ``source_location`` default to the stored
        document's own. With ``force`` the existing summary is replaced;
        otherwise it is returned unchanged.
        """
        document = await self.documents.get_document(document_id)
        source_type = SourceType(source_type or document.source_type)
        location = source_location or document.source_location

        existing = await self.summaries.get(document_id)
        if existing is not None and not force:
            logger.info("Summary already exists for %s", document_id)
            if document.status is not DocumentStatus.SUMMARIZED:
                await self._mark_summarized(document_id, existing)
            return ProcessResult(outcome=ProcessOutcome.EXISTING, document_id=document_id,
                                 summary=existing)

        extraction = await self._run_stage(
            f"extract:{document_id}",
            self._extract(document, source_type, location, has_summary=existing is not None),
        )
        if extraction.is_empty:
            logger.warning("Nothing to summarize for %s", document_id)
            return ProcessResult(outcome=ProcessOutcome.EMPTY, document_id=document_id,
                                 message=EMPTY_MESSAGE, warnings=extraction.warnings)

        summary, persisted = await self._run_stage(
            f"summarize:{document_id}",
            self._summarize_and_store(document, source_type, extraction, replace=force),
        )
        return ProcessResult(outcome=ProcessOutcome.SUMMARIZED, document_id=document_id,
                             summary=summary, persisted=persisted, warnings=extraction.warnings)

    async def regenerate(self, document_id: str) -> ProcessResult:
        return await self.process_document(document_id, force=True)

    async def submit(self, owner: str, location: str, source_type: Optional[SourceType] = None,
                     title: Optional[str] = None, *, force: bool = False) -> ProcessResult:
        """Create a Document for ``location`` and process it."""
        location = (location or "").strip()
        if not location:
            raise InvalidInput("no location given")
        source_type = SourceType(source_type) if source_type else detect_source_type(location)
        document = await self.documents.create_document(owner, title or "", source_type, location)
        return await self.process_document(document.id, force=force)

    async def get_summary(self, document_id: str) -> Summary:
        summary = await self.summaries.get(document_id)
        if summary is None:
            raise SummaryNotFound(f"no summary for document {document_id}")
        return summary

    async def edit_summary(self, document_id: str, content: str) -> Summary:
        """Overwrite the summary text and re-derive its structure. No LLM call."""
        if not (content or "").strip():
            raise InvalidInput("summary content is empty")
        existing = await self.get_summary(document_id)
        derived = structure_summary(content, existing.source_type, word_count=existing.word_count)
        data = SummaryData(**existing.model_dump(include=set(SummaryData.model_fields)))
        data.content = derived.content
        data.key_points = derived.key_points
        data.overview = derived.overview
        data.sections = derived.sections

        summary = await self.summaries.replace(document_id, data)
        await self.documents.update_document_status(
            document_id, DocumentStatus.SUMMARIZED, summary_text=summary.content,
        )
        logger.info("Edited summary for %s", document_id)
        return summary

    async def delete_summary(self, document_id: str) -> bool:
        """Remove the summary and reset the document to pending."""
        await self.documents.get_document(document_id)
        deleted = await self.summaries.delete(document_id)
        await self.documents.update_document_status(
            document_id, DocumentStatus.PENDING, summary_text="", reset=True,
        )
        logger.info("Deleted summary for %s (existed=%s)", document_id, deleted)
        return deleted

    async def open_chat(self, document_id: str) -> ChatSession:
        document = await self.documents.get_document(document_id)
        summary = await self.summaries.get(document_id)
        return ChatSession(document, summary, _require(self.llm, "LLM"))


def _optional(factory: Callable[[], Any], label: str) -> Any:
    try:
        return factory()
    except ConfigurationError as exc:
        logger.warning("%s disabled: %s", label, exc)
        return None


def _require(component: Optional[T], label: str) -> T:
    if component is None:
        raise ConfigurationError(f"{label} is not configured")
    return component
