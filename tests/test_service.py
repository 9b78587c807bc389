"""Tests for the ContentProcessor orchestrator."""

import asyncio

import pytest

from recap.chat import NOT_FOUND_REPLY
from recap.errors import ConfigurationError, ExtractionTooShort, InvalidInput, SummaryNotFound
from recap.schemas import DocumentStatus, ExtractionResult, ProcessOutcome, SourceType
from recap.service import EMPTY_MESSAGE, ContentProcessor
from recap.store import SqliteStore
from recap.summarizer import Summarizer

from fakes import LONG_TEXT, SUMMARY_REPLY, FakeArticleExtractor, FakeLLM


class FakePdfExtractor:
    def __init__(self, result: ExtractionResult) -> None:
        self.result = result
        self.calls: list[str] = []

    async def extract(self, document_id: str) -> ExtractionResult:
        self.calls.append(document_id)
        return self.result


class FailingSummaryStore(SqliteStore):
    async def create(self, document_id, data):
        raise RuntimeError("database is locked")


class FailingStatusStore(SqliteStore):
    fail_summarized = True

    async def update_document_status(self, document_id, status, **kwargs):
        if status is DocumentStatus.SUMMARIZED and self.fail_summarized:
            raise RuntimeError("database is locked")
        return await super().update_document_status(document_id, status, **kwargs)


def _processor(store, llm, **extractors) -> ContentProcessor:
    extractors.setdefault("article", FakeArticleExtractor())
    return ContentProcessor(store, store, Summarizer(llm), **extractors)


def _article_document(store):
    return asyncio.run(store.create_document("alice", "", SourceType.ARTICLE, "https://example.com/post/1"))


def test_process_twice_summarizes_once(store, llm) -> None:
    processor = _processor(store, llm)
    document = _article_document(store)

    first = asyncio.run(processor.process_document(document.id))
    second = asyncio.run(processor.process_document(document.id))

    assert first.outcome is ProcessOutcome.SUMMARIZED
    assert first.persisted
    assert first.summary.content == SUMMARY_REPLY.strip()
    assert first.summary.source_title == "Solar Power Explained"
    assert first.summary.word_count == len(LONG_TEXT.split())
    assert second.outcome is ProcessOutcome.EXISTING
    assert second.summary == first.summary
    assert len(llm.calls) == 1

    stored = asyncio.run(store.get_document(document.id))
    assert stored.status is DocumentStatus.SUMMARIZED
    assert stored.transcript == LONG_TEXT
    assert stored.summary_text == first.summary.content


def test_concurrent_processing_stores_one_summary(store, llm) -> None:
    processor = _processor(store, llm)
    document = _article_document(store)

    async def race():
        return await asyncio.gather(processor.process_document(document.id),
                                    processor.process_document(document.id))

    results = asyncio.run(race())
    assert {r.summary.id for r in results} == {results[0].summary.id}
    assert len(asyncio.run(store.list_summaries("alice"))) == 1


def test_empty_pdf_is_not_an_error(store, llm) -> None:
    pdf = FakePdfExtractor(ExtractionResult(warnings=["downloaded PDF is empty"]))
    processor = _processor(store, llm, pdf=pdf)
    document = asyncio.run(store.create_document("alice", "scan.pdf", SourceType.PDF, "alice/scan.pdf"))

    result = asyncio.run(processor.process_document(document.id))

    assert result.outcome is ProcessOutcome.EMPTY
    assert result.message == EMPTY_MESSAGE
    assert result.summary is None
    assert result.warnings == ["downloaded PDF is empty"]
    assert llm.calls == []
    assert pdf.calls == [document.id]
    stored = asyncio.run(store.get_document(document.id))
    assert stored.status is DocumentStatus.TEXT_EXTRACTED
    assert stored.transcript == ""
    assert asyncio.run(store.get(document.id)) is None


def test_extraction_errors_surface_and_leave_state_alone(store, llm) -> None:
    async def unreadable(url):
        raise ExtractionTooShort("extracted 12 characters")

    processor = _processor(store, llm, article=unreadable)
    document = _article_document(store)

    with pytest.raises(ExtractionTooShort):
        asyncio.run(processor.process_document(document.id))
    assert asyncio.run(store.get_document(document.id)).status is DocumentStatus.PENDING
    assert llm.calls == []


def test_missing_extractor_is_configuration_error(store, llm) -> None:
    processor = _processor(store, llm)
    document = asyncio.run(store.create_document("alice", "", SourceType.YOUTUBE,
                                                 "https://youtu.be/dQw4w9WgXcQ"))
    with pytest.raises(ConfigurationError):
        asyncio.run(processor.process_document(document.id))


def test_persistence_failure_still_returns_summary(tmp_path, llm) -> None:
    store = FailingSummaryStore(tmp_path / "recap.sqlite3")
    processor = _processor(store, llm)
    document = _article_document(store)

    result = asyncio.run(processor.process_document(document.id))

    assert result.outcome is ProcessOutcome.SUMMARIZED
    assert result.persisted is False
    assert result.summary.content == SUMMARY_REPLY.strip()
    assert result.summary.document_id == document.id
    assert asyncio.run(store.get_document(document.id)).status is DocumentStatus.TEXT_EXTRACTED



def test_status_failure_after_save_keeps_stored_summary(tmp_path, llm) -> None:
    store = FailingStatusStore(tmp_path / "recap.sqlite3")
    processor = _processor(store, llm)
    document = _article_document(store)

    result = asyncio.run(processor.process_document(document.id))

    stored = asyncio.run(store.get(document.id))
    assert result.persisted is True
    assert result.summary.id == stored.id
    assert asyncio.run(store.get_document(document.id)).status is DocumentStatus.TEXT_EXTRACTED

    store.fail_summarized = False
    again = asyncio.run(processor.process_document(document.id))

    assert again.outcome is ProcessOutcome.EXISTING
    assert again.summary.id == stored.id
    repaired = asyncio.run(store.get_document(document.id))
    assert repaired.status is DocumentStatus.SUMMARIZED
    assert repaired.summary_text == stored.content
    assert len(llm.calls) == 1

def test_regenerate_replaces_existing_summary(store, llm) -> None:
    processor = _processor(store, llm)
    document = _article_document(store)
    first = asyncio.run(processor.process_document(document.id))

    llm.reply = "A regenerated summary with different wording. It still covers solar power basics."
    regenerated = asyncio.run(processor.regenerate(document.id))

    assert regenerated.outcome is ProcessOutcome.SUMMARIZED
    assert regenerated.summary.id == first.summary.id
    assert regenerated.summary.content.startswith("A regenerated summary")
    assert asyncio.run(store.get(document.id)).content.startswith("A regenerated summary")
    assert len(asyncio.run(store.list_summaries("alice"))) == 1
    assert len(llm.calls) == 2



def test_empty_regenerate_keeps_transcript_and_summary(store, llm) -> None:
    extractor = FakeArticleExtractor()
    processor = _processor(store, llm, article=extractor)
    document = _article_document(store)
    first = asyncio.run(processor.process_document(document.id))

    extractor.text = ""
    result = asyncio.run(processor.regenerate(document.id))

    assert result.outcome is ProcessOutcome.EMPTY
    refreshed = asyncio.run(store.get_document(document.id))
    assert refreshed.status is DocumentStatus.SUMMARIZED
    assert refreshed.transcript == LONG_TEXT
    assert asyncio.run(store.get(document.id)).id == first.summary.id
    assert len(llm.calls) == 1

def test_edit_rederives_structure_without_llm(store, llm) -> None:
    processor = _processor(store, llm)
    document = _article_document(store)
    original = asyncio.run(processor.process_document(document.id)).summary

    edited_text = (
        "Solar panels are a practical way to cut energy bills. "
        "Batteries make the savings last into the evening. "
        "Selling surplus power to the grid shortens the payback period."
    )
    edited = asyncio.run(processor.edit_summary(document.id, edited_text))

    assert edited.content == edited_text
    assert edited.key_points[0] == "Solar panels are a practical way to cut energy bills."
    assert edited.sections[2].bullets == ["Selling surplus power to the grid shortens the payback period."]
    assert edited.chat_options == original.chat_options
    assert edited.word_count == original.word_count
    assert len(llm.calls) == 1
    assert asyncio.run(store.get_document(document.id)).summary_text == edited_text


def test_edit_requires_content_and_existing_summary(store, llm) -> None:
    processor = _processor(store, llm)
    document = _article_document(store)
    with pytest.raises(SummaryNotFound):
        asyncio.run(processor.edit_summary(document.id, "Some new text for the summary."))
    with pytest.raises(InvalidInput):
        asyncio.run(processor.edit_summary(document.id, "   "))


def test_delete_resets_document(store, llm) -> None:
    processor = _processor(store, llm)
    document = _article_document(store)
    asyncio.run(processor.process_document(document.id))

    assert asyncio.run(processor.delete_summary(document.id)) is True

    stored = asyncio.run(store.get_document(document.id))
    assert stored.status is DocumentStatus.PENDING
    assert stored.summary_text == ""
    assert asyncio.run(store.get(document.id)) is None
    with pytest.raises(SummaryNotFound):
        asyncio.run(processor.get_summary(document.id))

    again = asyncio.run(processor.process_document(document.id))
    assert again.outcome is ProcessOutcome.SUMMARIZED
    assert len(llm.calls) == 2


def test_submit_routes_and_processes(store, llm) -> None:
    article = FakeArticleExtractor()
    processor = _processor(store, llm, article=article)

    result = asyncio.run(processor.submit("alice", "https://example.com/blog/solar"))

    assert article.calls == ["https://example.com/blog/solar"]
    document = asyncio.run(store.get_document(result.document_id))
    assert document.source_type is SourceType.ARTICLE
    assert document.owner == "alice"
    assert result.summary.source_url == "https://example.com/blog/solar"


def test_submit_rejects_bad_location(store, llm) -> None:
    processor = _processor(store, llm)
    with pytest.raises(InvalidInput):
        asyncio.run(processor.submit("alice", "not-a-url"))
    with pytest.raises(InvalidInput):
        asyncio.run(processor.submit("alice", "   "))
    assert asyncio.run(store.list_documents("alice")) == []


def test_cancelled_caller_lets_stage_finish_but_starts_no_more(store, llm) -> None:
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_article(url):
        started.set()
        await release.wait()
        return ExtractionResult(text=LONG_TEXT, title="Slow", source_url=url)

    processor = _processor(store, llm, article=slow_article)
    document = _article_document(store)

    async def scenario():
        task = asyncio.create_task(processor.process_document(document.id))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        release.set()
        await processor.wait_idle()

    asyncio.run(scenario())

    stored = asyncio.run(store.get_document(document.id))
    assert stored.status is DocumentStatus.TEXT_EXTRACTED
    assert stored.transcript == LONG_TEXT
    assert llm.calls == []
    assert asyncio.run(store.get(document.id)) is None


def test_open_chat_is_grounded_in_document(store) -> None:
    llm = FakeLLM()
    processor = _processor(store, llm)
    document = _article_document(store)
    asyncio.run(processor.process_document(document.id))

    llm.reply = "An inverter converts direct current into alternating current."
    session = asyncio.run(processor.open_chat(document.id))
    answer = asyncio.run(session.ask("What does the inverter do?"))

    assert answer == llm.reply
    prompt = llm.calls[-1]
    assert NOT_FOUND_REPLY in prompt["system"]
    assert LONG_TEXT in prompt["user"]
    assert SUMMARY_REPLY.strip() in prompt["user"]
    assert prompt["user"].endswith("Question: What does the inverter do?")
