"""Tests for document-grounded chat sessions."""

import asyncio

import pytest

from recap.chat import MAX_CONTEXT_CHARS, NOT_FOUND_REPLY, ChatSession
from recap.errors import InvalidInput
from recap.schemas import Document, SourceType, Summary

from fakes import FakeLLM


def _document(transcript=None) -> Document:
    return Document(id="doc-1", owner="alice", title="Budget meeting", source_type=SourceType.AUDIO,
                    source_location="alice/meeting.m4a", transcript=transcript)


def _summary() -> Summary:
    return Summary(id="s-1", document_id="doc-1", owner="alice",
                   content="The team agreed to cut travel spending by ten percent.",
                   chat_options=["What decisions were made?"], source_type=SourceType.AUDIO)


def test_empty_question_is_invalid() -> None:
    session = ChatSession(_document("some transcript"), _summary(), FakeLLM())
    with pytest.raises(InvalidInput):
        asyncio.run(session.ask("   "))


def test_no_context_answers_not_found_without_llm() -> None:
    llm = FakeLLM()
    session = ChatSession(_document(), None, llm)
    assert asyncio.run(session.ask("What was decided?")) == NOT_FOUND_REPLY
    assert llm.calls == []
    assert session.turns[0].answer == NOT_FOUND_REPLY


def test_prior_turns_are_replayed() -> None:
    llm = FakeLLM(reply="Travel spending drops by ten percent.")
    session = ChatSession(_document("We will cut travel by ten percent."), _summary(), llm)

    asyncio.run(session.ask("What was decided?"))
    asyncio.run(session.ask("By how much?"))

    second = llm.calls[1]["user"]
    assert "User: What was decided?" in second
    assert "Assistant: Travel spending drops by ten percent." in second
    assert second.endswith("Question: By how much?")
    assert "User: By how much?" not in second
    assert len(session.turns) == 2


def test_long_transcript_is_truncated() -> None:
    llm = FakeLLM()
    transcript = "budget " * (MAX_CONTEXT_CHARS // 3)
    session = ChatSession(_document(transcript), _summary(), llm)
    asyncio.run(session.ask("What was decided?"))
    assert len(llm.calls[0]["user"]) < len(transcript)
    assert "[...]" in llm.calls[0]["user"]


def test_chat_options_come_from_summary() -> None:
    assert ChatSession(_document(), _summary(), FakeLLM()).chat_options == ["What decisions were made?"]
    assert ChatSession(_document(), None, FakeLLM()).chat_options == []
