"""Tests for the summarizer and the LLM client."""

import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from recap.errors import ConfigurationError, InputTooShort, UpstreamError
from recap.llm import LLMClient
from recap.schemas import SourceType
from recap.summarizer import (
    CHAT_OPTIONS,
    SECTION_TITLES,
    Summarizer,
    build_prompt,
    split_sentences,
    structure_summary,
)

from fakes import LONG_TEXT, FakeLLM


def test_trivial_input_never_reaches_the_llm(llm) -> None:
    with pytest.raises(InputTooShort):
        asyncio.run(Summarizer(llm).summarize("a", source_type=SourceType.ARTICLE))
    with pytest.raises(InputTooShort):
        asyncio.run(Summarizer(llm).summarize("   \n\t  ", source_type=SourceType.PDF))
    assert llm.calls == []


def test_summarize_structures_the_completion(llm) -> None:
    result = asyncio.run(Summarizer(llm).summarize(LONG_TEXT, source_type=SourceType.YOUTUBE,
                                                   title="Solar 101"))

    assert len(llm.calls) == 1
    assert 'titled "Solar 101"' in llm.calls[0]["user"]
    assert "YouTube video" in llm.calls[0]["user"]
    assert llm.calls[0]["temperature"] == 0.3

    assert result.word_count == len(LONG_TEXT.split())
    assert 3 <= len(result.key_points) <= 5
    assert result.key_points[0].startswith("The video explains")
    assert len(result.overview) == 3
    assert [s.title for s in result.sections] == list(SECTION_TITLES[SourceType.YOUTUBE])
    assert all(s.bullets for s in result.sections)
    assert result.chat_options == CHAT_OPTIONS[SourceType.YOUTUBE]
    assert result.source_type is SourceType.YOUTUBE


def test_prompt_is_source_specific() -> None:
    assert "web article" in build_prompt("text", SourceType.ARTICLE)
    assert "PDF document" in build_prompt("text", SourceType.PDF)
    assert "audio recording" in build_prompt("text", SourceType.AUDIO)
    assert "titled" not in build_prompt("text", SourceType.PDF)


def test_split_sentences_strips_markdown() -> None:
    summary = "## Overview:\n- **First point** is here. Second point follows!\n1. Numbered item stays."
    assert split_sentences(summary) == [
        "First point is here.", "Second point follows!", "Numbered item stays.",
    ]


def test_single_sentence_still_fills_every_field() -> None:
    result = structure_summary("Short.", SourceType.PDF)
    assert result.key_points == ["Short."]
    assert result.overview == ["Short."]
    assert len(result.sections) == 3
    assert all(s.bullets == ["Short."] for s in result.sections)
    assert len(result.chat_options) == 3


def test_fragments_pad_key_points() -> None:
    content = "Tiny. Also tiny. This one is a properly long sentence about the topic."
    result = structure_summary(content, SourceType.ARTICLE)
    assert result.key_points == [
        "This one is a properly long sentence about the topic.", "Tiny.", "Also tiny.",
    ]


def test_long_input_is_truncated_before_sending() -> None:
    llm = FakeLLM()
    text = "word " * 40_000
    result = asyncio.run(Summarizer(llm).summarize(text, source_type=SourceType.PDF))
    assert len(llm.calls[0]["user"]) < len(text)
    assert result.word_count == 40_000


# ── LLM client ────────────────────────────────────────────────

class FakeCompletions:
    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[dict] = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _client_with(*outcomes) -> tuple[LLMClient, FakeCompletions]:
    completions = FakeCompletions(*outcomes)
    client = LLMClient(api_key="sk-test", model="test-model")
    client._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return client, completions


def _completion(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


def _request() -> httpx.Request:
    return httpx.Request("POST", "https://llm.example.com/v1/chat/completions")


def test_llm_returns_completion_text() -> None:
    client, completions = _client_with(_completion("  A fine summary.  "))
    assert asyncio.run(client.complete("sys", "user text", 100, 0.3)) == "A fine summary."
    request = completions.requests[0]
    assert request["model"] == "test-model"
    assert request["messages"][0] == {"role": "system", "content": "sys"}
    assert request["max_tokens"] == 100


def test_llm_retries_without_system_prompt() -> None:
    rejected = openai.BadRequestError(
        "Developer instruction (system prompt) is not enabled for this model",
        response=httpx.Response(400, request=_request()),
        body=None,
    )
    client, completions = _client_with(rejected, _completion("Merged answer."))
    assert asyncio.run(client.complete("sys", "user text")) == "Merged answer."
    assert completions.requests[1]["messages"] == [{"role": "user", "content": "sys\n\nuser text"}]


def test_llm_status_error_keeps_status_and_body() -> None:
    failure = openai.InternalServerError(
        "server error",
        response=httpx.Response(500, text='{"error": "overloaded"}', request=_request()),
        body=None,
    )
    client, _ = _client_with(failure)
    with pytest.raises(UpstreamError) as excinfo:
        asyncio.run(client.complete("sys", "user text"))
    assert excinfo.value.status == 500
    assert "overloaded" in excinfo.value.body


@pytest.mark.parametrize("response", [
    SimpleNamespace(choices=[]),
    _completion(None),
    _completion("   "),
    SimpleNamespace(),
])
def test_llm_malformed_response_is_upstream_error(response) -> None:
    client, _ = _client_with(response)
    with pytest.raises(UpstreamError):
        asyncio.run(client.complete("sys", "user text"))


def test_llm_requires_api_key() -> None:
    with pytest.raises(ConfigurationError):
        LLMClient(api_key="")
