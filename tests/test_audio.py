"""Tests for direct audio uploads and the shared download helpers."""

import asyncio

import httpx
import pytest

from recap import config
from recap.errors import FetchFailed, UnsupportedAudioFormat
from recap.extractors.audio import AudioExtractor
from recap.net import RetryPolicy, download_bytes
from recap.schemas import Document, SourceType
from recap.transcription import AudioTranscriber

from fakes import FakeSTTBackend


def _document(location: str) -> Document:
    return Document(id="doc-a", owner="alice", title="Standup", source_type=SourceType.AUDIO,
                    source_location=location)


def _extract(location: str, handler, backend: FakeSTTBackend):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            extractor = AudioExtractor(AudioTranscriber(backend), client=client)
            return await extractor.extract(_document(location))

    return asyncio.run(go())


def test_audio_upload_is_transcribed() -> None:
    backend = FakeSTTBackend(text="we agreed to ship on friday")
    result = _extract(
        "https://files.example.com/standup.m4a",
        lambda request: httpx.Response(200, content=b"m4a bytes", headers={"content-type": "audio/mp4"}),
        backend,
    )
    assert result.text == "we agreed to ship on friday"
    assert result.title == "Standup"
    assert backend.paths[0].suffix == ".mp4"
    assert not backend.paths[0].exists()


def test_octet_stream_uses_filename() -> None:
    backend = FakeSTTBackend()
    _extract(
        "https://files.example.com/standup.ogg",
        lambda request: httpx.Response(200, content=b"ogg bytes",
                                       headers={"content-type": "application/octet-stream"}),
        backend,
    )
    assert backend.paths[0].suffix == ".ogg"


def test_empty_audio_download_is_empty_result() -> None:
    backend = FakeSTTBackend()
    result = _extract("https://files.example.com/standup.mp3",
                      lambda request: httpx.Response(200, content=b""), backend)
    assert result.is_empty
    assert result.warnings == ["downloaded audio is empty"]
    assert backend.paths == []


def test_unsupported_audio_type() -> None:
    with pytest.raises(UnsupportedAudioFormat):
        _extract("https://files.example.com/clip",
                 lambda request: httpx.Response(200, content=b"???", headers={"content-type": "image/png"}),
                 FakeSTTBackend())


def test_retry_policy_backoff_is_capped() -> None:
    assert RetryPolicy(attempts=4, base_delay=1.5, max_delay=6.0).delays() == [1.5, 3.0, 6.0, 6.0]
    assert RetryPolicy(attempts=0).delays() == []


def test_retry_policy_from_config(monkeypatch) -> None:
    monkeypatch.setenv("RECAP_DOWNLOAD_RETRIES", "3")
    monkeypatch.setenv("RECAP_RETRY_BASE_DELAY", "0.5")
    monkeypatch.setenv("RECAP_RETRY_MAX_DELAY", "not-a-number")
    policy = RetryPolicy.from_config()
    assert policy == RetryPolicy(attempts=3, base_delay=0.5, max_delay=6.0)


def test_download_size_limit(monkeypatch) -> None:
    monkeypatch.setenv("RECAP_MAX_DOWNLOAD_MB", "1")

    async def go():
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"x" * (2 * 1024 * 1024)))
        async with httpx.AsyncClient(transport=transport) as client:
            return await download_bytes(client, "https://files.example.com/huge.mp3")

    with pytest.raises(FetchFailed, match="limit"):
        asyncio.run(go())


def test_config_getters(monkeypatch) -> None:
    monkeypatch.setenv("RECAP_TEST_INT", "12")
    monkeypatch.setenv("RECAP_TEST_BAD_INT", "twelve")
    assert config.get_int("RECAP_TEST_INT", 1) == 12
    assert config.get_int("RECAP_TEST_BAD_INT", 1) == 1
    assert config.get_int("RECAP_TEST_MISSING", 7) == 7
