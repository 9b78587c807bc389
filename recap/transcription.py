"""Audio transcription adapter — audio bytes in, flat transcript text out.

Backends:
  openai  — any OpenAI-compatible /audio/transcriptions endpoint (Whisper)
  local   — faster-whisper on CPU, no API key needed

Temporary files live inside a TemporaryDirectory for the duration of one
call, so they are removed on every exit path.
"""

from __future__ import annotations

import asyncio
import io
import logging
import tempfile
from pathlib import Path
from typing import BinaryIO, Optional, Protocol

from . import config
from .errors import ConfigurationError, UnsupportedAudioFormat, UpstreamError

logger = logging.getLogger(__name__)

# MIME subtype (or bare extension) → file extension the backend will accept
AUDIO_EXTENSIONS = {
    "flac": "flac",
    "m4a": "m4a",
    "mp3": "mp3",
    "mp4": "mp4",
    "mpeg": "mp3",
    "mpga": "mp3",
    "oga": "oga",
    "ogg": "ogg",
    "wav": "wav",
    "wave": "wav",
    "webm": "webm",
}

DEFAULT_EXTENSION = "mp3"


def extension_for(mime_hint: Optional[str], filename: Optional[str] = None) -> str:
    """Resolve the temp-file extension for an audio payload.

    No hint → mp3. A hint outside the table falls back to the filename's
    extension; if that is unknown too the format is unsupported.
    """
    if mime_hint:
        subtype = mime_hint.split(";", 1)[0].strip().lower().rsplit("/", 1)[-1]
        if subtype.startswith("x-"):
            subtype = subtype[2:]
        if subtype in AUDIO_EXTENSIONS:
            return AUDIO_EXTENSIONS[subtype]
    if filename and "." in filename:
        suffix = filename.rsplit(".", 1)[-1].lower()
        if suffix in AUDIO_EXTENSIONS:
            return AUDIO_EXTENSIONS[suffix]
    if mime_hint:
        raise UnsupportedAudioFormat(f"unsupported audio type {mime_hint!r}")
    return DEFAULT_EXTENSION


class TranscriptionBackend(Protocol):
    name: str

    async def transcribe_file(self, path: Path) -> str: ...


class OpenAITranscriptionBackend:
    name = "openai"

    def __init__(self, api_key: str, base_url: Optional[str] = None,
                 model: str = "whisper-1", timeout: float = 300.0) -> None:
        if not api_key:
            raise ConfigurationError("No speech-to-text API key. Set RECAP_STT_API_KEY or OPENAI_API_KEY.")
        self.model = model
        self._client_kwargs = {"api_key": api_key, "timeout": timeout, "max_retries": 1}
        if base_url:
            self._client_kwargs["base_url"] = base_url
        self._client = None

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(**self._client_kwargs)
        return self._client

    async def transcribe_file(self, path: Path) -> str:
        import openai

        client = self._get_client()
        try:
            with open(path, "rb") as audio_file:
                response = await client.audio.transcriptions.create(
                    model=self.model,
                    file=audio_file,
                    response_format="text",
                )
        except openai.APIStatusError as exc:
            raise UpstreamError("transcription request failed",
                                status=exc.status_code, body=exc.response.text) from exc
        except openai.APIError as exc:
            raise UpstreamError(f"transcription request failed: {exc}") from exc

        text = response if isinstance(response, str) else getattr(response, "text", None)
        if not isinstance(text, str):
            raise UpstreamError("transcription response missing text")
        return text.strip()


class LocalWhisperBackend:
    """faster-whisper on CPU.

    The model call cannot be cancelled: after a timeout it keeps running in
    its worker thread. The audio is read into memory first, so the caller
    may remove the temp file while it runs.
    """

    name = "local"

    def __init__(self, model_size: str = "base") -> None:
        self.model_size = model_size
        self._model = None

    def _load(self):
        if self._model is None:
            try:
                from faster_whisper import WhisperModel
            except ImportError as exc:
                raise ConfigurationError(
                    "faster-whisper not installed. Run: pip install 'recap[local-stt]'"
                ) from exc
            logger.info("Loading local Whisper model (%s)...", self.model_size)
            self._model = WhisperModel(self.model_size, device="cpu", compute_type="int8")
        return self._model

    def _transcribe_sync(self, audio: BinaryIO) -> str:
        model = self._load()
        segments, info = model.transcribe(audio, beam_size=5)
        texts = [seg.text.strip() for seg in segments if seg.text.strip()]
        logger.info("Detected language: %s (%.0f%% confidence)",
                    info.language, info.language_probability * 100)
        return " ".join(texts)

    async def transcribe_file(self, path: Path) -> str:
        data = await asyncio.to_thread(Path(path).read_bytes)
        return await asyncio.to_thread(self._transcribe_sync, io.BytesIO(data))


def backend_from_config() -> TranscriptionBackend:
    backend = config.get("RECAP_STT_BACKEND", "openai").lower()
    if backend == "local":
        return LocalWhisperBackend(config.get("RECAP_WHISPER_MODEL", "base"))
    if backend != "openai":
        raise ConfigurationError(f"unknown RECAP_STT_BACKEND {backend!r}")
    return OpenAITranscriptionBackend(
        api_key=config.get("RECAP_STT_API_KEY") or config.get("OPENAI_API_KEY"),
        base_url=config.get("RECAP_STT_BASE_URL") or None,
        model=config.get("RECAP_STT_MODEL", "whisper-1"),
        timeout=config.get_float("RECAP_STT_TIMEOUT", 300.0),
    )


class AudioTranscriber:
    """Speech-to-text entry point used by the YouTube fallback and audio uploads."""

    def __init__(self, backend: TranscriptionBackend, timeout: Optional[float] = None) -> None:
        self.backend = backend
        self.timeout = timeout

    @classmethod
    def from_config(cls) -> "AudioTranscriber":
        return cls(backend_from_config(), timeout=config.get_float("RECAP_STT_TIMEOUT", 300.0))

    async def transcribe_file(self, path: Path) -> str:
        logger.info("Transcribing %s via %s backend", Path(path).name, self.backend.name)
        try:
            text = await asyncio.wait_for(self.backend.transcribe_file(Path(path)), self.timeout)
        except asyncio.TimeoutError as exc:
            if isinstance(self.backend, LocalWhisperBackend):
                logger.warning("Local transcription of %s still running after timeout", Path(path).name)
            raise UpstreamError(f"transcription timed out after {self.timeout:.0f}s") from exc
        return text.strip()

    async def transcribe(self, audio: bytes, mime_hint: Optional[str] = None,
                         filename: Optional[str] = None) -> str:
        extension = extension_for(mime_hint, filename)
        with tempfile.TemporaryDirectory(prefix="recap-stt-") as temp_dir:
            path = Path(temp_dir) / f"audio.{extension}"
            path.write_bytes(audio)
            logger.debug("Wrote %d bytes of audio to %s", len(audio), path)
            return await self.transcribe_file(path)
