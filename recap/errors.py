"""Error taxonomy shared by extractors, summarizer and orchestrator.

Every class carries a stable ``code`` and the user-visible message for
that failure. Upstream failures keep the HTTP status and response body
so they can be diagnosed without re-running the request.
"""

from __future__ import annotations

from typing import Optional


class RecapError(Exception):
    code = "error"
    user_message = "Something went wrong while processing this content."
    retryable = False

    def __init__(
        self,
        detail: str = "",
        *,
        status: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        self.detail = detail or self.user_message
        self.status = status
        self.body = body
        super().__init__(self.detail)

    def __str__(self) -> str:
        text = self.detail
        if self.status is not None:
            text = f"{text} (status {self.status})"
        if self.body:
            text = f"{text}: {self.body[:300]}"
        return text

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.user_message, "detail": self.detail}
        if self.status is not None:
            payload["status"] = self.status
        return payload


class InvalidInput(RecapError):
    code = "invalid_input"
    user_message = "That link or file doesn't look right. Please check it and try again."


class FetchFailed(RecapError):
    code = "fetch_failed"
    user_message = "We couldn't reach that content right now. Please try again in a moment."
    retryable = True


class UpstreamError(RecapError):
    code = "upstream_error"
    user_message = "The summarization service is unavailable right now. Please try again shortly."
    retryable = True


class ExtractionTooShort(RecapError):
    code = "extraction_too_short"
    user_message = "We couldn't find a readable article at that link."


class InputTooShort(RecapError):
    code = "input_too_short"
    user_message = "There isn't enough content here to summarize."


class NoTranscriptAvailable(RecapError):
    code = "no_transcript"
    user_message = "Sorry, we can't extract audio or captions for this video."


class ParseFailed(RecapError):
    code = "parse_failed"
    user_message = "This file appears to be damaged and could not be read."


class UnsupportedAudioFormat(RecapError):
    code = "unsupported_audio_format"
    user_message = "This audio format isn't supported. Try MP3, M4A, WAV, OGG, FLAC or WEBM."


class DocumentNotFound(RecapError):
    code = "document_not_found"
    user_message = "We couldn't find that document."


class SummaryNotFound(RecapError):
    code = "summary_not_found"
    user_message = "This document hasn't been summarized yet."


class ConfigurationError(RecapError):
    code = "configuration_error"
    user_message = "The service is not configured correctly."
