"""Recap data model — documents, extraction results, summaries, chat turns."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


class SourceType(str, Enum):
    PDF = "pdf"
    YOUTUBE = "youtube"
    ARTICLE = "article"
    AUDIO = "audio"


class DocumentStatus(str, Enum):
    PENDING = "pending"
    TEXT_EXTRACTED = "text_extracted"
    SUMMARIZED = "summarized"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = [DocumentStatus.PENDING, DocumentStatus.TEXT_EXTRACTED, DocumentStatus.SUMMARIZED]


class Document(BaseModel):
    id: str
    owner: str
    title: str = ""
    source_type: SourceType
    source_location: str
    status: DocumentStatus = DocumentStatus.PENDING
    transcript: Optional[str] = None  # None until extraction ran; "" means nothing extractable
    summary_text: str = ""
    created_at: str = ""
    updated_at: str = ""


class ExtractionResult(BaseModel):
    text: str = ""
    title: str = ""
    duration_seconds: int = Field(default=0, ge=0)
    source_url: str = ""
    warnings: list[str] = Field(default_factory=list)
    byline: Optional[str] = None  # articles only
    excerpt: Optional[str] = None  # articles only

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


class SummarySection(BaseModel):
    title: str
    bullets: list[str] = Field(default_factory=list)


class SummarizationResult(BaseModel):
    content: str
    key_points: list[str] = Field(default_factory=list)
    overview: list[str] = Field(default_factory=list)
    sections: list[SummarySection] = Field(default_factory=list)
    chat_options: list[str] = Field(default_factory=list)
    word_count: int = 0
    source_type: SourceType


class SummaryData(BaseModel):
    """Everything a summary row holds apart from its identity and timestamps."""

    owner: str
    content: str
    key_points: list[str] = Field(default_factory=list)
    word_count: int = 0
    overview: list[str] = Field(default_factory=list)
    sections: list[SummarySection] = Field(default_factory=list)
    chat_options: list[str] = Field(default_factory=list)
    source_type: SourceType
    source_url: str = ""
    source_title: str = ""


class Summary(SummaryData):
    id: str
    document_id: str
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def unsaved(cls, document_id: str, data: SummaryData) -> "Summary":
        """Build an in-memory summary for results that could not be persisted."""
        now = utc_now()
        return cls(id=new_id(), document_id=document_id, created_at=now, updated_at=now,
                   **data.model_dump())


class ChatTurn(BaseModel):
    question: str
    answer: str


class ProcessOutcome(str, Enum):
    SUMMARIZED = "summarized"
    EXISTING = "existing"
    EMPTY = "empty"


class ProcessResult(BaseModel):
    outcome: ProcessOutcome
    document_id: str
    summary: Optional[Summary] = None
    message: Optional[str] = None
    persisted: bool = True
    warnings: list[str] = Field(default_factory=list)
