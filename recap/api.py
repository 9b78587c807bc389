"""Recap HTTP API — FastAPI endpoints for the note-taking app.

Usage:
    uvicorn recap.api:app --port 8080
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import setup_logging
from .errors import (
    ConfigurationError,
    DocumentNotFound,
    ExtractionTooShort,
    FetchFailed,
    InputTooShort,
    InvalidInput,
    NoTranscriptAvailable,
    ParseFailed,
    RecapError,
    SummaryNotFound,
    UnsupportedAudioFormat,
    UpstreamError,
)
from .schemas import ChatTurn, ProcessResult, SourceType, Summary
from .service import ContentProcessor

logger = logging.getLogger(__name__)

app = FastAPI(title="Recap Service", version="0.1.0")

_STATUS_BY_ERROR: list[tuple[type[RecapError], int]] = [
    (InvalidInput, 400),
    (DocumentNotFound, 404),
    (SummaryNotFound, 404),
    (UnsupportedAudioFormat, 415),
    (ExtractionTooShort, 422),
    (InputTooShort, 422),
    (NoTranscriptAvailable, 422),
    (ParseFailed, 422),
    (FetchFailed, 502),
    (UpstreamError, 502),
    (ConfigurationError, 500),
]


def status_for(exc: RecapError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


@app.exception_handler(RecapError)
async def recap_error_handler(request: Request, exc: RecapError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content=exc.to_dict())


@lru_cache(maxsize=1)
def get_processor() -> ContentProcessor:
    setup_logging()
    return ContentProcessor.from_config()


class DocumentRequest(BaseModel):
    location: str
    owner: str = "anonymous"
    source_type: Optional[SourceType] = None
    title: Optional[str] = None
    force: bool = False


class ProcessRequest(BaseModel):
    force: bool = False


class EditRequest(BaseModel):
    content: str


class ChatRequest(BaseModel):
    question: str
    history: list[ChatTurn] = []


class ChatResponse(BaseModel):
    answer: str
    chat_options: list[str] = []


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/documents", response_model=ProcessResult)
async def create_document(req: DocumentRequest, processor: ContentProcessor = Depends(get_processor)):
    return await processor.submit(req.owner, req.location, req.source_type, req.title, force=req.force)


@app.post("/documents/{document_id}/process", response_model=ProcessResult)
async def process_document(document_id: str, req: Optional[ProcessRequest] = None,
                           processor: ContentProcessor = Depends(get_processor)):
    force = req.force if req else False
    return await processor.process_document(document_id, force=force)


@app.get("/documents/{document_id}/summary", response_model=Summary)
async def get_summary(document_id: str, processor: ContentProcessor = Depends(get_processor)):
    return await processor.get_summary(document_id)


@app.put("/documents/{document_id}/summary", response_model=Summary)
async def edit_summary(document_id: str, req: EditRequest,
                       processor: ContentProcessor = Depends(get_processor)):
    return await processor.edit_summary(document_id, req.content)


@app.delete("/documents/{document_id}/summary")
async def delete_summary(document_id: str, processor: ContentProcessor = Depends(get_processor)):
    deleted = await processor.delete_summary(document_id)
    return {"document_id": document_id, "deleted": deleted}


@app.post("/documents/{document_id}/chat", response_model=ChatResponse)
async def chat(document_id: str, req: ChatRequest, processor: ContentProcessor = Depends(get_processor)):
    session = await processor.open_chat(document_id)
    # chat history lives with the client; replay it into the session
    session.turns.extend(req.history)
    answer = await session.ask(req.question)
    return ChatResponse(answer=answer, chat_options=session.chat_options)
