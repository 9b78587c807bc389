"""Chat about one document, grounded only in its transcript and summary.

Every turn rebuilds the prompt from scratch: document context, the
conversation so far, then the new question. Nothing is remembered by the
model between turns and nothing is persisted.
"""

from __future__ import annotations

import logging
from typing import Optional

from .errors import InvalidInput
from .llm import CompletionClient
from .schemas import ChatTurn, Document, Summary

logger = logging.getLogger(__name__)

NOT_FOUND_REPLY = "I couldn't find that in this document."
MAX_CONTEXT_CHARS = 12_000
MAX_HISTORY_TURNS = 6

CHAT_SYSTEM_PROMPT = (
    "You answer questions about a single document for the user. "
    "Use ONLY the document context provided below. Do not use outside or general knowledge. "
    f'If the context does not contain the answer, reply exactly: "{NOT_FOUND_REPLY}"'
)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rsplit(" ", 1)[0] + " [...]"


class ChatSession:
    def __init__(self, document: Document, summary: Optional[Summary], llm: CompletionClient, *,
                 max_tokens: int = 500, temperature: float = 0.2) -> None:
        self.document = document
        self.summary = summary
        self.llm = llm
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.turns: list[ChatTurn] = []

    @property
    def chat_options(self) -> list[str]:
        return list(self.summary.chat_options) if self.summary else []

    def build_context(self) -> str:
        parts = [f"Title: {self.document.title or self.document.source_location}",
                 f"Source: {self.document.source_type.value}"]
        if self.summary is not None:
            parts.append(f"Summary:\n{self.summary.content}")
        if self.document.transcript:
            parts.append(f"Full text:\n{_truncate(self.document.transcript, MAX_CONTEXT_CHARS)}")
        return "\n\n".join(parts)

    def build_prompt(self, question: str) -> str:
        lines = ["Document context:", self.build_context(), ""]
        history = self.turns[-MAX_HISTORY_TURNS:]
        if history:
            lines.append("Conversation so far:")
            for turn in history:
                lines.append(f"User: {turn.question}")
                lines.append(f"Assistant: {turn.answer}")
            lines.append("")
        lines.append(f"Question: {question}")
        return "\n".join(lines)

    async def ask(self, question: str) -> str:
        question = (question or "").strip()
        if not question:
            raise InvalidInput("question is empty")

        if not self.document.transcript and self.summary is None:
            # nothing to ground an answer in
            answer = NOT_FOUND_REPLY
        else:
            logger.info("Chat question on %s (%d prior turns)", self.document.id, len(self.turns))
            answer = await self.llm.complete(CHAT_SYSTEM_PROMPT, self.build_prompt(question),
                                             self.max_tokens, self.temperature)
        self.turns.append(ChatTurn(question=question, answer=answer))
        return answer
