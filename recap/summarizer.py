"""Recap summarizer — normalized text in, structured summary out.

One completion request per summary. The prompt is tailored to the source
type; the free-text answer is then split into key points, an overview,
three titled sections and suggested chat questions. The structuring is a
heuristic over prose, so every field falls back to whatever sentences
exist rather than coming back empty.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from . import config
from .errors import InputTooShort
from .llm import CompletionClient
from .normalizer import collapse_whitespace
from .schemas import SourceType, SummarizationResult, SummarySection

logger = logging.getLogger(__name__)

MIN_INPUT_CHARS = 50
MAX_INPUT_CHARS = 120_000

# ── Source-specific prompts ──────────────────────────────────────

SYSTEM_PROMPT = (
    "You summarize content for a note-taking app. Be factual, clear and concise. "
    "Write plain prose in complete sentences. Do not invent facts that are not in the content."
)

_INSTRUCTIONS = {
    SourceType.YOUTUBE: (
        "This is a transcript from a YouTube video{titled}. "
        "Summarize the key points, main topics discussed, and any important insights or takeaways. "
        "Focus on the informational content and ignore filler words or tangential remarks."
    ),
    SourceType.ARTICLE: (
        "This is content from a web article{titled}. "
        "Summarize the main arguments, key findings and supporting evidence, and the conclusions. "
        "Focus on the core message the author presents."
    ),
    SourceType.PDF: (
        "This is content from a PDF document{titled}. "
        "Summarize the document's purpose, its key information, and the important details. "
        "Focus on what someone needs to know without reading the whole document."
    ),
    SourceType.AUDIO: (
        "This is a transcript of an audio recording{titled}. "
        "Summarize the main topics, the key points made, and any decisions or action items. "
        "Ignore filler words, false starts and small talk."
    ),
}

SECTION_TITLES = {
    SourceType.YOUTUBE: ("Main Topics Discussed", "Key Insights", "Takeaways"),
    SourceType.ARTICLE: ("Main Arguments", "Supporting Evidence", "Conclusions"),
    SourceType.PDF: ("Document Purpose", "Key Information", "Important Details"),
    SourceType.AUDIO: ("Topics Covered", "Key Points", "Action Items"),
}

CHAT_OPTIONS = {
    SourceType.YOUTUBE: [
        "What were the main points of this video?",
        "Can you explain the key concepts discussed?",
        "What are the practical applications mentioned?",
    ],
    SourceType.ARTICLE: [
        "What is the author's main argument?",
        "What evidence supports the claims?",
        "What are the article's conclusions?",
    ],
    SourceType.PDF: [
        "What is the main purpose of this document?",
        "Can you explain the key requirements?",
        "What are the important deadlines or dates?",
    ],
    SourceType.AUDIO: [
        "What were the main topics of this recording?",
        "What decisions or action items were mentioned?",
        "Can you explain the key points in more detail?",
    ],
}


def build_prompt(text: str, source_type: SourceType, title: Optional[str] = None) -> str:
    source_type = SourceType(source_type)
    titled = f' titled "{title}"' if title else ""
    instructions = _INSTRUCTIONS[source_type].format(titled=titled)
    return (
        f"Please provide a comprehensive summary of the following {source_type.value} content.\n\n"
        f"{instructions}\n\n"
        "Structure the summary as a few short paragraphs: start with what the content is about, "
        "then the most important points, then the conclusions or takeaways.\n\n"
        f"Content to summarize:\n{text}"
    )


# ── Structuring ──────────────────────────────────────────────────

_MARKDOWN_PREFIX_RE = re.compile(r"^\s*(?:#{1,6}\s+|[-*•▪]\s+|\d{1,2}[.)]\s+|>\s*)")
_EMPHASIS_RE = re.compile(r"(\*\*|__|`)")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+(?=[\"'(\[]?[A-Z0-9])")
_HEADING_ONLY_RE = re.compile(r"^[^.!?]{1,60}:$")

KEY_POINT_MIN = 20
KEY_POINT_MAX = 200


def split_sentences(summary: str) -> list[str]:
    """Markdown-aware sentence split of an LLM answer."""
    sentences: list[str] = []
    for raw_line in summary.splitlines():
        line = _EMPHASIS_RE.sub("", _MARKDOWN_PREFIX_RE.sub("", raw_line)).strip()
        if not line or _HEADING_ONLY_RE.match(line):
            continue
        for sentence in _SENTENCE_SPLIT_RE.split(line):
            sentence = collapse_whitespace(sentence)
            if sentence:
                sentences.append(sentence)
    return sentences


def _key_points(sentences: list[str]) -> list[str]:
    points = [s for s in sentences if KEY_POINT_MIN < len(s) < KEY_POINT_MAX]
    if len(points) < 3:
        # mostly fragments: pad with the remaining sentences, in order
        extra = [s for s in sentences if s not in points]
        points = points + extra[: 3 - len(points)]
    return points[:5]


def _thirds(sentences: list[str]) -> list[list[str]]:
    n = len(sentences)
    groups = [sentences[i * n // 3:(i + 1) * n // 3] for i in range(3)]
    for i, group in enumerate(groups):
        if not group:
            groups[i] = [sentences[min(i, n - 1)]]
    return [g[:4] for g in groups]


def structure_summary(content: str, source_type: SourceType, word_count: int = 0) -> SummarizationResult:
    """Derive key points, overview, sections and chat options from summary prose."""
    source_type = SourceType(source_type)
    sentences = split_sentences(content) or [collapse_whitespace(content)]
    sections = [
        SummarySection(title=title, bullets=bullets)
        for title, bullets in zip(SECTION_TITLES[source_type], _thirds(sentences))
    ]
    return SummarizationResult(
        content=content.strip(),
        key_points=_key_points(sentences),
        overview=sentences[:3],
        sections=sections,
        chat_options=list(CHAT_OPTIONS[source_type]),
        word_count=word_count,
        source_type=source_type,
    )


def count_words(text: str) -> int:
    return len(text.split())


# ── Summarizer ───────────────────────────────────────────────────

class Summarizer:
    def __init__(self, llm: CompletionClient, *, max_tokens: int = 1000,
                 temperature: float = 0.3) -> None:
        self.llm = llm
        self.max_tokens = max_tokens
        self.temperature = temperature

    @classmethod
    def from_config(cls, llm: CompletionClient) -> "Summarizer":
        return cls(
            llm,
            max_tokens=config.get_int("RECAP_LLM_MAX_TOKENS", 1000),
            temperature=config.get_float("RECAP_LLM_TEMPERATURE", 0.3),
        )

    async def summarize(self, text: str, *, source_type: SourceType,
                        title: Optional[str] = None) -> SummarizationResult:
        normalized = collapse_whitespace(text or "")
        if len(normalized) < MIN_INPUT_CHARS:
            raise InputTooShort(
                f"content is {len(normalized)} characters; at least {MIN_INPUT_CHARS} are needed"
            )

        source_type = SourceType(source_type)
        if len(normalized) > MAX_INPUT_CHARS:
            logger.info("Truncating %d chars of input to %d", len(normalized), MAX_INPUT_CHARS)
            normalized = normalized[:MAX_INPUT_CHARS].rsplit(" ", 1)[0]

        logger.info("Summarizing %s content (%d chars)", source_type.value, len(normalized))
        completion = await self.llm.complete(
            SYSTEM_PROMPT,
            build_prompt(normalized, source_type, title),
            self.max_tokens,
            self.temperature,
        )
        result = structure_summary(completion, source_type, word_count=count_words(text))
        logger.info("Summary structured: %d key points, %d sections",
                    len(result.key_points), len(result.sections))
        return result
