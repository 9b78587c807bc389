"""
Recap — summaries of videos, articles, PDFs and audio recordings.

Usage:
    from recap import ContentProcessor, summarize, summarize_batch

    # Summarize a single URL
    result = summarize("https://example.com/article")
    print(result.summary.content)

    # Summarize several URLs concurrently
    results = summarize_batch([
        "https://example.com/article1",
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
    ])

    # Full control (async)
    processor = ContentProcessor.from_config()
    result = await processor.submit("alice", "https://example.com/post/1")
    chat = await processor.open_chat(result.document_id)
    answer = await chat.ask("What is the main argument?")
"""

import asyncio
from typing import Optional, Union

from .errors import RecapError
from .schemas import ProcessResult, SourceType
from .service import ContentProcessor


def summarize(location: str, owner: str = "local", source_type: Optional[SourceType] = None,
              force: bool = False) -> ProcessResult:
    """Create a document for ``location`` and summarize it (blocking)."""
    processor = ContentProcessor.from_config()
    return asyncio.run(processor.submit(owner, location, source_type, force=force))


def summarize_batch(locations: list[str], owner: str = "local") -> list[Union[ProcessResult, RecapError]]:
    """Summarize several locations concurrently. Failures come back in place, in input order."""
    processor = ContentProcessor.from_config()

    async def run_all():
        return await asyncio.gather(
            *(processor.submit(owner, location) for location in locations),
            return_exceptions=True,
        )

    results = asyncio.run(run_all())
    for result in results:
        if isinstance(result, BaseException) and not isinstance(result, RecapError):
            raise result
    return results


__all__ = ["ContentProcessor", "ProcessResult", "RecapError", "SourceType", "summarize", "summarize_batch"]
