"""Recap CLI — simple command-line interface.

Usage:
    recap process "https://youtube.com/watch?v=abc"
    recap process "https://example.com/post/1" --owner alice --raw
    recap process "uploads/report.pdf" --type pdf --title "Q3 report"
    recap show <document_id>
    recap ask <document_id> "What are the deadlines?"
    recap edit <document_id> notes.txt
    recap delete <document_id>
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer

from .config import setup_logging
from .errors import RecapError
from .renderer import render_result, render_summary
from .schemas import SourceType

app = typer.Typer(add_completion=False, pretty_exceptions_enable=False,
                  help="Summaries of videos, articles, PDFs and recordings.")


@app.callback()
def main() -> None:
    setup_logging()
    sys.stdout.reconfigure(encoding="utf-8")


def _processor():
    from .service import ContentProcessor

    return ContentProcessor.from_config()


def _fail(exc: RecapError) -> None:
    typer.echo(f"Error: {exc.user_message}", err=True)
    typer.echo(f"  ({exc})", err=True)
    raise typer.Exit(1)


@app.command()
def process(
    location: str = typer.Argument(..., help="URL or storage path of the content"),
    source_type: Optional[SourceType] = typer.Option(None, "--type", help="Skip auto-detection"),
    title: Optional[str] = typer.Option(None, help="Title for the document"),
    owner: str = typer.Option("local", help="Owner id recorded on the document"),
    force: bool = typer.Option(False, "--force", help="Regenerate even if a summary exists"),
    raw: bool = typer.Option(False, "--raw", help="Output raw JSON instead of rendered text"),
) -> None:
    """Create a document for LOCATION and summarize it."""
    try:
        result = asyncio.run(_processor().submit(owner, location, source_type, title, force=force))
    except RecapError as exc:
        _fail(exc)
        return

    if raw:
        typer.echo(json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False))
    else:
        typer.echo(render_result(result))


@app.command()
def show(
    document_id: str,
    raw: bool = typer.Option(False, "--raw", help="Output raw JSON instead of rendered text"),
) -> None:
    """Show the stored summary of a document."""
    try:
        summary = asyncio.run(_processor().get_summary(document_id))
    except RecapError as exc:
        _fail(exc)
        return

    if raw:
        typer.echo(json.dumps(summary.model_dump(mode="json"), indent=2, ensure_ascii=False))
    else:
        typer.echo(render_summary(summary))


@app.command()
def ask(document_id: str, question: str) -> None:
    """Ask a question answered only from the document."""

    async def run() -> str:
        session = await _processor().open_chat(document_id)
        return await session.ask(question)

    try:
        typer.echo(asyncio.run(run()))
    except RecapError as exc:
        _fail(exc)


@app.command()
def edit(document_id: str, content_file: Path = typer.Argument(..., exists=True, dir_okay=False)) -> None:
    """Replace a summary with the text in CONTENT_FILE."""
    content = content_file.read_text(encoding="utf-8")
    try:
        summary = asyncio.run(_processor().edit_summary(document_id, content))
    except RecapError as exc:
        _fail(exc)
        return
    typer.echo(render_summary(summary))


@app.command()
def delete(document_id: str) -> None:
    """Delete a summary and reset the document to pending."""
    try:
        deleted = asyncio.run(_processor().delete_summary(document_id))
    except RecapError as exc:
        _fail(exc)
        return
    typer.echo("Summary deleted." if deleted else "No summary to delete; document reset.")


if __name__ == "__main__":
    app()
