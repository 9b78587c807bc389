"""Recap renderer — summaries and process results as plain-text cards.

Used by the CLI. Layout:

  ═══ RECAP ═══════════════════════════════════════
  <title>
  <source url>
  Type: YOUTUBE | Words: 1532 | Updated: 2026-01-01

  ─── SUMMARY / KEY POINTS / <section titles> / ASK ABOUT IT
"""

from __future__ import annotations

from .schemas import ProcessOutcome, ProcessResult, Summary

_WIDTH = 50


def _rule(label: str, char: str = "─") -> str:
    head = f"{char * 3} {label} "
    return head + char * max(1, _WIDTH - len(head))


def _truncate_line(text: str, max_len: int = 140) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len].rsplit(" ", 1)[0] + "..."


def render_summary(summary: Summary, *, show_sections: bool = True) -> str:
    lines: list[str] = [_rule("RECAP", "═")]
    lines.append(summary.source_title or summary.source_url or summary.document_id)
    if summary.source_url and summary.source_title:
        lines.append(summary.source_url)
    meta = f"Type: {summary.source_type.value.upper()}"
    if summary.word_count:
        meta += f" | Words: {summary.word_count}"
    if summary.updated_at:
        meta += f" | Updated: {summary.updated_at[:10]}"
    lines.append(meta)

    lines.append("")
    lines.append(_rule("SUMMARY"))
    lines.append(summary.content)

    if summary.key_points:
        lines.append("")
        lines.append(_rule("KEY POINTS"))
        for point in summary.key_points:
            lines.append(f"• {_truncate_line(point)}")

    if show_sections:
        for section in summary.sections:
            if not section.bullets:
                continue
            lines.append("")
            lines.append(_rule(section.title.upper()))
            for bullet in section.bullets:
                lines.append(f"▸ {_truncate_line(bullet, 100)}")

    if summary.chat_options:
        lines.append("")
        lines.append(_rule("ASK ABOUT IT"))
        for question in summary.chat_options:
            lines.append(f"→ {question}")

    return "\n".join(lines)


def render_result(result: ProcessResult) -> str:
    """Render a process result: the summary card, or the reason there is none."""
    if result.outcome is ProcessOutcome.EMPTY or result.summary is None:
        lines = [_rule("RECAP", "═"), result.message or "Nothing to summarize."]
        for warning in result.warnings:
            lines.append(f"  ({warning})")
        lines.append(f"Document: {result.document_id}")
        return "\n".join(lines)

    text = render_summary(result.summary)
    notes: list[str] = []
    if result.outcome is ProcessOutcome.EXISTING:
        notes.append("(existing summary, use --force to regenerate)")
    if not result.persisted:
        notes.append("(warning: summary could not be saved)")
    notes.append(f"Document: {result.document_id}")
    return text + "\n\n" + "\n".join(notes)
