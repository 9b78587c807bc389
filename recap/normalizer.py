"""HTML/XML text normalizer — markup in, single-spaced plain text out.

Shared by the article and caption extractors. Pure and total: malformed
markup is stripped on a best-effort basis and never raises.
"""

from __future__ import annotations

import html
import re

_SCRIPT_RE = re.compile(r"<(script|style|noscript)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_COMMENT_RE = re.compile(r"<!--.*?(?:-->|$)", re.DOTALL)
_TAG_RE = re.compile(r"</?[A-Za-z!?][^<>]*>")
_DANGLING_TAG_RE = re.compile(r"<[A-Za-z/][A-Za-z0-9:-]*\s[^<>]*$")
_ENTITY_RE = re.compile(r"&(#\d{1,7}|#[xX][0-9a-fA-F]{1,6}|[A-Za-z][A-Za-z0-9]{1,31});")
_WS_RE = re.compile(r"\s+")

# Typographic entities are flattened to ASCII so downstream sentence
# splitting and prompts see plain quotes and dashes.
_TYPOGRAPHIC = {
    "&nbsp;": " ",
    "&apos;": "'",
    "&#39;": "'",
    "&lsquo;": "'",
    "&rsquo;": "'",
    "&sbquo;": "'",
    "&ldquo;": '"',
    "&rdquo;": '"',
    "&bdquo;": '"',
    "&ndash;": "-",
    "&mdash;": "-",
    "&hellip;": "...",
}

_TYPOGRAPHIC_CHARS = str.maketrans({
    "‘": "'", "’": "'", "‚": "'",
    "“": '"', "”": '"', "„": '"',
    "–": "-", "—": "-", "…": "...",
    " ": " ",
})


def _decode_entity(match: re.Match[str]) -> str:
    entity = match.group(0)
    mapped = _TYPOGRAPHIC.get(entity)
    if mapped is not None:
        return mapped
    decoded = html.unescape(entity)
    return decoded.translate(_TYPOGRAPHIC_CHARS)


def decode_entities(text: str) -> str:
    """Decode named and numeric entities. Unknown entities are left as-is."""
    return _ENTITY_RE.sub(_decode_entity, text)


def strip_tags(markup: str, replacement: str = " ") -> str:
    text = _SCRIPT_RE.sub(replacement, markup)
    text = _COMMENT_RE.sub(replacement, text)
    text = _TAG_RE.sub(replacement, text)
    return _DANGLING_TAG_RE.sub(replacement, text)


def flatten_typography(text: str) -> str:
    """Map curly quotes, dashes, ellipses and nbsp in already-decoded text to ASCII."""
    return text.translate(_TYPOGRAPHIC_CHARS)


def collapse_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def normalize(markup: str) -> str:
    """Strip tags, decode entities, collapse whitespace, trim."""
    if not markup:
        return ""
    if not isinstance(markup, str):
        markup = str(markup)
    return collapse_whitespace(decode_entities(strip_tags(markup)))
