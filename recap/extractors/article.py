"""Article extractor — fetch a web page and pull out the readable article text.

Main content is located heuristically:
  1. <article>
  2. a container whose class mentions article / content / post
  3. <main>
  4. <body>
If that yields too little text, trafilatura gets a pass over the same HTML
before the page is rejected as "not a readable article".
"""

from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import unquote, urlparse

import httpx
from bs4 import BeautifulSoup, Comment, Tag

from ..errors import ExtractionTooShort, FetchFailed, InvalidInput
from ..net import BROWSER_HEADERS, make_client
from ..normalizer import collapse_whitespace, flatten_typography
from ..schemas import ExtractionResult

logger = logging.getLogger(__name__)

MIN_ARTICLE_CHARS = 100
MIN_LINE_CHARS = 10

ARTICLE_DOMAINS = (
    "medium.com", "substack.com", "dev.to", "hashnode.com",
    "wordpress.com", "blogspot.com", "ghost.org",
    "nytimes.com", "washingtonpost.com", "theguardian.com",
    "bbc.com", "bbc.co.uk", "cnn.com", "reuters.com", "apnews.com",
    "techcrunch.com", "arstechnica.com", "wired.com",
    "theatlantic.com", "newyorker.com", "economist.com",
)

_ARTICLE_PATH_PATTERNS = [
    re.compile(r"/articles?/"),
    re.compile(r"/blog/"),
    re.compile(r"/news/"),
    re.compile(r"/posts?/"),
    re.compile(r"/story/"),
    re.compile(r"/\d{4}/\d{2}/\d{2}/"),
    re.compile(r"/[a-z0-9-]+\.html?$"),
]

_CHROME_RE = re.compile(
    r"\b(?:share(?: this)?|tweet|pin it|email|print|subscribe|newsletter|sign up|log in|"
    r"advertisement|sponsored|cookies?(?: policy| settings)?|accept|privacy(?: policy)?|"
    r"terms of (?:use|service)|read more|related articles?|comments?|skip to content)\b",
    re.IGNORECASE,
)

_SITE_SUFFIX_RE = re.compile(r"\s+[-|:]\s+[^-|:]+$")
_BYLINE_RE = re.compile(r"\bby\s+([A-Z][\w.'-]+(?:\s+[A-Z][\w.'-]+){0,3})")
_CONTAINER_CLASS_RE = re.compile(r"article|content|post", re.IGNORECASE)

_NON_CONTENT_TAGS = ["head", "script", "style", "noscript", "template", "nav", "footer", "aside", "form"]
_BLOCK_TAGS = ["p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote",
               "section", "pre", "tr", "article", "main", "header", "table", "ul", "ol"]
# Marks block boundaries in get_text() output; source newlines inside a
# paragraph are only whitespace.
_BREAK = "\u2029"


def is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except (TypeError, ValueError):
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_likely_article_url(url: str) -> bool:
    """Classify a URL as probably-an-article using domain and path heuristics."""
    if not is_valid_url(url):
        return False
    parsed = urlparse(url)
    hostname = (parsed.hostname or "").lower()
    path = parsed.path.lower()

    if any(hostname == d or hostname.endswith("." + d) for d in ARTICLE_DOMAINS):
        return True
    return any(pattern.search(path) for pattern in _ARTICLE_PATH_PATTERNS)


def _clean(text: str) -> str:
    return collapse_whitespace(flatten_typography(text))


# ── Metadata ─────────────────────────────────────────────────

def _meta_tags(soup: BeautifulSoup) -> dict[str, str]:
    """First non-empty content per meta name/property, keys lower-cased."""
    meta: dict[str, str] = {}
    for tag in soup.find_all("meta"):
        name = (tag.get("name") or tag.get("property") or "").lower()
        content = _clean(tag.get("content") or "")
        if name and content:
            meta.setdefault(name, content)
    return meta


def _meta_content(meta: dict[str, str], *names: str) -> Optional[str]:
    for name in names:
        if meta.get(name):
            return meta[name]
    return None


def title_from_url(url: str) -> str:
    parsed = urlparse(url)
    segments = [s for s in parsed.path.split("/") if s]
    last = unquote(segments[-1]) if segments else (parsed.hostname or "")
    last = re.sub(r"\.[A-Za-z0-9]{1,5}$", "", last)
    words = re.sub(r"[-_+]+", " ", last).split()
    return " ".join(w[:1].upper() + w[1:] for w in words) or "Article"


def _extract_title(soup: BeautifulSoup, url: str) -> str:
    title = _clean(soup.title.get_text()) if soup.title else ""
    if title:
        stripped = _SITE_SUFFIX_RE.sub("", title).strip()
        return stripped or title
    return title_from_url(url)


def _extract_byline(meta: dict[str, str], text: str) -> Optional[str]:
    author = _meta_content(meta, "author", "article:author")
    if author:
        return author
    match = _BYLINE_RE.search(text[:2000])
    return match.group(1).strip() if match else None


# ── Main content ─────────────────────────────────────────────

def _find_container(soup: BeautifulSoup) -> tuple[Tag, str]:
    """Locate the main content block. Returns (container, strategy)."""
    container = soup.find("article")
    if container:
        return container, "article"

    container = soup.find(["div", "section"], class_=_CONTAINER_CLASS_RE)
    if container:
        return container, "class"

    container = soup.find("main")
    if container:
        return container, "main"

    return soup.body or soup, "body"


def _is_chrome(line: str) -> bool:
    return len(collapse_whitespace(_CHROME_RE.sub(" ", line))) <= MIN_LINE_CHARS


def _container_text(container: Tag) -> str:
    """Block elements become lines; chrome and navigation-sized lines are dropped.

    Mutates ``container``.
    """
    for tag in container.find_all(_NON_CONTENT_TAGS):
        if not tag.decomposed:
            tag.decompose()
    for comment in container.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()
    for br in container.find_all("br"):
        br.replace_with(_BREAK)
    for block in container.find_all(_BLOCK_TAGS):
        block.append(_BREAK)

    lines = []
    for raw in container.get_text().split(_BREAK):
        line = _clean(raw)
        if len(line) <= MIN_LINE_CHARS or _is_chrome(line):
            continue
        lines.append(line)
    return "\n".join(lines)


def _trafilatura_text(html: str) -> Optional[str]:
    try:
        import trafilatura
    except ImportError:
        logger.warning("trafilatura not installed. Run: pip install trafilatura")
        return None

    text = trafilatura.extract(
        html,
        include_links=False,
        include_images=False,
        include_tables=True,
        favor_recall=True,
    )
    return text.strip() if text else None


def parse_article_html(html: str, url: str) -> ExtractionResult:
    """Turn fetched HTML into an ExtractionResult (no length check)."""
    soup = BeautifulSoup(html, "html.parser")
    meta = _meta_tags(soup)
    title = _extract_title(soup, url)
    container, strategy = _find_container(soup)
    text = _container_text(container)
    warnings: list[str] = []
    logger.debug("Article container via %s (%d chars of text)", strategy, len(text))

    if len(text) < MIN_ARTICLE_CHARS:
        fallback = _trafilatura_text(html)
        if fallback and len(fallback) > len(text):
            warnings.append(f"heuristic extraction ({strategy}) too short, used trafilatura")
            text = fallback

    return ExtractionResult(
        text=text,
        title=title,
        source_url=url,
        warnings=warnings,
        byline=_extract_byline(meta, collapse_whitespace(text)),
        excerpt=_meta_content(meta, "description", "og:description", "twitter:description"),
    )


async def extract_article(url: str, *, client: Optional[httpx.AsyncClient] = None) -> ExtractionResult:
    """Fetch ``url`` and extract its readable article text."""
    if not is_valid_url(url):
        raise InvalidInput(f"not an http(s) URL: {url!r}")

    logger.info("Fetching article: %s", url)
    owns_client = client is None
    client = client or make_client()
    try:
        response = await client.get(url, headers=BROWSER_HEADERS)
    except httpx.HTTPError as exc:
        raise FetchFailed(f"GET {url} failed: {exc}") from exc
    finally:
        if owns_client:
            await client.aclose()

    if not response.is_success:
        raise FetchFailed(f"GET {url} failed", status=response.status_code, body=response.text[:500])

    result = parse_article_html(response.text, url)
    if len(result.text) < MIN_ARTICLE_CHARS:
        raise ExtractionTooShort(
            f"extracted {len(result.text)} characters from {url}; not a readable article"
        )

    logger.info("Extracted article %r (%d chars)", result.title, len(result.text))
    return result
