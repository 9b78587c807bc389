"""Network helpers — shared httpx client settings, bounded downloads, retries."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

import httpx

from . import config
from .errors import FetchFailed

logger = logging.getLogger(__name__)

T = TypeVar("T")

BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                  "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",  # no zstd, no br
}

_CHUNK_SIZE = 256 * 1024


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential backoff: ``attempts`` retries after the first try."""

    attempts: int = 2
    base_delay: float = 1.5
    max_delay: float = 6.0

    def delays(self) -> list[float]:
        return [min(self.max_delay, self.base_delay * (2 ** n)) for n in range(max(0, self.attempts))]

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(
            attempts=config.get_int("RECAP_DOWNLOAD_RETRIES", 2),
            base_delay=config.get_float("RECAP_RETRY_BASE_DELAY", 1.5),
            max_delay=config.get_float("RECAP_RETRY_MAX_DELAY", 6.0),
        )


NO_RETRY = RetryPolicy(attempts=0)


def http_timeout() -> float:
    return config.get_float("RECAP_HTTP_TIMEOUT", 20.0)


def max_download_bytes() -> int:
    return config.get_int("RECAP_MAX_DOWNLOAD_MB", 50) * 1024 * 1024


def make_client(timeout: Optional[float] = None, **kwargs) -> httpx.AsyncClient:
    """Async client with a bounded timeout and redirects followed."""
    seconds = timeout if timeout is not None else http_timeout()
    return httpx.AsyncClient(
        timeout=httpx.Timeout(seconds, connect=min(seconds, 10.0)),
        follow_redirects=True,
        **kwargs,
    )


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    should_retry: Callable[[Exception], bool],
    label: str = "operation",
) -> T:
    delays = policy.delays()
    for attempt in range(len(delays) + 1):
        try:
            return await operation()
        except Exception as exc:
            if attempt >= len(delays) or not should_retry(exc):
                raise
            delay = delays[attempt]
            logger.info("%s failed (%s), retrying in %.1fs", label, exc, delay)
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")


def _retry_on_status(statuses: Iterable[int]) -> Callable[[Exception], bool]:
    wanted = set(statuses)

    def check(exc: Exception) -> bool:
        return isinstance(exc, FetchFailed) and exc.status in wanted

    return check


async def _stream_body(client: httpx.AsyncClient, url: str, headers: Optional[dict],
                       sink: Callable[[bytes], None]) -> str:
    limit = max_download_bytes()
    try:
        async with client.stream("GET", url, headers=headers) as response:
            if response.status_code >= 400:
                body = (await response.aread()).decode("utf-8", errors="replace")
                raise FetchFailed(f"GET {_safe_url(url)} failed",
                                  status=response.status_code, body=body[:500])
            total = 0
            async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                total += len(chunk)
                if total > limit:
                    raise FetchFailed(f"download exceeds {limit // (1024 * 1024)} MB limit")
                sink(chunk)
            return response.headers.get("content-type", "")
    except httpx.HTTPError as exc:
        raise FetchFailed(f"GET {_safe_url(url)} failed: {exc}") from exc


async def download_bytes(
    client: httpx.AsyncClient,
    url: str,
    *,
    policy: RetryPolicy = NO_RETRY,
    retry_statuses: Iterable[int] = (404,),
    headers: Optional[dict] = None,
) -> tuple[bytes, str]:
    """Download a URL into memory. Returns (body, content_type)."""

    async def attempt() -> tuple[bytes, str]:
        parts: list[bytes] = []
        content_type = await _stream_body(client, url, headers, parts.append)
        return b"".join(parts), content_type

    return await retry_async(attempt, policy=policy, should_retry=_retry_on_status(retry_statuses),
                             label=f"download {_safe_url(url)}")


async def download_to_file(
    client: httpx.AsyncClient,
    url: str,
    path: Path,
    *,
    policy: RetryPolicy = NO_RETRY,
    retry_statuses: Iterable[int] = (404,),
    headers: Optional[dict] = None,
) -> str:
    """Stream a URL to ``path``. Returns the response content type."""

    async def attempt() -> str:
        with open(path, "wb") as handle:
            return await _stream_body(client, url, headers, handle.write)

    return await retry_async(attempt, policy=policy, should_retry=_retry_on_status(retry_statuses),
                             label=f"download {_safe_url(url)}")


def _safe_url(url: str) -> str:
    """Drop the query string; signed URLs carry tokens there."""
    return url.split("?", 1)[0]
