"""YouTube extractor — video URL in, transcript out.

Fallback chain:
  1. video info from the watch page (title, length, caption tracks)
     (a 410 here skips straight to step 3)
  2. caption track (English preferred) → XML → plain text
     (410 / no tracks / no track URL count as "no captions")
  3. best audio-only stream via yt-dlp → speech-to-text

When step 3 fails too, the video has no usable transcript and the
extraction ends with NoTranscriptAvailable.
"""

from __future__ import annotations

import asyncio
import json
import logging
import mimetypes
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol
from urllib.parse import parse_qs, urlparse

import httpx

from .. import config
from ..errors import FetchFailed, InvalidInput, NoTranscriptAvailable, RecapError, UnsupportedAudioFormat
from ..net import BROWSER_HEADERS, download_to_file, make_client
from ..normalizer import collapse_whitespace, normalize
from ..schemas import ExtractionResult
from ..transcription import DEFAULT_EXTENSION, AudioTranscriber, extension_for

logger = logging.getLogger(__name__)

GONE = 410

YOUTUBE_HOSTS = {"youtube.com", "www.youtube.com", "m.youtube.com", "music.youtube.com",
                 "youtu.be", "www.youtube-nocookie.com", "youtube-nocookie.com"}

_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
_PATH_PREFIXES = ("embed", "v", "shorts", "live")


# ── Data classes ──────────────────────────────────────────────

@dataclass(slots=True)
class CaptionTrack:
    language_code: str
    base_url: str
    name: str = ""


@dataclass(slots=True)
class VideoInfo:
    video_id: str
    title: str = ""
    length_seconds: int = 0
    caption_tracks: list[CaptionTrack] = field(default_factory=list)


class VideoSource(Protocol):
    async def get_video_info(self, video_id: str) -> VideoInfo: ...

    async def fetch_caption_document(self, track_url: str) -> str: ...

    async def download_audio(self, video_id: str, dest_dir: Path) -> tuple[Path, str]: ...


# ── URL handling ─────────────────────────────────────────────

def is_youtube_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except (TypeError, ValueError):
        return False
    return parsed.scheme in ("http", "https") and (parsed.hostname or "").lower() in YOUTUBE_HOSTS


def extract_video_id(url: str) -> str:
    """Pull the 11-character video ID out of any common YouTube URL form."""
    if not is_youtube_url(url):
        raise InvalidInput(f"not a YouTube URL: {url!r}")

    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    parts = [p for p in parsed.path.split("/") if p]

    candidate = None
    if host == "youtu.be":
        candidate = parts[0] if parts else None
    elif parts[:1] == ["watch"] or not parts:
        candidate = (parse_qs(parsed.query).get("v") or [None])[0]
    elif len(parts) >= 2 and parts[0] in _PATH_PREFIXES:
        candidate = parts[1]

    if not candidate or not _VIDEO_ID_RE.match(candidate):
        raise InvalidInput(f"could not find a video ID in {url!r}")
    return candidate


# ── Caption parsing ──────────────────────────────────────────

_CUE_RE = re.compile(r"<(text|p)\b[^>]*>(.*?)</\1\s*>", re.IGNORECASE | re.DOTALL)
_NON_SPEECH_RE = re.compile(r"[\[(][^\])]*[\])]|[♪♫\s]+")


def parse_caption_xml(xml: str) -> str:
    """Flatten a timedtext document (srv1 <text> or srv3 <p>/<s>) to plain text."""
    lines = []
    previous = ""
    for _, body in _CUE_RE.findall(xml):
        # Cue text is entity-encoded inside XML, so it is decoded twice.
        line = normalize(normalize(body))
        if not line or line == previous or _NON_SPEECH_RE.fullmatch(line):
            continue
        lines.append(line)
        previous = line
    return collapse_whitespace(" ".join(lines))


def pick_caption_track(tracks: list[CaptionTrack]) -> Optional[CaptionTrack]:
    if not tracks:
        return None
    for track in tracks:
        if track.language_code.lower().startswith("en"):
            return track
    return tracks[0]


# ── Watch-page client ────────────────────────────────────────

_PLAYER_RESPONSE_RE = re.compile(r"ytInitialPlayerResponse\s*=\s*")


def parse_player_response(html: str) -> dict[str, Any]:
    match = _PLAYER_RESPONSE_RE.search(html)
    if not match:
        return {}
    try:
        data, _ = json.JSONDecoder().raw_decode(html, match.end())
    except json.JSONDecodeError:
        logger.debug("Could not decode ytInitialPlayerResponse")
        return {}
    return data if isinstance(data, dict) else {}


def video_info_from_player_response(video_id: str, player: dict[str, Any]) -> VideoInfo:
    details = player.get("videoDetails") or {}
    renderer = (player.get("captions") or {}).get("playerCaptionsTracklistRenderer") or {}
    tracks = []
    for raw in renderer.get("captionTracks") or []:
        name = raw.get("name") or {}
        tracks.append(CaptionTrack(
            language_code=raw.get("languageCode", ""),
            base_url=raw.get("baseUrl", ""),
            name=name.get("simpleText", "") if isinstance(name, dict) else str(name),
        ))
    try:
        length = int(details.get("lengthSeconds") or 0)
    except (TypeError, ValueError):
        length = 0
    return VideoInfo(
        video_id=video_id,
        title=details.get("title", ""),
        length_seconds=max(0, length),
        caption_tracks=tracks,
    )


class YouTubeClient:
    """Talks to youtube.com for metadata/captions and to yt-dlp for audio."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None,
                 ytdlp_timeout: float = 60.0) -> None:
        self._client = client
        self.ytdlp_timeout = ytdlp_timeout

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = make_client()
        return self._client

    async def _get(self, url: str) -> str:
        try:
            response = await self._http().get(url, headers=BROWSER_HEADERS)
        except httpx.HTTPError as exc:
            raise FetchFailed(f"GET {url} failed: {exc}") from exc
        if not response.is_success:
            raise FetchFailed(f"GET {url} failed", status=response.status_code,
                              body=response.text[:500])
        return response.text

    async def get_video_info(self, video_id: str) -> VideoInfo:
        html = await self._get(f"https://www.youtube.com/watch?v={video_id}&hl=en")
        info = video_info_from_player_response(video_id, parse_player_response(html))
        logger.info("Video %s: %r (%ds, %d caption tracks)",
                    video_id, info.title, info.length_seconds, len(info.caption_tracks))
        return info

    async def fetch_caption_document(self, track_url: str) -> str:
        return await self._get(track_url)

    async def get_best_audio_stream_url(self, video_id: str) -> str:
        yt_dlp_path = shutil.which("yt-dlp")
        if not yt_dlp_path:
            raise FetchFailed("yt-dlp is not installed")

        process = await asyncio.create_subprocess_exec(
            yt_dlp_path, "-f", "bestaudio", "-g",
            "--no-warnings", "--quiet", "--no-playlist",
            f"https://www.youtube.com/watch?v={video_id}",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), self.ytdlp_timeout)
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise FetchFailed(f"yt-dlp timed out after {self.ytdlp_timeout:.0f}s") from exc

        if process.returncode != 0:
            raise FetchFailed("yt-dlp could not resolve an audio stream",
                              body=stderr.decode("utf-8", errors="replace")[:500])
        lines = [line.strip() for line in stdout.decode("utf-8", errors="replace").splitlines()]
        url = next((line for line in lines if line.startswith("http")), "")
        if not url:
            raise FetchFailed("yt-dlp returned no audio stream URL")
        return url

    async def download_audio(self, video_id: str, dest_dir: Path) -> tuple[Path, str]:
        stream_url = await self.get_best_audio_stream_url(video_id)
        mime = _mime_from_stream_url(stream_url)
        target = Path(dest_dir) / "audio.bin"
        content_type = await download_to_file(self._http(), stream_url, target, headers=BROWSER_HEADERS)
        mime = mime or content_type.split(";", 1)[0].strip()
        logger.info("Downloaded %d bytes of audio (%s) for %s",
                    target.stat().st_size, mime or "unknown type", video_id)
        return target, mime


def _mime_from_stream_url(url: str) -> str:
    """googlevideo URLs carry the stream type in a ``mime`` query parameter."""
    mime = (parse_qs(urlparse(url).query).get("mime") or [""])[0]
    if mime:
        return mime
    guessed, _ = mimetypes.guess_type(urlparse(url).path)
    return guessed or ""


# ── Extractor ────────────────────────────────────────────────

class YouTubeExtractor:
    def __init__(self, source: VideoSource, transcriber: AudioTranscriber,
                 audio_timeout: float = 600.0) -> None:
        self.source = source
        self.transcriber = transcriber
        self.audio_timeout = audio_timeout

    @classmethod
    def from_config(cls, transcriber: AudioTranscriber,
                    client: Optional[httpx.AsyncClient] = None) -> "YouTubeExtractor":
        return cls(
            YouTubeClient(client),
            transcriber,
            audio_timeout=config.get_float("RECAP_AUDIO_FALLBACK_TIMEOUT", 600.0),
        )

    async def _captions(self, info: VideoInfo, warnings: list[str]) -> str:
        track = pick_caption_track(info.caption_tracks)
        if track is None:
            warnings.append("no caption tracks")
            return ""
        if not track.base_url:
            warnings.append(f"caption track {track.language_code or '?'} has no URL")
            return ""

        try:
            xml = await self.source.fetch_caption_document(track.base_url)
        except FetchFailed as exc:
            if exc.status != GONE:
                raise
            logger.warning("Caption endpoint returned 410 for %s", info.video_id)
            warnings.append("caption track returned 410")
            return ""

        text = parse_caption_xml(xml)
        if text:
            logger.info("Captions (%s) for %s: %d chars", track.language_code, info.video_id, len(text))
        else:
            warnings.append("caption track was empty")
        return text

    async def _transcribe_audio(self, video_id: str) -> str:
        with tempfile.TemporaryDirectory(prefix="recap-audio-") as temp_dir:
            path, mime = await self.source.download_audio(video_id, Path(temp_dir))
            extension = _audio_extension(mime)
            if path.suffix != f".{extension}":
                path = path.rename(path.with_suffix(f".{extension}"))
            return await self.transcriber.transcribe_file(path)

    async def _audio_fallback(self, video_id: str) -> str:
        logger.info("Falling back to audio transcription for %s", video_id)
        try:
            text = await asyncio.wait_for(self._transcribe_audio(video_id), self.audio_timeout)
        except asyncio.TimeoutError as exc:
            raise NoTranscriptAvailable(
                f"audio fallback for {video_id} exceeded {self.audio_timeout:.0f}s"
            ) from exc
        except (RecapError, OSError) as exc:
            raise NoTranscriptAvailable(f"audio fallback for {video_id} failed: {exc}") from exc
        if not text:
            raise NoTranscriptAvailable(f"audio transcription for {video_id} was empty")
        return text

    async def extract(self, url: str) -> ExtractionResult:
        video_id = extract_video_id(url)
        warnings: list[str] = []
        title, duration, transcript = "", 0, ""

        try:
            info: Optional[VideoInfo] = await self.source.get_video_info(video_id)
        except FetchFailed as exc:
            if exc.status != GONE:
                raise
            logger.warning("Video info returned 410 for %s, skipping captions", video_id)
            warnings.append("video info returned 410")
            info = None

        if info is not None:
            title, duration = info.title, info.length_seconds
            transcript = await self._captions(info, warnings)

        if not transcript:
            warnings.append("fell back to audio transcription")
            transcript = await self._audio_fallback(video_id)

        return ExtractionResult(
            text=transcript,
            title=title,
            duration_seconds=duration,
            source_url=url,
            warnings=warnings,
        )


def _audio_extension(mime: str) -> str:
    try:
        return extension_for(mime or None)
    except UnsupportedAudioFormat:
        return DEFAULT_EXTENSION
