"""Audio stream resolution and capped download for speech-to-text.

Resolution tries several independent sources in order and returns the
first direct audio URL found:

    A. Piped mirrors        GET  {host}/streams/{id}
    B. Invidious mirrors    GET  {host}/api/v1/videos/{id}
    C. Invidious redirects  HEAD {host}/latest_version?id={id}&itag={n}
    D. Watch page           ytInitialPlayerResponse adaptive formats
    E. yt-dlp               metadata extraction, no download

Mirror hosts come and go, so every per-host failure just moves on to the
next host.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed
from yt_dlp import YoutubeDL

from tubelingo.captions import extract_json_after
from tubelingo.config import AudioConfig
from tubelingo.http import JSON_HEADERS, USER_AGENT, FetchError, check_response, get_text
from tubelingo.logging import logger
from tubelingo.models import watch_url

# Audio-only itags: 140 is m4a/AAC, the rest are webm/Opus
AUDIO_ITAGS = {
    140: "audio/mp4",
    251: "audio/webm",
    250: "audio/webm",
    249: "audio/webm",
}

PLAYER_RESPONSE_MARKERS = ["var ytInitialPlayerResponse", "ytInitialPlayerResponse"]

_YTDLP_OPTS: dict[str, Any] = {
    "quiet": True,
    "no_warnings": True,
    "skip_download": True,
    "format": "bestaudio",
}


class AudioDownloadError(Exception):
    """Audio stream could not be downloaded."""

    pass


@dataclass
class AudioStream:
    """A directly downloadable audio stream."""

    url: str
    mime_type: str = "audio/mp4"
    source: str = ""  # piped, invidious, invidious-redirect, watch-page, yt-dlp

    @property
    def extension(self) -> str:
        return "webm" if "webm" in self.mime_type else "m4a"


def _is_mp4(mime: str) -> bool:
    return "mp4" in mime or "m4a" in mime


def _prefer_mp4(candidates: list[dict[str, Any]], mime_key: str) -> dict[str, Any] | None:
    """First m4a/mp4 candidate with a URL, else the first candidate with a URL."""
    with_url = [c for c in candidates if c.get("url")]
    for candidate in with_url:
        if _is_mp4(str(candidate.get(mime_key) or candidate.get("format") or "").lower()):
            return candidate
    return with_url[0] if with_url else None


def order_hosts(hosts: list[str], deprioritized: str | None, rng: random.Random | None = None) -> list[str]:
    """Shuffle hosts, keeping the deprioritized host (if present) last."""
    rng = rng or random.Random()
    normal = [h.rstrip("/") for h in hosts if h.rstrip("/") != (deprioritized or "").rstrip("/")]
    rng.shuffle(normal)
    if deprioritized and deprioritized.rstrip("/") in [h.rstrip("/") for h in hosts]:
        normal.append(deprioritized.rstrip("/"))
    return normal


def select_audio_from_player_response(player_response: dict[str, Any]) -> AudioStream | None:
    """Pick a direct-URL audio format from a parsed player response.

    Formats that only carry a signatureCipher are skipped.
    """
    formats = (player_response.get("streamingData") or {}).get("adaptiveFormats") or []
    audio = [f for f in formats if "audio" in str(f.get("mimeType", ""))]
    pick = _prefer_mp4(audio, "mimeType")
    if not pick:
        return None
    mime = str(pick.get("mimeType", "")).split(";")[0] or "audio/mp4"
    return AudioStream(url=pick["url"], mime_type=mime, source="watch-page")


class AudioResolver:
    """Find a downloadable audio stream for a video.

    Args:
        session: HTTP session used for every request
        config: Host lists, per-host timeout and strategy toggles
        rng: Random source for host shuffling (injectable for tests)
    """

    def __init__(
        self,
        session: requests.Session,
        config: AudioConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.session = session
        self.config = config or AudioConfig()
        self.rng = rng or random.Random()

    def _hosts(self, hosts: list[str]) -> list[str]:
        return order_hosts(hosts, self.config.deprioritized_host, self.rng)

    def _get_json(self, url: str, what: str) -> Any:
        response = self.session.get(url, headers=JSON_HEADERS, timeout=self.config.timeout)
        check_response(response, what)
        return response.json()

    def from_piped(self, video_id: str) -> AudioStream | None:
        for host in self._hosts(self.config.piped_hosts):
            try:
                data = self._get_json(f"{host}/streams/{video_id}", "piped streams")
            except (requests.RequestException, FetchError, ValueError) as e:
                logger.debug("Piped host {} failed: {}", host, e)
                continue
            streams = data.get("audioStreams") if isinstance(data, dict) else None
            pick = _prefer_mp4(streams or [], "mimeType")
            if pick:
                mime = str(pick.get("mimeType") or "audio/mp4")
                logger.debug("Audio stream from Piped host {} ({})", host, mime)
                return AudioStream(url=pick["url"], mime_type=mime, source="piped")
            logger.debug("Piped host {} returned no audio streams", host)
        return None

    def from_invidious(self, video_id: str) -> AudioStream | None:
        for host in self._hosts(self.config.invidious_hosts):
            try:
                data = self._get_json(f"{host}/api/v1/videos/{video_id}", "invidious video")
            except (requests.RequestException, FetchError, ValueError) as e:
                logger.debug("Invidious host {} failed: {}", host, e)
                continue
            formats = data.get("adaptiveFormats") if isinstance(data, dict) else None
            audio = [f for f in formats or [] if "audio" in str(f.get("type", ""))]
            pick = _prefer_mp4(audio, "type")
            if pick:
                mime = str(pick.get("type", "")).split(";")[0] or "audio/mp4"
                logger.debug("Audio stream from Invidious host {} ({})", host, mime)
                return AudioStream(url=pick["url"], mime_type=mime, source="invidious")
            logger.debug("Invidious host {} returned no audio formats", host)
        return None

    def from_invidious_redirect(self, video_id: str) -> AudioStream | None:
        for host in self._hosts(self.config.invidious_hosts):
            for itag, mime in AUDIO_ITAGS.items():
                url = f"{host}/latest_version?id={video_id}&itag={itag}"
                try:
                    response = self.session.head(
                        url,
                        headers={"User-Agent": USER_AGENT},
                        timeout=self.config.timeout,
                        allow_redirects=False,
                    )
                except requests.RequestException as e:
                    logger.debug("Invidious redirect {} failed: {}", host, e)
                    # Host is unreachable, skip its remaining itags
                    break
                if response.status_code < 400:
                    logger.debug("Audio redirect from {} itag {}", host, itag)
                    return AudioStream(url=url, mime_type=mime, source="invidious-redirect")
        return None

    def from_watch_page(self, video_id: str) -> AudioStream | None:
        try:
            page = get_text(self.session, watch_url(video_id), "video page", timeout=self.config.timeout)
        except FetchError as e:
            logger.debug("Watch page for audio failed: {}", e)
            return None

        for marker in PLAYER_RESPONSE_MARKERS:
            player_response = extract_json_after(page, marker)
            if isinstance(player_response, dict):
                stream = select_audio_from_player_response(player_response)
                if stream:
                    return stream
        logger.debug("No direct audio URL in watch page player response")
        return None

    def from_ytdlp(self, video_id: str) -> AudioStream | None:
        if not self.config.use_ytdlp:
            return None
        try:
            opts = {**_YTDLP_OPTS, "socket_timeout": self.config.timeout}
            with YoutubeDL(opts) as ydl:
                info = ydl.extract_info(watch_url(video_id), download=False)
        except Exception as e:
            logger.debug("yt-dlp audio extraction failed: {}", e)
            return None
        if not info:
            return None

        formats = [
            f
            for f in info.get("formats") or []
            if f.get("url") and f.get("acodec") not in (None, "none") and f.get("vcodec") in (None, "none")
        ]
        if not formats:
            return None
        formats.sort(key=lambda f: (not _is_mp4(str(f.get("ext", ""))), -(f.get("abr") or 0)))
        best = formats[0]
        mime = "audio/mp4" if _is_mp4(str(best.get("ext", ""))) else f"audio/{best.get('ext', 'webm')}"
        return AudioStream(url=best["url"], mime_type=mime, source="yt-dlp")

    def resolve(self, video_id: str) -> AudioStream | None:
        """Try each strategy in order, returning the first stream found."""
        strategies = [
            ("piped", self.from_piped),
            ("invidious", self.from_invidious),
            ("invidious-redirect", self.from_invidious_redirect),
            ("watch-page", self.from_watch_page),
            ("yt-dlp", self.from_ytdlp),
        ]
        for name, strategy in strategies:
            logger.debug("Resolving audio via {}", name)
            stream = strategy(video_id)
            if stream:
                logger.info("Resolved audio stream via {} ({})", name, stream.mime_type)
                return stream
        logger.warning("Could not resolve an audio stream for {}", video_id)
        return None


def resolve_audio(
    video_id: str,
    session: requests.Session,
    config: AudioConfig | None = None,
    rng: random.Random | None = None,
) -> AudioStream | None:
    """Resolve a downloadable audio stream, or None if every source failed."""
    return AudioResolver(session, config, rng).resolve(video_id)


@retry(  # type: ignore[untyped-decorator]
    retry=retry_if_exception_type(requests.RequestException),
    stop=stop_after_attempt(3),
    wait=wait_fixed(1),
    reraise=True,
)
def _download(stream: AudioStream, session: requests.Session, max_bytes: int, timeout: float) -> bytes:
    headers = {"User-Agent": USER_AGENT, "Range": f"bytes=0-{max_bytes}"}
    with session.get(stream.url, headers=headers, timeout=timeout, stream=True) as response:
        if not response.ok:
            msg = f"Failed to download audio: HTTP {response.status_code}"
            raise AudioDownloadError(msg)
        buf = bytearray()
        for chunk in response.iter_content(chunk_size=64 * 1024):
            buf.extend(chunk)
            if len(buf) >= max_bytes:
                break
    return bytes(buf[:max_bytes])


def download_audio(
    stream: AudioStream,
    session: requests.Session,
    max_bytes: int = 10 * 1024 * 1024,
    timeout: float = 30.0,
) -> bytes:
    """Download up to max_bytes of an audio stream.

    Network errors are retried (3 attempts, 1 s apart).

    Raises:
        AudioDownloadError: Non-2xx response, persistent network failure or
            empty body
    """
    logger.debug("Downloading audio from {} (cap {} bytes)", stream.source or "stream", max_bytes)
    try:
        data = _download(stream, session, max_bytes, timeout)
    except requests.RequestException as e:
        msg = f"Failed to download audio: {e}"
        raise AudioDownloadError(msg) from e
    if not data:
        msg = "Downloaded audio is empty"
        raise AudioDownloadError(msg)
    logger.info("Downloaded {} bytes of audio", len(data))
    return data
