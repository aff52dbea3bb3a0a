"""Caption track discovery by scraping the public watch page.

YouTube embeds the player response (including caption tracks) as JSON in
the page markup. The shape moves around between page versions, so several
patterns are tried in order; each locates the start of a JSON value and the
value itself is cut out by bracket-balanced scanning.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from typing import Any

import requests

from tubelingo.http import CAPTION_HEADERS, DEFAULT_TIMEOUT, FetchError, RateLimitError, get_text
from tubelingo.logging import logger
from tubelingo.models import CaptionTrack, watch_url
from tubelingo.subtitles import parse_subtitle_content

# Minimum characters for a caption payload to count as a transcript
MIN_TRACK_TEXT_LENGTH = 50

TIMEDTEXT_URL = "https://www.youtube.com/api/timedtext"
TIMEDTEXT_LANGUAGES = ["en", "en-US", "en-GB", "auto"]
TIMEDTEXT_FORMATS = ["json3", "vtt", "srv3"]
TIMEDTEXT_VARIANTS = ["", "&tlang=en", "&kind=asr", "&kind=asr&tlang=en"]

# Each pattern ends where the JSON value starts (lookahead keeps the bracket)
_TRACK_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    (
        "player_response_tracklist",
        re.compile(
            r'"playerCaptionsTracklistRenderer"\s*:\s*\{[^{}]*?"captionTracks"\s*:\s*(?=\[)'
        ),
    ),
    ("caption_tracks", re.compile(r'"captionTracks"\s*:\s*(?=\[)')),
    ("automatic_captions", re.compile(r'"automaticCaptions"\s*:\s*(?=\{)')),
]

_AUTO_CAPTIONS_BLOCK_RE = re.compile(r'"automaticCaptions"\s*:\s*\{([^}]*?)\}')
_LANG_CODE_RE = re.compile(r'"([a-z]{2}(?:-[A-Z]{2})?)"')

LANGUAGE_NAMES = {
    "en": "English",
    "ja": "Japanese (日本語)",
    "es": "Spanish (Español)",
    "fr": "French (Français)",
    "de": "German (Deutsch)",
    "zh": "Chinese (中文)",
    "ar": "Arabic (العربية)",
    "ko": "Korean (한국어)",
    "pt": "Portuguese (Português)",
    "it": "Italian (Italiano)",
    "ru": "Russian (Русский)",
    "hi": "Hindi (हिन्दी)",
    "nl": "Dutch (Nederlands)",
    "sv": "Swedish (Svenska)",
    "pl": "Polish (Polski)",
    "tr": "Turkish (Türkçe)",
    "vi": "Vietnamese (Tiếng Việt)",
    "th": "Thai (ไทย)",
    "id": "Indonesian (Bahasa Indonesia)",
}


def extract_balanced(text: str, start: int) -> str | None:
    """Cut a JSON object/array out of text starting at an opening bracket.

    Tracks nesting depth while skipping over string literals (and escaped
    characters inside them), so brackets inside strings do not count.

    Args:
        text: Text containing the JSON value
        start: Index of the opening "{" or "["

    Returns:
        The JSON value source, or None if brackets never balance
    """
    if start >= len(text) or text[start] not in "{[":
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def extract_json_after(text: str, marker: str) -> Any | None:
    """Parse the JSON value that follows the first occurrence of marker.

    Skips to the first "{" or "[" after the marker, then scans it out with
    extract_balanced. Parse errors return None.
    """
    pos = text.find(marker)
    if pos < 0:
        return None
    match = re.compile(r"[{\[]").search(text, pos + len(marker))
    if not match:
        return None
    raw = extract_balanced(text, match.start())
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.debug("JSON after {!r} did not parse: {}", marker, e)
        return None


def _track_name(track: dict[str, Any]) -> str:
    name = track.get("name")
    if isinstance(name, dict):
        if name.get("simpleText"):
            return str(name["simpleText"])
        runs = name.get("runs") or []
        if runs and isinstance(runs[0], dict) and runs[0].get("text"):
            return str(runs[0]["text"])
    if isinstance(name, str) and name:
        return name
    return "Unknown"


def _tracks_from_list(data: list[Any]) -> list[CaptionTrack]:
    tracks = []
    for track in data:
        if not isinstance(track, dict):
            continue
        if track.get("baseUrl") and track.get("languageCode"):
            tracks.append(
                CaptionTrack(
                    base_url=track["baseUrl"],
                    language_code=track["languageCode"],
                    name=_track_name(track),
                    kind=track.get("kind") or "captions",
                )
            )
    return tracks


def _tracks_from_map(data: dict[str, Any]) -> list[CaptionTrack]:
    tracks = []
    for lang, entries in data.items():
        if not isinstance(entries, list):
            continue
        for entry in entries:
            url = entry.get("baseUrl") or entry.get("url") if isinstance(entry, dict) else None
            if url:
                tracks.append(
                    CaptionTrack(base_url=url, language_code=lang, name="Auto-generated", kind="asr")
                )
    return tracks


def _synthesize_auto_tracks(page: str, video_id: str) -> list[CaptionTrack]:
    """Build timedtext URLs from bare automaticCaptions language codes."""
    match = _AUTO_CAPTIONS_BLOCK_RE.search(page)
    if not match:
        return []
    tracks = []
    seen: set[str] = set()
    for lang in _LANG_CODE_RE.findall(match.group(1)):
        if lang in seen:
            continue
        seen.add(lang)
        tracks.append(
            CaptionTrack(
                base_url=f"{TIMEDTEXT_URL}?lang={lang}&v={video_id}&fmt=json3&tlang=en",
                language_code=lang,
                name="Auto-generated (constructed)",
                kind="asr",
            )
        )
    return tracks


def rank_caption_tracks(tracks: list[CaptionTrack]) -> list[CaptionTrack]:
    """Sort tracks by preference: manual before auto-generated, English first.

    The sort is stable, so tracks that tie keep their page order.
    """
    return sorted(
        tracks,
        key=lambda t: (t.is_auto_generated, not t.language_code.startswith("en")),
    )


def extract_caption_tracks(page: str, video_id: str = "") -> list[CaptionTrack]:
    """Extract and rank caption tracks embedded in watch page markup.

    Args:
        page: Watch page HTML
        video_id: Used to synthesize timedtext URLs when only language codes
            can be found

    Returns:
        Ranked tracks, possibly empty
    """
    tracks: list[CaptionTrack] = []

    for name, pattern in _TRACK_PATTERNS:
        match = pattern.search(page)
        if not match:
            continue
        raw = extract_balanced(page, match.end())
        if raw is None:
            logger.debug("Caption pattern {} matched but JSON never closed", name)
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.debug("Failed to parse caption data from pattern {}: {}", name, e)
            continue

        if isinstance(data, list):
            tracks = _tracks_from_list(data)
        elif isinstance(data, dict):
            tracks = _tracks_from_map(data)

        if tracks:
            logger.debug("Extracted {} caption tracks with pattern {}", len(tracks), name)
            break

    if not tracks and video_id:
        tracks = _synthesize_auto_tracks(page, video_id)
        if tracks:
            logger.debug("Constructed {} auto-caption tracks from language codes", len(tracks))

    ranked = rank_caption_tracks(tracks)
    if ranked:
        logger.debug("Caption tracks: {}", ", ".join(f"{t.language_code} ({t.name})" for t in ranked))
    return ranked


def fetch_watch_page(
    video_id: str, session: requests.Session, timeout: float = DEFAULT_TIMEOUT
) -> str:
    """Fetch the public watch page HTML.

    Raises:
        RateLimitError: On HTTP 429
        FetchError: On any other non-2xx status or network failure
    """
    return get_text(session, watch_url(video_id), "video page", timeout=timeout)


def locate_caption_tracks(
    video_id: str, session: requests.Session, timeout: float = DEFAULT_TIMEOUT
) -> list[CaptionTrack]:
    """Fetch the watch page and return its ranked caption tracks."""
    page = fetch_watch_page(video_id, session, timeout=timeout)
    return extract_caption_tracks(page, video_id)


def _normalize_track_url(base_url: str) -> str:
    url = base_url.replace("\\u0026", "&").replace("\\u003d", "=")
    if "fmt=" not in url:
        url += "&fmt=json3" if "?" in url else "?fmt=json3"
    return url


def fetch_caption_track(
    track: CaptionTrack, session: requests.Session, timeout: float = DEFAULT_TIMEOUT
) -> str | None:
    """Download a caption track and convert it to plain text.

    Returns:
        Transcript text, or None if the download failed

    Raises:
        RateLimitError: If the caption endpoint is rate limiting us
    """
    url = _normalize_track_url(track.base_url)
    logger.debug("Fetching {} caption track: {}", track.language_code, url[:100])
    try:
        content = get_text(session, url, "caption track", headers=CAPTION_HEADERS, timeout=timeout)
    except RateLimitError:
        raise
    except FetchError as e:
        logger.debug("Caption track {} failed: {}", track.language_code, e)
        return None
    return parse_subtitle_content(content)


def transcript_from_tracks(
    tracks: list[CaptionTrack],
    session: requests.Session,
    min_chars: int = MIN_TRACK_TEXT_LENGTH,
    timeout: float = DEFAULT_TIMEOUT,
) -> tuple[str, CaptionTrack] | None:
    """Try tracks in order until one yields more than min_chars of text.

    Returns:
        (transcript, track) for the first usable track, or None
    """
    for track in tracks:
        logger.debug("Trying caption track {} ({})", track.language_code, track.name)
        text = fetch_caption_track(track, session, timeout=timeout)
        if text and len(text) > min_chars:
            logger.info("Extracted transcript from {} caption track", track.language_code)
            return text, track
    return None


def timedtext_urls(video_id: str) -> Iterator[tuple[str, str, str]]:
    """Yield (lang, fmt, url) for every direct timedtext permutation."""
    for lang in TIMEDTEXT_LANGUAGES:
        for fmt in TIMEDTEXT_FORMATS:
            base = f"{TIMEDTEXT_URL}?lang={lang}&v={video_id}&fmt={fmt}"
            for variant in TIMEDTEXT_VARIANTS:
                yield lang, fmt, base + variant


def try_timedtext_endpoint(
    video_id: str,
    session: requests.Session,
    min_chars: int = MIN_TRACK_TEXT_LENGTH,
    timeout: float = DEFAULT_TIMEOUT,
) -> str | None:
    """Probe the timedtext endpoint across languages, formats and variants.

    Raises:
        RateLimitError: As soon as any permutation is rate limited
    """
    for lang, fmt, url in timedtext_urls(video_id):
        try:
            content = get_text(session, url, "timedtext", headers=CAPTION_HEADERS, timeout=timeout)
        except RateLimitError:
            raise
        except FetchError as e:
            logger.debug("timedtext {} {} failed: {}", lang, fmt, e)
            continue

        if len(content.strip()) <= min_chars:
            continue
        text = parse_subtitle_content(content)
        if text and len(text) > min_chars:
            logger.info("Extracted transcript via timedtext ({}, {})", lang, fmt)
            return text
    return None


def get_language_name(code: str) -> str:
    """Human-readable name for a language code."""
    return LANGUAGE_NAMES.get(code) or LANGUAGE_NAMES.get(code.split("-")[0]) or code.upper()


def list_available_languages(
    video_id: str, session: requests.Session, timeout: float = DEFAULT_TIMEOUT
) -> list[dict[str, str]]:
    """List caption languages offered for a video, manual tracks first.

    Returns:
        List of {"code", "name", "type"} dicts, type "manual" or "auto-generated"
    """
    tracks = locate_caption_tracks(video_id, session, timeout=timeout)
    languages = []
    for track in tracks:
        name = track.name if track.name not in ("Unknown", "") else get_language_name(track.language_code)
        languages.append(
            {
                "code": track.language_code,
                "name": name,
                "type": "auto-generated" if track.is_auto_generated else "manual",
            }
        )
    return languages
