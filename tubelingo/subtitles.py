"""Subtitle payload to plain-text transcript conversion.

Caption endpoints return JSON3, WebVTT, SRT, XML (srv1/srv3/TTML) or
something HTML-ish depending on the track and query parameters. The format
is sniffed from the content itself, never from headers.
"""

from __future__ import annotations

import html
import json
import re
from typing import Any

from tubelingo.logging import logger

# XML results shorter than this are treated as a miss and the generic
# parser gets a chance instead
MIN_XML_TEXT_LENGTH = 50

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")
_TIMESTAMP_RANGE_RE = re.compile(
    r"(?:\d{2}:)?\d{2}:\d{2}[.,]\d{3}\s*-->\s*(?:\d{2}:)?\d{2}:\d{2}[.,]\d{3}[^\n]*"
)
_INDEX_LINE_RE = re.compile(r"^\s*\d+\s*$", re.MULTILINE)
_XML_PATTERNS = [
    re.compile(r"<text[^>]*>([^<]+)</text>"),
    re.compile(r"<p[^>]*>([^<]+)</p>"),
]


def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def json3_to_transcript(data: Any) -> str:
    """Extract text from a JSON3 payload (events -> segs -> utf8).

    Args:
        data: Parsed JSON. Either the full document or a bare events list.

    Returns:
        Space-joined segment text
    """
    events = data.get("events") if isinstance(data, dict) else data
    if not isinstance(events, list):
        return ""

    pieces: list[str] = []
    for event in events:
        if not isinstance(event, dict):
            continue
        for seg in event.get("segs") or []:
            if not isinstance(seg, dict):
                continue
            text = str(seg.get("utf8") or "").replace("\n", " ").strip()
            if text:
                pieces.append(text)
    return _collapse(" ".join(pieces))


def vtt_to_transcript(vtt_content: str) -> str:
    """Convert VTT (or SRT) subtitle content to a single line of text.

    Header lines, cue indexes and timestamp lines are skipped; inline tags
    like <c.colorE5E5E5> or <00:00:01.000> are removed. Consecutive
    duplicate lines (rolling auto-captions) are kept once.
    """
    pieces: list[str] = []
    in_cue = False

    for line in vtt_content.split("\n"):
        line = line.strip()

        if not line or line.startswith("WEBVTT") or line.isdigit():
            continue

        if "-->" in line:
            in_cue = True
            continue

        # Anything before the first cue is header metadata (Kind:, Language:)
        if not in_cue:
            continue

        text = html.unescape(_TAG_RE.sub("", line)).strip()
        if text and (not pieces or pieces[-1] != text):
            pieces.append(text)

    return _collapse(" ".join(pieces))


def xml_to_transcript(xml_content: str) -> str:
    """Extract <text> or <p> bodies from XML/SRV caption payloads.

    Returns:
        Decoded text, or "" if no pattern produced more than
        MIN_XML_TEXT_LENGTH characters
    """
    for pattern in _XML_PATTERNS:
        pieces = []
        for match in pattern.finditer(xml_content):
            text = match.group(1).strip()
            if len(text) > 2:
                pieces.append(html.unescape(text))
        transcript = _collapse(" ".join(pieces))
        if len(transcript) > MIN_XML_TEXT_LENGTH:
            return transcript
    return ""


def generic_to_transcript(content: str) -> str:
    """Last-resort cleanup: drop tags, timestamps and index lines."""
    cleaned = _TAG_RE.sub(" ", content)
    cleaned = _TIMESTAMP_RANGE_RE.sub("", cleaned)
    cleaned = _INDEX_LINE_RE.sub("", cleaned)
    cleaned = cleaned.replace("WEBVTT", "")
    return _collapse(html.unescape(cleaned))


def _looks_like_xml(content: str) -> bool:
    return "<text" in content or "<p>" in content or "<p " in content or "<?xml" in content


def parse_subtitle_content(content: str) -> str:
    """Convert a caption payload of unknown format into plain text.

    Args:
        content: Raw response body from a caption endpoint

    Returns:
        Space-joined transcript text, or "" if nothing could be extracted
    """
    if not content:
        return ""

    stripped = content.strip()

    if stripped.startswith(("{", "[")):
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError as e:
            logger.debug("Payload looked like JSON3 but did not parse: {}", e)
        else:
            # Valid JSON without caption events (error bodies, empty tracks)
            return json3_to_transcript(data)

    if "WEBVTT" in content or "-->" in content:
        return vtt_to_transcript(content)

    if _looks_like_xml(content):
        text = xml_to_transcript(content)
        if text:
            return text

    return generic_to_transcript(content)
