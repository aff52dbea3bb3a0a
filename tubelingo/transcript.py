"""Transcript acquisition cascade.

Strategies are plain callables taking a video id and returning a
StrategyOutcome. They run in order:

    1. official captions API (needs YOUTUBE_API_KEY)
    2. caption tracks scraped from the watch page
    3. direct timedtext endpoint permutations
    4. async job backend (needs SUPADATA_API_KEY)
    5. audio download + speech-to-text (needs OPENAI_API_KEY)

A soft failure moves on to the next strategy. A hard failure (rate limit)
stops the cascade: later strategies hit the same degraded upstream.
"""

from __future__ import annotations

import re
from functools import partial
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import requests
from googleapiclient.discovery import Resource
from openai import OpenAI

from tubelingo.audio import AudioDownloadError, AudioResolver, download_audio
from tubelingo.captions import locate_caption_tracks, transcript_from_tracks, try_timedtext_endpoint
from tubelingo.config import Config
from tubelingo.http import JSON_HEADERS, FetchError, RateLimitError, create_session
from tubelingo.jobs import JobBackend, JobBackendError, JobState
from tubelingo.logging import logger
from tubelingo.models import CaptionTrack, TranscriptResult, watch_url
from tubelingo.speech import SpeechToTextError, transcribe_audio
from tubelingo.youtube_api import fetch_official_captions

NOEMBED_URL = "https://noembed.com/embed"

NOT_FOUND_ERROR = "Could not extract or generate transcript"
NOT_FOUND_SUGGESTION = (
    "This video may not have captions available and audio transcription failed. "
    "Please try a different video or check if the video has captions enabled."
)
TOO_SHORT_SUGGESTION = (
    "Please choose a video with more spoken content (dialogue, narration or a lecture)."
)
RATE_LIMIT_SUGGESTION = (
    "The transcript service is temporarily rate limited. Please wait a few minutes and try again."
)

# Kana and CJK ideographs are counted per character; everything else per
# whitespace-separated token
_CJK = r"\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff"
_WORD_RE = re.compile(rf"[{_CJK}]|[^\s{_CJK}]+")


def count_words(text: str) -> int:
    """Count words, treating each Japanese/Chinese character as a word."""
    return len(_WORD_RE.findall(text))


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    PENDING = "pending"
    SOFT = "soft"
    HARD = "hard"


@dataclass
class StrategyOutcome:
    """Result of one strategy in the cascade."""

    kind: OutcomeKind
    text: str | None = None
    method: str | None = None
    job_id: str | None = None
    reason: str | None = None
    error: Exception | None = None

    @classmethod
    def success(cls, text: str, method: str) -> StrategyOutcome:
        return cls(OutcomeKind.SUCCESS, text=text, method=method)

    @classmethod
    def pending(cls, job_id: str) -> StrategyOutcome:
        return cls(OutcomeKind.PENDING, job_id=job_id, method="job")

    @classmethod
    def soft(cls, reason: str) -> StrategyOutcome:
        return cls(OutcomeKind.SOFT, reason=reason)

    @classmethod
    def hard(cls, error: Exception) -> StrategyOutcome:
        return cls(OutcomeKind.HARD, error=error, reason=str(error))

    @property
    def is_terminal(self) -> bool:
        return self.kind != OutcomeKind.SOFT


Strategy = Callable[[str], StrategyOutcome]


def run_strategies(video_id: str, strategies: list[tuple[str, Strategy]]) -> tuple[StrategyOutcome, list[str]]:
    """Evaluate strategies in order until one is terminal.

    Rate limit errors raised by a strategy become a hard outcome. Any other
    exception is logged and counts as a soft failure.

    Returns:
        (terminal outcome or the last soft failure, soft failure reasons)
    """
    reasons: list[str] = []
    for name, strategy in strategies:
        logger.debug("Transcript strategy: {}", name)
        try:
            outcome = strategy(video_id)
        except RateLimitError as e:
            outcome = StrategyOutcome.hard(e)
        except Exception as e:
            logger.warning("Strategy {} failed unexpectedly: {}", name, e)
            outcome = StrategyOutcome.soft(f"{type(e).__name__}: {e}")

        if outcome.is_terminal:
            if outcome.kind == OutcomeKind.HARD:
                logger.error("Strategy {} hit a hard failure: {}", name, outcome.reason)
            return outcome, reasons

        logger.debug("Strategy {} soft-failed: {}", name, outcome.reason)
        reasons.append(f"{name}: {outcome.reason}")

    return StrategyOutcome.soft("all strategies failed"), reasons


def prefer_language(tracks: list[CaptionTrack], language: str | None) -> list[CaptionTrack]:
    """Move tracks in the requested language to the front, keeping order."""
    if not language:
        return tracks
    wanted = [t for t in tracks if t.language_code.split("-")[0] == language.split("-")[0]]
    return wanted + [t for t in tracks if t not in wanted]


def fetch_video_title(video_id: str, session: requests.Session, timeout: float = 5.0) -> str:
    """Best-effort title lookup via noembed, with a generic fallback."""
    try:
        response = session.get(
            NOEMBED_URL, params={"url": watch_url(video_id)}, headers=JSON_HEADERS, timeout=timeout
        )
        if response.ok:
            title = response.json().get("title")
            if title:
                return str(title)
    except (requests.RequestException, ValueError) as e:
        logger.debug("Title lookup failed for {}: {}", video_id, e)
    return f"Video Lesson - {video_id}"


class TranscriptAcquirer:
    """Runs the transcript strategy cascade for a video.

    Collaborators can be injected; otherwise they are built from config.
    """

    def __init__(
        self,
        config: Config,
        session: requests.Session | None = None,
        youtube_client: Resource | None = None,
        job_backend: JobBackend | None = None,
        openai_client: OpenAI | None = None,
        audio_resolver: AudioResolver | None = None,
    ) -> None:
        self.config = config
        self.session = session or create_session()
        self.youtube_client = youtube_client
        self.openai_client = openai_client
        self.audio_resolver = audio_resolver or AudioResolver(self.session, config.audio)
        self.job_backend = job_backend
        if self.job_backend is None and config.jobs_enabled:
            self.job_backend = JobBackend(
                config.keys.supadata or "",
                base_url=config.jobs.base_url,
                session=self.session,
                timeout=config.jobs.timeout,
            )

    @property
    def timeout(self) -> float:
        return self.config.transcript.request_timeout

    def official_api(self, video_id: str, language: str | None = None) -> StrategyOutcome:
        api_key = self.config.keys.youtube
        if not api_key and self.youtube_client is None:
            return StrategyOutcome.soft("no YouTube API key configured")
        text = fetch_official_captions(
            video_id,
            api_key or "",
            language=language or self.config.transcript.language,
            client=self.youtube_client,
        )
        if text:
            return StrategyOutcome.success(text, "official_api")
        return StrategyOutcome.soft("no downloadable official captions")

    def scraped_tracks(self, video_id: str, language: str | None = None) -> StrategyOutcome:
        try:
            tracks = locate_caption_tracks(video_id, self.session, timeout=self.timeout)
        except RateLimitError:
            raise
        except FetchError as e:
            return StrategyOutcome.soft(str(e))
        if not tracks:
            return StrategyOutcome.soft("no caption tracks on watch page")

        found = transcript_from_tracks(prefer_language(tracks, language), self.session, timeout=self.timeout)
        if found:
            text, track = found
            method = "auto_captions" if track.is_auto_generated else "captions"
            return StrategyOutcome.success(text, method)
        return StrategyOutcome.soft(f"none of {len(tracks)} caption tracks yielded text")

    def timedtext(self, video_id: str, language: str | None = None) -> StrategyOutcome:
        text = try_timedtext_endpoint(video_id, self.session, timeout=self.timeout)
        if text:
            return StrategyOutcome.success(text, "timedtext")
        return StrategyOutcome.soft("timedtext endpoint returned nothing")

    def job(self, video_id: str, language: str | None = None) -> StrategyOutcome:
        if self.job_backend is None:
            return StrategyOutcome.soft("no job backend configured")
        try:
            started = self.job_backend.start(
                watch_url(video_id), lang=language or self.config.transcript.language
            )
        except JobBackendError as e:
            logger.warning("Could not start transcript job: {}", e)
            return StrategyOutcome.soft(str(e))
        if started.state == JobState.COMPLETED and started.transcript:
            return StrategyOutcome.success(started.transcript, "job")
        if started.job_id:
            return StrategyOutcome.pending(started.job_id)
        return StrategyOutcome.soft("job backend returned no transcript")

    def speech_to_text(self, video_id: str, language: str | None = None) -> StrategyOutcome:
        if not self.config.keys.openai and self.openai_client is None:
            return StrategyOutcome.soft("no OpenAI API key configured")

        stream = self.audio_resolver.resolve(video_id)
        if stream is None:
            return StrategyOutcome.soft("no audio stream found")
        try:
            audio = download_audio(stream, self.session, max_bytes=self.config.audio.max_download_bytes)
            text = transcribe_audio(
                audio,
                stream,
                api_key=self.config.keys.openai,
                language=language or self.config.transcript.language,
                client=self.openai_client,
            )
        except (AudioDownloadError, SpeechToTextError) as e:
            logger.warning("Audio transcription failed: {}", e)
            return StrategyOutcome.soft(str(e))
        return StrategyOutcome.success(text, "speech_to_text")

    def strategies(self, language: str | None = None) -> list[tuple[str, Strategy]]:
        """The cascade in priority order, bound to one request's language."""
        steps = [
            ("official_api", self.official_api),
            ("captions", self.scraped_tracks),
            ("timedtext", self.timedtext),
            ("job", self.job),
            ("speech_to_text", self.speech_to_text),
        ]
        return [(name, partial(step, language=language)) for name, step in steps]

    def acquire(self, video_id: str, language: str | None = None) -> TranscriptResult:
        """Get a transcript (or a pending job) for a video.

        Args:
            video_id: 11-character video ID
            language: Preferred caption language code

        Returns:
            TranscriptResult: completed, pending with a job id, or failed with
            error_kind "rate_limited", "too_short" or "not_found". Never raises
            for upstream failures.
        """
        logger.info("Acquiring transcript for {}", video_id)
        outcome, reasons = run_strategies(video_id, self.strategies(language))
        title = fetch_video_title(video_id, self.session)

        if outcome.kind == OutcomeKind.HARD:
            return TranscriptResult.failed(
                str(outcome.error or "Rate limit exceeded"),
                video_title=title,
                error_kind="rate_limited",
                suggestion=RATE_LIMIT_SUGGESTION,
            )

        if outcome.kind == OutcomeKind.PENDING and outcome.job_id:
            logger.info("Transcript job {} pending for {}", outcome.job_id, video_id)
            return TranscriptResult.pending(outcome.job_id, video_title=title)

        if outcome.kind == OutcomeKind.SUCCESS and outcome.text:
            return self.check_length(outcome.text, title, outcome.method)

        logger.error("No transcript for {}: {}", video_id, "; ".join(reasons))
        return TranscriptResult.failed(
            NOT_FOUND_ERROR,
            video_title=title,
            error_kind="not_found",
            suggestion=NOT_FOUND_SUGGESTION,
        )

    def check_length(self, text: str, title: str, method: str | None = None) -> TranscriptResult:
        """Apply the minimum word gate to a transcript."""
        words = count_words(text)
        min_words = self.config.transcript.min_words
        if words < min_words:
            logger.error("Transcript has {} words, need at least {}", words, min_words)
            return TranscriptResult.failed(
                f"Transcript too short ({words} words). Videos need at least {min_words} words of speech.",
                video_title=title,
                error_kind="too_short",
                suggestion=TOO_SHORT_SUGGESTION,
            )
        logger.info("Transcript acquired via {} ({} words)", method, words)
        return TranscriptResult.completed(text, video_title=title, method=method)
