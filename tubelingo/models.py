"""Data models for tubelingo."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TranscriptStatus(str, Enum):
    """Outcome of a transcript request."""

    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


class ProjectStatus(str, Enum):
    """Lifecycle status of a stored lesson."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class CaptionTrack:
    """A single language/kind variant of a video's captions."""

    base_url: str
    language_code: str
    name: str = "Unknown"
    kind: str = "captions"  # "captions" (manual) or "asr" (auto-generated)

    @property
    def is_auto_generated(self) -> bool:
        return self.kind == "asr"


@dataclass
class TranscriptResult:
    """Result of the transcript acquisition cascade."""

    status: TranscriptStatus
    video_title: str = ""
    transcript: str | None = None
    job_id: str | None = None
    error: str | None = None
    error_kind: str | None = None  # "rate_limited", "too_short", "not_found", ...
    suggestion: str | None = None
    method: str | None = None

    @classmethod
    def completed(cls, transcript: str, video_title: str = "", method: str | None = None) -> TranscriptResult:
        return cls(TranscriptStatus.COMPLETED, video_title=video_title, transcript=transcript, method=method)

    @classmethod
    def pending(cls, job_id: str, video_title: str = "") -> TranscriptResult:
        return cls(TranscriptStatus.PENDING, video_title=video_title, job_id=job_id, method="job")

    @classmethod
    def failed(
        cls,
        error: str,
        video_title: str = "",
        error_kind: str | None = None,
        suggestion: str | None = None,
    ) -> TranscriptResult:
        return cls(
            TranscriptStatus.FAILED,
            video_title=video_title,
            error=error,
            error_kind=error_kind,
            suggestion=suggestion,
        )

    @property
    def ok(self) -> bool:
        return self.status == TranscriptStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        d: dict[str, Any] = {"status": self.status.value, "videoTitle": self.video_title}
        if self.transcript is not None:
            d["transcript"] = self.transcript
        if self.job_id:
            d["jobId"] = self.job_id
        if self.error:
            d["error"] = self.error
        if self.error_kind:
            d["errorKind"] = self.error_kind
        if self.suggestion:
            d["suggestion"] = self.suggestion
        if self.method:
            d["method"] = self.method
        return d


@dataclass
class VocabularyItem:
    """A vocabulary word extracted from a transcript."""

    word: str
    definition: str
    difficulty: str = "intermediate"  # beginner, intermediate, advanced

    def to_dict(self) -> dict[str, Any]:
        return {"word": self.word, "definition": self.definition, "difficulty": self.difficulty}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VocabularyItem:
        return cls(
            word=str(data.get("word", "")),
            definition=str(data.get("definition", "")),
            difficulty=str(data.get("difficulty") or "intermediate"),
        )


@dataclass
class GrammarItem:
    """A grammar pattern with an example from the transcript."""

    rule: str
    example: str = ""
    explanation: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"rule": self.rule, "example": self.example, "explanation": self.explanation}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GrammarItem:
        return cls(
            rule=str(data.get("rule", "")),
            example=str(data.get("example", "")),
            explanation=str(data.get("explanation", "")),
        )


@dataclass
class PracticeSentence:
    """A generated practice sentence.

    used_vocabulary and used_grammar are free-text copies of words and rules,
    not references into the project's vocabulary/grammar lists.
    """

    text: str
    translation: str = ""
    difficulty: str = "intermediate"
    used_vocabulary: list[str] = field(default_factory=list)
    used_grammar: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "translation": self.translation,
            "difficulty": self.difficulty,
            "usedVocabulary": list(self.used_vocabulary),
            "usedGrammar": list(self.used_grammar),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PracticeSentence:
        return cls(
            text=str(data.get("text", "")),
            translation=str(data.get("translation", "")),
            difficulty=str(data.get("difficulty") or "intermediate"),
            used_vocabulary=[str(v) for v in data.get("usedVocabulary") or []],
            used_grammar=[str(g) for g in data.get("usedGrammar") or []],
        )


@dataclass
class AnalysisResult:
    """Vocabulary/grammar extracted by the content analyzer."""

    detected_language: str = "Unknown"
    vocabulary: list[VocabularyItem] = field(default_factory=list)
    grammar: list[GrammarItem] = field(default_factory=list)
    error: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.vocabulary and not self.grammar


@dataclass
class Project:
    """A stored language lesson built from one video."""

    title: str
    source_url: str
    script: str = ""
    vocabulary: list[VocabularyItem] = field(default_factory=list)
    grammar: list[GrammarItem] = field(default_factory=list)
    practice_sentences: list[PracticeSentence] = field(default_factory=list)
    detected_language: str = "Unknown"
    is_favorite: bool = False
    status: ProjectStatus = ProjectStatus.COMPLETED
    job_id: str | None = None
    error_message: str | None = None
    id: int | None = None
    created_at: str = ""
    updated_at: str = ""
    last_accessed: str = ""

    @property
    def vocabulary_count(self) -> int:
        return len(self.vocabulary)

    @property
    def grammar_count(self) -> int:
        return len(self.grammar)

    def to_dict(self, include_script: bool = True) -> dict[str, Any]:
        """Serialize for JSON/YAML export."""
        d: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "url": self.source_url,
            "detectedLanguage": self.detected_language,
            "status": self.status.value,
            "isFavorite": self.is_favorite,
            "vocabularyCount": self.vocabulary_count,
            "grammarCount": self.grammar_count,
        }
        if self.job_id:
            d["jobId"] = self.job_id
        if self.error_message:
            d["errorMessage"] = self.error_message
        if include_script:
            d["script"] = self.script
        d["vocabulary"] = [v.to_dict() for v in self.vocabulary]
        d["grammar"] = [g.to_dict() for g in self.grammar]
        d["practiceSentences"] = [s.to_dict() for s in self.practice_sentences]
        if self.created_at:
            d["createdAt"] = self.created_at
        if self.updated_at:
            d["updatedAt"] = self.updated_at
        return d


class InvalidVideoError(ValueError):
    """Raised when a video URL/ID is invalid."""

    pass


_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
_VIDEO_URL_RE = re.compile(r"(?:v=|youtu\.be/|/embed/|/shorts/|/live/)([A-Za-z0-9_-]{11})")


def extract_video_id(url_or_id: str) -> str:
    """Extract and validate a YouTube video ID from a URL or bare ID.

    Args:
        url_or_id: Watch/short/embed URL or an 11-character video ID

    Returns:
        Valid video ID

    Raises:
        InvalidVideoError: If no valid video ID can be found
    """
    url_or_id = (url_or_id or "").strip()
    if not url_or_id:
        raise InvalidVideoError("Empty video URL/ID")

    if _VIDEO_ID_RE.match(url_or_id):
        return url_or_id

    match = _VIDEO_URL_RE.search(url_or_id)
    if not match:
        raise InvalidVideoError(f"No video ID found in: {url_or_id}")
    return match.group(1)


def watch_url(video_id: str) -> str:
    """Canonical watch URL for a video ID."""
    return f"https://www.youtube.com/watch?v={video_id}"
