"""Official YouTube Data API v3 captions access (API key, no OAuth)."""

import json
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from googleapiclient.discovery import Resource, build
from googleapiclient.errors import HttpError

from tubelingo.http import RateLimitError
from tubelingo.logging import logger
from tubelingo.subtitles import parse_subtitle_content

# 403 reasons that mean "slow down" rather than "not allowed"
RATE_LIMIT_REASONS = {"quotaExceeded", "rateLimitExceeded", "userRateLimitExceeded"}


class ErrorCategory(Enum):
    """Categories for API errors to determine handling strategy."""

    RATE_LIMITED = auto()  # 429 or 403 quota/rate reasons
    NOT_FOUND = auto()  # 404
    PERMISSION_DENIED = auto()  # 401/403 (captions owned by someone else)
    INVALID_REQUEST = auto()  # 400
    SERVER_ERROR = auto()  # 5xx
    NETWORK_ERROR = auto()
    UNKNOWN = auto()


@dataclass
class APIError:
    """Structured API error with handling guidance."""

    category: ErrorCategory
    message: str
    status_code: int | None = None
    reason: str | None = None

    @property
    def is_rate_limit(self) -> bool:
        return self.category == ErrorCategory.RATE_LIMITED

    def __str__(self) -> str:
        return f"{self.category.name}: {self.message}"


def _error_reason(exc: HttpError) -> str | None:
    try:
        error_content = json.loads(exc.content.decode("utf-8"))
        errors = error_content.get("error", {}).get("errors", [])
        if errors:
            return str(errors[0].get("reason"))
    except (json.JSONDecodeError, AttributeError, UnicodeDecodeError):
        pass
    return None


def classify_error(exc: BaseException) -> APIError:
    """Classify an exception from the API client.

    Args:
        exc: The exception to classify

    Returns:
        APIError with category and parsed reason
    """
    if isinstance(exc, HttpError):
        status = exc.resp.status
        reason = exc.reason or ""
        error_reason = _error_reason(exc)

        if status == 429 or (status == 403 and error_reason in RATE_LIMIT_REASONS):
            return APIError(
                ErrorCategory.RATE_LIMITED,
                f"YouTube API rate limit exceeded ({error_reason or status})",
                status_code=status,
                reason=error_reason,
            )
        if status in (401, 403):
            return APIError(
                ErrorCategory.PERMISSION_DENIED,
                f"Permission denied: {reason}",
                status_code=status,
                reason=error_reason,
            )
        if status == 404:
            return APIError(
                ErrorCategory.NOT_FOUND,
                f"Resource not found: {reason}",
                status_code=status,
                reason=error_reason,
            )
        if status == 400:
            return APIError(
                ErrorCategory.INVALID_REQUEST,
                f"Invalid request: {reason}",
                status_code=status,
                reason=error_reason,
            )
        if status >= 500:
            return APIError(
                ErrorCategory.SERVER_ERROR,
                f"YouTube server error ({status}): {reason}",
                status_code=status,
                reason=error_reason,
            )
        return APIError(
            ErrorCategory.UNKNOWN,
            f"HTTP error {status}: {reason}",
            status_code=status,
            reason=error_reason,
        )

    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return APIError(ErrorCategory.NETWORK_ERROR, f"Network error: {exc}")

    return APIError(ErrorCategory.UNKNOWN, str(exc))


def get_youtube_client(api_key: str) -> Resource:
    """Build a YouTube Data API client authenticated with an API key."""
    return build("youtube", "v3", developerKey=api_key, cache_discovery=False)


def _pick_caption(items: list[dict[str, Any]], language: str) -> dict[str, Any]:
    """Prefer a manual caption in the requested language, else the first item."""

    def score(item: dict[str, Any]) -> tuple[bool, bool]:
        snippet = item.get("snippet", {})
        is_asr = snippet.get("trackKind", "").lower() == "asr"
        lang_match = str(snippet.get("language", "")).startswith(language)
        return (is_asr, not lang_match)

    return sorted(items, key=score)[0]


def fetch_official_captions(
    video_id: str, api_key: str, language: str = "en", client: Resource | None = None
) -> str | None:
    """Fetch a transcript through the captions.list/captions.download endpoints.

    Caption downloads usually require the video owner's authorization, so
    permission errors are an expected miss and return None.

    Returns:
        Transcript text, or None when no captions could be downloaded

    Raises:
        RateLimitError: On 429 or quota/rate-limit 403 responses
    """
    client = client or get_youtube_client(api_key)

    try:
        response = client.captions().list(part="snippet", videoId=video_id).execute()
        items = response.get("items", [])
        if not items:
            logger.debug("No caption tracks listed by YouTube API for {}", video_id)
            return None

        caption = _pick_caption(items, language)
        logger.debug(
            "Downloading official caption {} ({})",
            caption.get("id"),
            caption.get("snippet", {}).get("language"),
        )
        content = client.captions().download(id=caption["id"], tfmt="vtt").execute()
    except HttpError as e:
        api_error = classify_error(e)
        if api_error.is_rate_limit:
            raise RateLimitError(api_error.message, status_code=api_error.status_code) from e
        logger.debug("YouTube API captions unavailable: {}", api_error)
        return None
    except OSError as e:
        logger.debug("YouTube API request failed: {}", classify_error(e))
        return None

    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    text = parse_subtitle_content(content or "")
    return text or None
