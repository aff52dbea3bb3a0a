"""Shared HTTP plumbing for scraping YouTube and its mirrors."""

import requests

from tubelingo.logging import logger

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

BROWSER_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

CAPTION_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "application/json, text/vtt, application/x-subrip, text/plain, */*",
    "Referer": "https://www.youtube.com/",
}

JSON_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "application/json",
}

DEFAULT_TIMEOUT = 15.0


class FetchError(Exception):
    """Upstream request failed (network error, timeout or non-2xx status)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(FetchError):
    """Upstream signalled a rate limit.

    Unlike other fetch failures this must not fall through to later
    strategies: they hit the same degraded upstream.
    """

    pass


def create_session() -> requests.Session:
    """Create a requests session with browser-like default headers."""
    session = requests.Session()
    session.headers.update(BROWSER_HEADERS)
    return session


def check_response(response: requests.Response, what: str) -> requests.Response:
    """Raise FetchError/RateLimitError for unsuccessful responses.

    Args:
        response: Response to check
        what: Short description for error messages (e.g., "video page")

    Returns:
        The same response when successful
    """
    status = response.status_code
    if status == 429:
        raise RateLimitError(f"Rate limit exceeded fetching {what} (HTTP 429)", status_code=429)
    if not response.ok:
        raise FetchError(f"Failed to fetch {what}: HTTP {status}", status_code=status)
    return response


def get_text(
    session: requests.Session,
    url: str,
    what: str,
    headers: dict[str, str] | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    """GET a URL and return its body as text.

    Network errors and timeouts are wrapped in FetchError so callers deal
    with a single failure type.
    """
    try:
        response = session.get(url, headers=headers, timeout=timeout)
    except requests.RequestException as e:
        logger.debug("Request for {} failed: {}", what, e)
        raise FetchError(f"Failed to fetch {what}: {e}") from e
    check_response(response, what)
    return response.text
