"""Shared pytest fixtures for tubelingo tests."""

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
import requests
from googleapiclient.errors import HttpError

from tubelingo.config import AIConfig, ApiKeys, AudioConfig, Config
from tubelingo.store import ProjectStore

# --- HTTP Error Fixtures ---


def make_http_error(status: int, reason: str = "unknown") -> HttpError:
    """Create a mock HttpError with the given status and reason.

    Args:
        status: HTTP status code (e.g., 400, 403, 404, 429, 500)
        reason: Error reason string (e.g., "quotaExceeded", "forbidden")

    Returns:
        HttpError with mocked response and content
    """
    resp = MagicMock()
    resp.status = status
    resp.reason = f"Error: {reason}"
    content = json.dumps({"error": {"errors": [{"reason": reason}]}}).encode()
    return HttpError(resp, content, uri="https://www.googleapis.com/youtube/v3/test")


# --- HTTP Response Fixtures ---


def make_response(
    status: int = 200,
    text: str = "",
    json_data: Any = None,
    content: bytes | None = None,
) -> MagicMock:
    """Create a mock requests.Response.

    Args:
        status: HTTP status code
        text: Body returned by .text
        json_data: Value returned by .json(); raises ValueError when None
        content: Body yielded by .iter_content()
    """
    response = MagicMock(spec=requests.Response)
    response.status_code = status
    response.ok = 200 <= status < 400
    response.text = text if json_data is None else json.dumps(json_data)
    if json_data is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = json_data
    body = content if content is not None else text.encode()
    response.iter_content.return_value = [body[i : i + 1024] for i in range(0, len(body), 1024)]
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    return response


class FakeSession:
    """requests.Session stand-in that routes GET/HEAD by URL substring.

    Routes are checked in insertion order; the first substring found in the
    URL wins. Unrouted URLs get a 404. Every requested URL is recorded.
    """

    def __init__(self, routes: dict[str, Any] | None = None) -> None:
        self.routes: dict[str, Any] = dict(routes or {})
        self.calls: list[tuple[str, str]] = []
        self.headers: dict[str, str] = {}

    def _dispatch(self, method: str, url: str) -> Any:
        self.calls.append((method, url))
        for fragment, response in self.routes.items():
            if fragment in url:
                if isinstance(response, Exception):
                    raise response
                if callable(response) and not isinstance(response, MagicMock):
                    return response(url)
                return response
        return make_response(404)

    def get(self, url: str, **kwargs: Any) -> Any:
        params = kwargs.get("params")
        if params:
            url = url + "?" + "&".join(f"{k}={v}" for k, v in params.items())
        return self._dispatch("GET", url)

    def head(self, url: str, **kwargs: Any) -> Any:
        return self._dispatch("HEAD", url)

    def request(self, method: str, url: str, **kwargs: Any) -> Any:
        return self._dispatch(method, url)

    def urls(self, method: str | None = None) -> list[str]:
        return [u for m, u in self.calls if method is None or m == method]


@pytest.fixture
def fake_session() -> FakeSession:
    """Empty FakeSession (everything 404s until routes are added)."""
    return FakeSession()


# --- Config Fixtures ---


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Config with no API keys and a temporary database."""
    return Config(
        audio=AudioConfig(
            piped_hosts=["https://piped.test"],
            invidious_hosts=["https://inv.test"],
            deprioritized_host=None,
            use_ytdlp=False,
        ),
        ai=AIConfig(),
        keys=ApiKeys(),
        database=str(tmp_path / "projects.db"),
    )


@pytest.fixture
def store(tmp_path: Path) -> Iterator[ProjectStore]:
    """Initialized project store in a temporary directory."""
    project_store = ProjectStore(tmp_path / "projects.db")
    project_store.init_db()
    yield project_store


# --- Sample Payloads ---

SAMPLE_VTT = "WEBVTT\n\n00:00:00.000 --> 00:00:01.000\nHello world\n"

SAMPLE_JSON3 = json.dumps({"events": [{"segs": [{"utf8": "Hi "}, {"utf8": "there"}]}]})


def long_text(words: int = 80, word: str = "word") -> str:
    """A transcript with the given number of words."""
    return " ".join(f"{word}{i}" for i in range(words))


def watch_page_with_tracks(tracks: list[dict[str, Any]]) -> str:
    """Minimal watch page HTML embedding a player response with caption tracks."""
    player_response = {
        "captions": {"playerCaptionsTracklistRenderer": {"captionTracks": tracks}},
        "videoDetails": {"title": "Test"},
    }
    return f"<html><script>var ytInitialPlayerResponse = {json.dumps(player_response)};</script></html>"


def make_chat_response(content: str | None = None, tool_arguments: str | None = None) -> MagicMock:
    """Mock OpenAI chat completion response."""
    message = MagicMock()
    message.content = content
    if tool_arguments is None:
        message.tool_calls = None
    else:
        tool_call = MagicMock()
        tool_call.function.name = "generate_sentences"
        tool_call.function.arguments = tool_arguments
        message.tool_calls = [tool_call]
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    return response
