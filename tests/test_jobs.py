"""Tests for the async transcript job backend and poller."""

from unittest.mock import MagicMock

import pytest
import requests

from tubelingo.http import RateLimitError
from tubelingo.jobs import (
    JobBackend,
    JobBackendError,
    JobPoller,
    JobState,
    JobStatus,
    normalize_status,
)

from .conftest import FakeSession, make_response

BASE = "https://jobs.test/v1"


class TestNormalizeStatus:
    """Backend payload to JobStatus mapping."""

    def test_completed_with_text(self) -> None:
        status = normalize_status("j1", {"status": "completed", "content": " transcript text "})
        assert status == JobStatus(JobState.COMPLETED, job_id="j1", transcript="transcript text")

    def test_completed_with_chunks(self) -> None:
        data = {"status": "completed", "content": [{"text": "hello", "offset": 0}, {"text": "world", "offset": 1}]}
        assert normalize_status("j1", data).transcript == "hello world"

    def test_failed_with_error(self) -> None:
        status = normalize_status("j1", {"status": "failed", "error": "video too long"})
        assert status.state == JobState.FAILED
        assert status.error == "Transcript generation failed: video too long"

    def test_failed_without_detail(self) -> None:
        assert normalize_status("j1", {"status": "failed"}).error == "Transcript generation failed: Unknown error"

    @pytest.mark.parametrize(
        ("raw", "state"),
        [("active", JobState.PROCESSING), ("queued", JobState.QUEUED), ("", JobState.QUEUED), ("weird", JobState.QUEUED)],
    )
    def test_non_terminal_states(self, raw: str, state: JobState) -> None:
        status = normalize_status("j1", {"status": raw})
        assert status.state == state
        assert not status.state.is_terminal

    def test_to_dict(self) -> None:
        assert JobStatus(JobState.QUEUED, job_id="j1").to_dict() == {"status": "queued", "jobId": "j1"}


class TestJobBackend:
    """HTTP client behavior."""

    def test_requires_api_key(self) -> None:
        with pytest.raises(JobBackendError):
            JobBackend("")

    def test_start_returns_job_id(self) -> None:
        session = FakeSession({"/transcript": make_response(202, json_data={"jobId": "abc"})})
        backend = JobBackend("key", BASE, session=session)  # type: ignore[arg-type]
        status = backend.start("https://www.youtube.com/watch?v=x", "fr")
        assert status == JobStatus(JobState.QUEUED, job_id="abc")
        assert session.calls == [("POST", f"{BASE}/transcript")]

    def test_start_synchronous_content(self) -> None:
        session = FakeSession({"/transcript": make_response(200, json_data={"content": "done already"})})
        status = JobBackend("key", BASE, session=session).start("url")  # type: ignore[arg-type]
        assert status.state == JobState.COMPLETED
        assert status.transcript == "done already"

    def test_start_sends_key_and_body(self) -> None:
        session = MagicMock()
        session.request.return_value = make_response(200, json_data={"jobId": "abc"})
        JobBackend("secret", BASE, session=session).start("url", "ja")
        args, kwargs = session.request.call_args
        assert args == ("POST", f"{BASE}/transcript")
        assert kwargs["headers"] == {"x-api-key": "secret"}
        assert kwargs["json"] == {"url": "url", "lang": "ja", "mode": "generate"}

    def test_start_without_content_or_id(self) -> None:
        session = FakeSession({"/transcript": make_response(200, json_data={})})
        with pytest.raises(JobBackendError, match="neither"):
            JobBackend("key", BASE, session=session).start("url")  # type: ignore[arg-type]

    def test_http_error_wrapped(self) -> None:
        session = FakeSession({"/transcript": make_response(401)})
        with pytest.raises(JobBackendError, match="HTTP 401"):
            JobBackend("key", BASE, session=session).start("url")  # type: ignore[arg-type]

    def test_network_error_wrapped(self) -> None:
        session = FakeSession({"/transcript": requests.ConnectionError("refused")})
        with pytest.raises(JobBackendError, match="refused"):
            JobBackend("key", BASE, session=session).status("abc")  # type: ignore[arg-type]

    def test_rate_limit_not_wrapped(self) -> None:
        """HTTP 429 surfaces as RateLimitError so the cascade can stop."""
        session = FakeSession({"/transcript": make_response(429)})
        with pytest.raises(RateLimitError):
            JobBackend("key", BASE, session=session).start("url")  # type: ignore[arg-type]

    def test_status(self) -> None:
        session = FakeSession({"/transcript/abc": make_response(200, json_data={"status": "active"})})
        status = JobBackend("key", BASE + "/", session=session).status("abc")  # type: ignore[arg-type]
        assert status.state == JobState.PROCESSING
        assert session.urls() == [f"{BASE}/transcript/abc"]


def _backend(*statuses: JobStatus | Exception) -> MagicMock:
    backend = MagicMock()
    backend.status.side_effect = list(statuses)
    return backend


class TestJobPoller:
    """Polling loop and exactly-once completion."""

    def test_completion_fires_once(self) -> None:
        completed = JobStatus(JobState.COMPLETED, job_id="j1", transcript="text")
        on_complete = MagicMock()
        poller = JobPoller(_backend(completed, completed), on_complete=on_complete)
        poller.start("j1", project_id=7)

        assert poller.poll("j1") == completed
        assert poller.poll("j1") is None
        on_complete.assert_called_once_with("j1", 7, "text")
        assert not poller.is_active("j1")

    def test_finished_job_not_restarted(self) -> None:
        poller = JobPoller(_backend(JobStatus(JobState.COMPLETED, job_id="j1", transcript="t")))
        poller.start("j1")
        poller.poll("j1")
        assert poller.start("j1") is None
        assert poller.active_jobs == []

    def test_start_is_idempotent(self) -> None:
        poller = JobPoller(_backend())
        first = poller.start("j1", 1)
        assert poller.start("j1", 1) is first
        assert poller.active_jobs == ["j1"]

    def test_failure_fires_on_failed(self) -> None:
        on_failed = MagicMock()
        on_complete = MagicMock()
        poller = JobPoller(
            _backend(JobStatus(JobState.FAILED, job_id="j1", error="Transcript generation failed: boom")),
            on_complete=on_complete,
            on_failed=on_failed,
        )
        poller.start("j1", 3)
        poller.poll("j1")
        on_failed.assert_called_once_with("j1", 3, "Transcript generation failed: boom")
        on_complete.assert_not_called()

    def test_status_error_keeps_polling(self) -> None:
        poller = JobPoller(_backend(JobBackendError("timeout"), JobStatus(JobState.PROCESSING, job_id="j1")))
        poller.start("j1")
        assert poller.poll("j1") is None
        assert poller.poll("j1") is not None
        assert poller.entries["j1"].polls == 1
        assert poller.entries["j1"].last_state == JobState.PROCESSING

    def test_rate_limited_status_keeps_polling(self) -> None:
        poller = JobPoller(
            _backend(RateLimitError("HTTP 429", status_code=429), JobStatus(JobState.PROCESSING, job_id="j1"))
        )
        poller.start("j1")
        assert poller.poll("j1") is None
        assert poller.is_active("j1")
        assert poller.poll("j1") is not None

    def test_cancel(self) -> None:
        poller = JobPoller(_backend())
        poller.start("j1")
        assert poller.cancel("j1") is True
        assert poller.cancel("j1") is False
        assert poller.poll("j1") is None

    def test_run_until_done(self) -> None:
        on_complete = MagicMock()
        backend = _backend(
            JobStatus(JobState.QUEUED, job_id="j1"),
            JobStatus(JobState.PROCESSING, job_id="j1"),
            JobStatus(JobState.COMPLETED, job_id="j1", transcript="final"),
        )
        poller = JobPoller(backend, on_complete=on_complete)
        poller.start("j1", 1)
        sleeps: list[float] = []

        remaining = poller.run(interval=60, sleep=sleeps.append)

        assert remaining == 0
        assert sleeps == [60, 60]
        on_complete.assert_called_once_with("j1", 1, "final")

    def test_run_stops_after_max_polls(self) -> None:
        backend = MagicMock()
        backend.status.return_value = JobStatus(JobState.PROCESSING, job_id="j1")
        poller = JobPoller(backend)
        poller.start("j1")
        sleeps: list[float] = []

        assert poller.run(interval=5, max_polls=3, sleep=sleeps.append) == 1
        assert backend.status.call_count == 3
        assert sleeps == [5, 5]

    def test_run_with_nothing_to_do(self) -> None:
        poller = JobPoller(_backend())
        assert poller.run(sleep=lambda _: pytest.fail("should not sleep")) == 0
