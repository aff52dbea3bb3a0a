"""Async transcript job backend client and poller.

Long videos without captions are transcribed by a hosted job backend
(Supadata-compatible API). Starting a job returns either the transcript
right away or a job id that has to be polled until it reaches a terminal
state.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import requests

from tubelingo.http import FetchError, RateLimitError, check_response
from tubelingo.logging import logger


class JobBackendError(Exception):
    """Job backend request failed or returned an unusable response."""

    pass


class JobState(str, Enum):
    """Normalized job state."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


@dataclass
class JobStatus:
    """One observation of a job (or the immediate answer from start)."""

    state: JobState
    job_id: str | None = None
    transcript: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"status": self.state.value}
        if self.job_id:
            d["jobId"] = self.job_id
        if self.transcript is not None:
            d["transcript"] = self.transcript
        if self.error:
            d["error"] = self.error
        return d


def normalize_status(job_id: str, data: dict[str, Any]) -> JobStatus:
    """Map a backend status payload to a JobStatus.

    Backend states: queued, active, completed, failed. "active" becomes
    processing; anything unrecognized is treated as still queued.
    """
    status = str(data.get("status", "")).lower()
    if status == "completed":
        return JobStatus(JobState.COMPLETED, job_id=job_id, transcript=_content_text(data.get("content")))
    if status == "failed":
        detail = data.get("error") or data.get("message") or "Unknown error"
        return JobStatus(JobState.FAILED, job_id=job_id, error=f"Transcript generation failed: {detail}")
    if status in ("active", "processing"):
        return JobStatus(JobState.PROCESSING, job_id=job_id)
    return JobStatus(JobState.QUEUED, job_id=job_id)


def _content_text(content: Any) -> str:
    """Backend content is plain text, or a list of timed chunks."""
    if content is None:
        return ""
    if isinstance(content, list):
        return " ".join(str(c.get("text", "")).strip() for c in content if isinstance(c, dict)).strip()
    return str(content).strip()


class JobBackend:
    """HTTP client for the async transcript job backend.

    Args:
        api_key: Sent as the x-api-key header
        base_url: API root, e.g. https://api.supadata.ai/v1
        session: Optional requests session
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.supadata.ai/v1",
        session: requests.Session | None = None,
        timeout: float = 15.0,
    ) -> None:
        if not api_key:
            msg = "Job backend API key not configured"
            raise JobBackendError(msg)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, url: str, what: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self.session.request(
                method, url, headers={"x-api-key": self.api_key}, timeout=self.timeout, **kwargs
            )
            check_response(response, what)
            data = response.json()
        except RateLimitError:
            raise
        except (requests.RequestException, FetchError, ValueError) as e:
            msg = f"Job backend {what} failed: {e}"
            raise JobBackendError(msg) from e
        if not isinstance(data, dict):
            msg = f"Job backend {what} returned unexpected payload"
            raise JobBackendError(msg)
        return data

    def start(self, video_url: str, lang: str = "en") -> JobStatus:
        """Start transcript generation for a video.

        Returns:
            COMPLETED status with the transcript when the backend answers
            synchronously, otherwise QUEUED with the job id

        Raises:
            JobBackendError: On request failure or a response with neither
                content nor job id
            RateLimitError: If the backend answers HTTP 429
        """
        data = self._request(
            "POST",
            f"{self.base_url}/transcript",
            "job start",
            json={"url": video_url, "lang": lang, "mode": "generate"},
        )
        if data.get("content"):
            logger.info("Job backend returned transcript synchronously")
            return JobStatus(JobState.COMPLETED, transcript=_content_text(data["content"]))
        job_id = data.get("jobId") or data.get("job_id")
        if not job_id:
            msg = "Job backend response has neither content nor jobId"
            raise JobBackendError(msg)
        logger.info("Started transcript job {}", job_id)
        return JobStatus(JobState.QUEUED, job_id=str(job_id))

    def status(self, job_id: str) -> JobStatus:
        """Single status check for a job."""
        data = self._request("GET", f"{self.base_url}/transcript/{job_id}", "job status")
        status = normalize_status(job_id, data)
        logger.debug("Job {} status: {}", job_id, status.state.value)
        return status


@dataclass
class PollEntry:
    """A job being polled."""

    job_id: str
    project_id: int | None = None
    started_at: str = field(default_factory=lambda: datetime.now().isoformat())
    polls: int = 0
    last_state: JobState = JobState.QUEUED


CompleteCallback = Callable[[str, int | None, str], None]
FailedCallback = Callable[[str, int | None, str], None]


class JobPoller:
    """Polls active jobs and fires completion callbacks at most once per job.

    Args:
        backend: Job backend client
        on_complete: Called as on_complete(job_id, project_id, transcript)
        on_failed: Called as on_failed(job_id, project_id, error)
    """

    def __init__(
        self,
        backend: JobBackend,
        on_complete: CompleteCallback | None = None,
        on_failed: FailedCallback | None = None,
    ) -> None:
        self.backend = backend
        self.on_complete = on_complete
        self.on_failed = on_failed
        self.entries: dict[str, PollEntry] = {}
        self._finished: set[str] = set()

    def start(self, job_id: str, project_id: int | None = None) -> PollEntry | None:
        """Register a job for polling.

        Already registered jobs keep their entry. Jobs that already reached a
        terminal state are not polled again and return None.
        """
        if job_id in self._finished:
            logger.debug("Job {} already finished, not polling again", job_id)
            return None
        if job_id in self.entries:
            return self.entries[job_id]
        entry = PollEntry(job_id=job_id, project_id=project_id)
        self.entries[job_id] = entry
        logger.debug("Polling job {} for project {}", job_id, project_id)
        return entry

    def cancel(self, job_id: str) -> bool:
        """Stop polling a job. The backend job itself keeps running."""
        entry = self.entries.pop(job_id, None)
        if entry:
            logger.debug("Stopped polling job {}", job_id)
        return entry is not None

    def is_active(self, job_id: str) -> bool:
        return job_id in self.entries

    @property
    def active_jobs(self) -> list[str]:
        return list(self.entries)

    def poll(self, job_id: str) -> JobStatus | None:
        """Check one job once, firing callbacks on terminal states.

        Returns:
            The observed status, or None if the job is not being polled or
            the status check failed
        """
        entry = self.entries.get(job_id)
        if entry is None or job_id in self._finished:
            return None

        try:
            status = self.backend.status(job_id)
        except (JobBackendError, RateLimitError) as e:
            logger.warning("Status check for job {} failed: {}", job_id, e)
            return None

        entry.polls += 1
        entry.last_state = status.state
        if not status.state.is_terminal:
            return status

        # Terminal: stop polling before running side effects
        self._finished.add(job_id)
        self.entries.pop(job_id, None)

        if status.state == JobState.COMPLETED:
            logger.info("Job {} completed", job_id)
            if self.on_complete:
                self.on_complete(job_id, entry.project_id, status.transcript or "")
        else:
            logger.error("Job {} failed: {}", job_id, status.error)
            if self.on_failed:
                self.on_failed(job_id, entry.project_id, status.error or "Transcript generation failed")
        return status

    def poll_all(self) -> list[JobStatus]:
        """Poll every active job once."""
        results = []
        for job_id in list(self.entries):
            status = self.poll(job_id)
            if status:
                results.append(status)
        return results

    def run(
        self,
        interval: float = 60.0,
        max_polls: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> int:
        """Poll all active jobs on a fixed interval until none remain.

        Args:
            interval: Seconds between polling rounds
            max_polls: Stop after this many rounds (None for no limit)
            sleep: Sleep function (injectable for tests)

        Returns:
            Number of jobs still active when the loop stopped
        """
        rounds = 0
        while self.entries:
            self.poll_all()
            rounds += 1
            if not self.entries or (max_polls is not None and rounds >= max_polls):
                break
            logger.debug("{} job(s) pending, next poll in {}s", len(self.entries), interval)
            sleep(interval)
        return len(self.entries)
