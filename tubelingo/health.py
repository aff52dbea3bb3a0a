"""API key and service reachability checks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from googleapiclient.discovery import Resource
from googleapiclient.errors import HttpError
from openai import OpenAI, OpenAIError

from tubelingo.config import Config
from tubelingo.logging import logger
from tubelingo.youtube_api import classify_error, get_youtube_client

# Long-lived public video used as a known-good lookup
PROBE_VIDEO_ID = "dQw4w9WgXcQ"


@dataclass
class ServiceCheck:
    """Result of checking one service."""

    service: str
    ok: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"service": self.service, "ok": self.ok, "message": self.message}


def check_youtube(api_key: str | None, client: Resource | None = None) -> ServiceCheck:
    """Look up a known video with the YouTube Data API key."""
    if not api_key and client is None:
        return ServiceCheck("youtube", False, "YouTube API key not configured")
    try:
        client = client or get_youtube_client(api_key or "")
        response = client.videos().list(part="snippet", id=PROBE_VIDEO_ID).execute()
    except HttpError as e:
        return ServiceCheck("youtube", False, f"YouTube API test failed: {classify_error(e)}")
    except OSError as e:
        return ServiceCheck("youtube", False, f"YouTube API test failed: {e}")
    items = response.get("items") or []
    title = items[0].get("snippet", {}).get("title", "No title found") if items else "No title found"
    return ServiceCheck("youtube", True, f"YouTube API is working correctly ({title})")


def check_openai(api_key: str | None, model: str = "gpt-4o-mini", client: OpenAI | None = None) -> ServiceCheck:
    """Send a tiny chat completion to verify the OpenAI key."""
    if not api_key and client is None:
        return ServiceCheck("openai", False, "OpenAI API key not configured")
    try:
        client = client or OpenAI(api_key=api_key)
        response = client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": "Say 'API test successful'"}],
            max_tokens=10,
        )
    except OpenAIError as e:
        return ServiceCheck("openai", False, f"OpenAI API test failed: {e}")
    reply = (response.choices[0].message.content or "").strip()
    return ServiceCheck("openai", True, f"OpenAI API is working correctly ({reply or 'empty reply'})")


def check_configured(service: str, key: str | None, env_name: str) -> ServiceCheck:
    """Presence-only check for keys that have no cheap probe call."""
    if key:
        return ServiceCheck(service, True, f"{env_name} configured")
    return ServiceCheck(service, False, f"{env_name} not configured")


def check_all(config: Config) -> list[ServiceCheck]:
    """Run every service check."""
    checks = [
        check_youtube(config.keys.youtube),
        check_openai(config.keys.openai, config.ai.analysis_model),
        check_configured("ai_gateway", config.keys.ai_gateway, "AI_GATEWAY_API_KEY"),
        check_configured("jobs", config.keys.supadata, "SUPADATA_API_KEY"),
    ]
    for check in checks:
        logger.debug("Service check {}: {} ({})", check.service, check.ok, check.message)
    return checks
