"""Configuration loading for tubelingo.

Settings live in ~/.tubelingo/config.toml (all sections optional):

    [transcript]
    min_words = 50
    language = "en"

    [audio]
    timeout = 4.0
    max_download_mb = 10
    piped_hosts = ["https://pipedapi.kavin.rocks"]
    invidious_hosts = ["https://inv.nadeko.net"]
    deprioritized_host = "https://pipedapi.kavin.rocks"

    [ai]
    analysis_model = "gpt-4o-mini"
    sentence_model = "google/gemini-2.5-flash"
    gateway_url = "https://ai.gateway.lovable.dev/v1"

    [jobs]
    base_url = "https://api.supadata.ai/v1"
    poll_interval = 60

API keys are never read from the TOML file. They come from the environment
(a .env file in the working directory is loaded first):

    OPENAI_API_KEY       speech-to-text and content analysis
    AI_GATEWAY_API_KEY   practice sentence generation
    YOUTUBE_API_KEY      official captions API
    SUPADATA_API_KEY     async transcript job backend
"""

import os
import tomllib
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Hard upper bound on audio downloads piped through speech-to-text
MAX_DOWNLOAD_MB_LIMIT = 32

DEFAULT_PIPED_HOSTS = [
    "https://pipedapi.kavin.rocks",
    "https://pipedapi.adminforge.de",
    "https://api.piped.private.coffee",
    "https://pipedapi.leptons.xyz",
]

DEFAULT_INVIDIOUS_HOSTS = [
    "https://inv.nadeko.net",
    "https://invidious.nerdvpn.de",
    "https://yewtu.be",
    "https://invidious.privacyredirect.com",
]


class ApiKeys(BaseModel):  # type: ignore[misc]
    """Secrets for hosted services (environment only)."""

    openai: str | None = None
    ai_gateway: str | None = None
    youtube: str | None = None
    supadata: str | None = None

    @classmethod
    def from_env(cls) -> "ApiKeys":
        """Read API keys from environment variables."""
        return cls(
            openai=os.getenv("OPENAI_API_KEY") or None,
            ai_gateway=os.getenv("AI_GATEWAY_API_KEY") or None,
            youtube=os.getenv("YOUTUBE_API_KEY") or None,
            supadata=os.getenv("SUPADATA_API_KEY") or None,
        )


class TranscriptConfig(BaseModel):  # type: ignore[misc]
    """Transcript acquisition settings."""

    min_words: int = 50
    language: str = "en"
    request_timeout: float = 15.0

    @field_validator("min_words")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_min_words(cls, v: int) -> int:
        """Ensure the word threshold is non-negative."""
        if v < 0:
            msg = "min_words must be non-negative"
            raise ValueError(msg)
        return v


class AudioConfig(BaseModel):  # type: ignore[misc]
    """Audio resolver and download settings.

    Attributes:
        timeout: Per-host request timeout in seconds.
        max_download_mb: Byte-range cap for audio downloads.
        piped_hosts: Mirror hosts serving /streams/{id}.
        invidious_hosts: Mirror hosts serving /api/v1/videos/{id}.
        deprioritized_host: Known rate-limited host, always tried last.
        use_ytdlp: Try yt-dlp extraction after the other strategies.
    """

    timeout: float = 4.0
    max_download_mb: int = 10
    piped_hosts: list[str] = Field(default_factory=lambda: list(DEFAULT_PIPED_HOSTS))
    invidious_hosts: list[str] = Field(default_factory=lambda: list(DEFAULT_INVIDIOUS_HOSTS))
    deprioritized_host: str | None = "https://pipedapi.kavin.rocks"
    use_ytdlp: bool = True

    @field_validator("timeout")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Ensure timeout is positive."""
        if v <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)
        return v

    @field_validator("max_download_mb")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_max_download(cls, v: int) -> int:
        """Keep downloads within the memory cap."""
        if v <= 0 or v > MAX_DOWNLOAD_MB_LIMIT:
            msg = f"max_download_mb must be between 1 and {MAX_DOWNLOAD_MB_LIMIT}"
            raise ValueError(msg)
        return v

    @property
    def max_download_bytes(self) -> int:
        return self.max_download_mb * 1024 * 1024


class AIConfig(BaseModel):  # type: ignore[misc]
    """LLM settings for analysis and sentence generation."""

    analysis_model: str = "gpt-4o-mini"
    sentence_model: str = "google/gemini-2.5-flash"
    gateway_url: str = "https://ai.gateway.lovable.dev/v1"
    transcript_char_limit: int = 3000
    sentence_count: int = 10

    @field_validator("sentence_count")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_sentence_count(cls, v: int) -> int:
        """Sentence generation accepts 1..20 sentences."""
        if not 1 <= v <= 20:
            msg = "sentence_count must be between 1 and 20"
            raise ValueError(msg)
        return v


class JobsConfig(BaseModel):  # type: ignore[misc]
    """Async transcript job backend settings."""

    base_url: str = "https://api.supadata.ai/v1"
    poll_interval: float = 60.0
    timeout: float = 15.0


class Config(BaseModel):  # type: ignore[misc]
    """tubelingo configuration."""

    transcript: TranscriptConfig = Field(default_factory=TranscriptConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    jobs: JobsConfig = Field(default_factory=JobsConfig)
    keys: ApiKeys = Field(default_factory=ApiKeys)
    database: str | None = None  # Path to projects.db, defaults to config dir

    @property
    def jobs_enabled(self) -> bool:
        """Async job backend is configured."""
        return bool(self.keys.supadata)

    def get_database_path(self) -> Path:
        """Resolve project database path."""
        if self.database:
            return Path(self.database).expanduser()
        return get_config_dir() / "projects.db"


def get_config_dir() -> Path:
    """Get or create config directory."""
    config_dir = Path.home() / ".tubelingo"
    config_dir.mkdir(exist_ok=True)
    return config_dir


def get_config_path() -> Path:
    """Path to the optional TOML config file."""
    return get_config_dir() / "config.toml"


def load_config(path: Path | None = None) -> Config:
    """Load configuration from TOML (if present) plus environment API keys.

    Args:
        path: Config file path. Defaults to ~/.tubelingo/config.toml.

    Returns:
        Validated Config. Missing file means all defaults.
    """
    load_dotenv()
    config_path = path or get_config_path()
    data: dict = {}
    if config_path.exists():
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    # Secrets never come from the file
    data.pop("keys", None)
    config: Config = Config.model_validate(data)
    config.keys = ApiKeys.from_env()
    return config
