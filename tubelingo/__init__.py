"""tubelingo - turn YouTube videos into language lessons."""

from tubelingo.models import (
    CaptionTrack,
    InvalidVideoError,
    Project,
    TranscriptResult,
    extract_video_id,
)
from tubelingo.subtitles import parse_subtitle_content

try:
    from tubelingo._version import __version__
except ImportError:
    __version__ = "0.0.0.dev0"

__all__ = [
    "CaptionTrack",
    "InvalidVideoError",
    "Project",
    "TranscriptResult",
    "extract_video_id",
    "parse_subtitle_content",
    "__version__",
]
