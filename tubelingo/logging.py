"""Logging configuration for tubelingo.

All modules log through the loguru ``logger`` exported here. API keys can
end up in exception text or request URLs, so every record passes through a
patcher that masks them before any sink sees it.
"""

import re
import sys

from loguru import logger

# OpenAI keys, Google API keys, and key=/api_key= query parameters
_SECRET_PATTERNS = [
    re.compile(r"sk-[A-Za-z0-9_\-]{16,}"),
    re.compile(r"AIza[0-9A-Za-z_\-]{20,}"),
    re.compile(r"(?<=[?&]key=)[^&\s]+"),
    re.compile(r"(?<=api_key=)[^&\s]+"),
]

_info_format = "<level>{level: <7}</level> | {message}"
_debug_format = (
    "<dim>{time:HH:mm:ss}</dim> | <level>{level: <7}</level> | <cyan>{name}</cyan> | {message}"
)


def redact_secrets(text: str) -> str:
    """Mask anything in text that looks like an API key."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub("***", text)
    return text


def _redact_record(record: dict) -> None:
    record["message"] = redact_secrets(record["message"])


logger.remove()
logger.configure(patcher=_redact_record)


def configure_logging(verbose: bool = False) -> None:
    """Install the stderr sink.

    Args:
        verbose: DEBUG with timestamps and module names when True,
            otherwise INFO and above in the short format.
    """
    logger.remove()
    if verbose:
        logger.add(sys.stderr, format=_debug_format, level="DEBUG")
    else:
        # stage transitions, degraded paths, failures
        logger.add(sys.stderr, format=_info_format, level="INFO")


__all__ = ["logger", "configure_logging", "redact_secrets"]
