"""Tests for tubelingo package exports."""

import sys
from unittest.mock import patch


def test_version_exported() -> None:
    """Package exports __version__."""
    from tubelingo import __version__

    assert __version__
    assert isinstance(__version__, str)


def test_version_fallback_on_import_error() -> None:
    """Falls back to dev version when _version module unavailable."""
    original_modules = {k: v for k, v in sys.modules.items() if k.startswith("tubelingo")}

    for mod in list(original_modules.keys()):
        del sys.modules[mod]

    try:
        with patch.dict(sys.modules, {"tubelingo._version": None}):
            import importlib

            import tubelingo

            importlib.reload(tubelingo)

            assert tubelingo.__version__ == "0.0.0.dev0"
    finally:
        for mod in list(sys.modules.keys()):
            if mod.startswith("tubelingo"):
                del sys.modules[mod]

        sys.modules.update(original_modules)


def test_models_exported() -> None:
    """Package exports key models and helpers."""
    from tubelingo import CaptionTrack, InvalidVideoError, extract_video_id, parse_subtitle_content

    track = CaptionTrack(base_url="https://example.com", language_code="en")
    assert not track.is_auto_generated
    assert extract_video_id("dQw4w9WgXcQ") == "dQw4w9WgXcQ"
    assert parse_subtitle_content("") == ""

    try:
        raise InvalidVideoError("test error")
    except InvalidVideoError as e:
        assert "test error" in str(e)
