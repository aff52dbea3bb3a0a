"""Tests for audio stream resolution and capped downloads."""

import json
import random
from unittest.mock import MagicMock, patch

import pytest
import requests

from tubelingo.audio import (
    AudioDownloadError,
    AudioResolver,
    AudioStream,
    _download,
    download_audio,
    order_hosts,
    resolve_audio,
    select_audio_from_player_response,
)
from tubelingo.config import Config

from .conftest import FakeSession, make_response

VIDEO_ID = "dQw4w9WgXcQ"


def _resolver(config: Config, routes: dict) -> tuple[AudioResolver, FakeSession]:
    session = FakeSession(routes)
    return AudioResolver(session, config.audio, random.Random(0)), session  # type: ignore[arg-type]


class TestOrderHosts:
    """Mirror host ordering."""

    @pytest.mark.parametrize("seed", range(5))
    def test_deprioritized_host_always_last(self, seed: int) -> None:
        hosts = ["https://a.test/", "https://b.test", "https://c.test", "https://d.test"]
        ordered = order_hosts(hosts, "https://a.test", random.Random(seed))
        assert ordered[-1] == "https://a.test"
        assert sorted(ordered[:-1]) == ["https://b.test", "https://c.test", "https://d.test"]

    def test_deprioritized_host_not_in_list(self) -> None:
        ordered = order_hosts(["https://b.test"], "https://a.test", random.Random(0))
        assert ordered == ["https://b.test"]

    def test_no_deprioritized_host(self) -> None:
        ordered = order_hosts(["https://b.test/", "https://c.test"], None, random.Random(0))
        assert sorted(ordered) == ["https://b.test", "https://c.test"]


class TestStrategies:
    """Each resolution source on its own."""

    def test_piped_prefers_mp4(self, config: Config) -> None:
        data = {
            "audioStreams": [
                {"url": "https://cdn.test/opus", "mimeType": "audio/webm"},
                {"url": "https://cdn.test/m4a", "mimeType": "audio/mp4"},
            ]
        }
        resolver, _ = _resolver(config, {"piped.test/streams/": make_response(200, json_data=data)})
        stream = resolver.from_piped(VIDEO_ID)
        assert stream == AudioStream("https://cdn.test/m4a", "audio/mp4", "piped")

    def test_piped_falls_back_to_first_with_url(self, config: Config) -> None:
        data = {"audioStreams": [{"mimeType": "audio/mp4"}, {"url": "https://cdn.test/opus", "mimeType": "audio/webm"}]}
        resolver, _ = _resolver(config, {"piped.test": make_response(200, json_data=data)})
        stream = resolver.from_piped(VIDEO_ID)
        assert stream is not None
        assert stream.url == "https://cdn.test/opus"
        assert stream.extension == "webm"

    def test_piped_bad_json_skips_host(self, config: Config) -> None:
        resolver, _ = _resolver(config, {"piped.test": make_response(200, "<html>")})
        assert resolver.from_piped(VIDEO_ID) is None

    def test_invidious_filters_audio_formats(self, config: Config) -> None:
        data = {
            "adaptiveFormats": [
                {"type": "video/mp4; codecs=avc1", "url": "https://cdn.test/video"},
                {"type": "audio/webm; codecs=opus", "url": "https://cdn.test/opus"},
            ]
        }
        resolver, _ = _resolver(config, {"inv.test/api/v1/videos/": make_response(200, json_data=data)})
        assert resolver.from_invidious(VIDEO_ID) == AudioStream("https://cdn.test/opus", "audio/webm", "invidious")

    def test_invidious_redirect_first_itag(self, config: Config) -> None:
        resolver, session = _resolver(config, {"latest_version": make_response(302)})
        stream = resolver.from_invidious_redirect(VIDEO_ID)
        assert stream is not None
        assert stream.url == f"https://inv.test/latest_version?id={VIDEO_ID}&itag=140"
        assert stream.mime_type == "audio/mp4"
        assert session.urls("HEAD") == [stream.url]

    def test_invidious_redirect_unreachable_host_skipped(self, config: Config) -> None:
        resolver, session = _resolver(config, {"latest_version": requests.ConnectionError("down")})
        assert resolver.from_invidious_redirect(VIDEO_ID) is None
        assert len(session.urls("HEAD")) == 1

    def test_invidious_redirect_tries_all_itags(self, config: Config) -> None:
        resolver, session = _resolver(config, {"latest_version": make_response(404)})
        assert resolver.from_invidious_redirect(VIDEO_ID) is None
        assert [u.rsplit("=", 1)[1] for u in session.urls("HEAD")] == ["140", "251", "250", "249"]

    def test_watch_page_player_response(self, config: Config) -> None:
        player_response = {
            "streamingData": {
                "adaptiveFormats": [
                    {"mimeType": 'audio/mp4; codecs="mp4a.40.2"', "signatureCipher": "s=abc"},
                    {"mimeType": 'audio/mp4; codecs="mp4a.40.2"', "url": "https://cdn.test/direct"},
                ]
            }
        }
        page = f"<script>var ytInitialPlayerResponse = {json.dumps(player_response)};</script>"
        resolver, _ = _resolver(config, {"watch?v=": make_response(200, page)})
        assert resolver.from_watch_page(VIDEO_ID) == AudioStream("https://cdn.test/direct", "audio/mp4", "watch-page")

    def test_watch_page_cipher_only(self) -> None:
        player_response = {"streamingData": {"adaptiveFormats": [{"mimeType": "audio/webm", "signatureCipher": "x"}]}}
        assert select_audio_from_player_response(player_response) is None

    def test_ytdlp_disabled(self, config: Config) -> None:
        resolver, _ = _resolver(config, {})
        with patch("tubelingo.audio.YoutubeDL") as ydl_cls:
            assert resolver.from_ytdlp(VIDEO_ID) is None
        ydl_cls.assert_not_called()

    def test_ytdlp_picks_audio_only_mp4(self, config: Config) -> None:
        config.audio.use_ytdlp = True
        resolver, _ = _resolver(config, {})
        info = {
            "formats": [
                {"url": "https://cdn.test/muxed", "ext": "mp4", "acodec": "mp4a", "vcodec": "avc1", "abr": 128},
                {"url": "https://cdn.test/opus", "ext": "webm", "acodec": "opus", "vcodec": "none", "abr": 160},
                {"url": "https://cdn.test/low", "ext": "m4a", "acodec": "mp4a", "vcodec": "none", "abr": 48},
                {"url": "https://cdn.test/high", "ext": "m4a", "acodec": "mp4a", "vcodec": "none", "abr": 128},
            ]
        }
        with patch("tubelingo.audio.YoutubeDL") as ydl_cls:
            ydl_cls.return_value.__enter__.return_value.extract_info.return_value = info
            stream = resolver.from_ytdlp(VIDEO_ID)
        assert stream == AudioStream("https://cdn.test/high", "audio/mp4", "yt-dlp")

    def test_ytdlp_uses_per_host_timeout(self, config: Config) -> None:
        """yt-dlp is bounded by the same timeout as the other strategies."""
        config.audio.use_ytdlp = True
        config.audio.timeout = 2.5
        resolver, _ = _resolver(config, {})
        with patch("tubelingo.audio.YoutubeDL") as ydl_cls:
            ydl_cls.return_value.__enter__.return_value.extract_info.return_value = {"formats": []}
            resolver.from_ytdlp(VIDEO_ID)

        opts = ydl_cls.call_args.args[0]
        assert opts["socket_timeout"] == 2.5
        assert opts["skip_download"] is True

    def test_ytdlp_failure_returns_none(self, config: Config) -> None:
        config.audio.use_ytdlp = True
        resolver, _ = _resolver(config, {})
        with patch("tubelingo.audio.YoutubeDL") as ydl_cls:
            ydl_cls.return_value.__enter__.return_value.extract_info.side_effect = Exception("blocked")
            assert resolver.from_ytdlp(VIDEO_ID) is None


class TestResolve:
    """Strategy ordering."""

    def test_piped_wins_before_others(self, config: Config) -> None:
        data = {"audioStreams": [{"url": "https://cdn.test/m4a", "mimeType": "audio/mp4"}]}
        resolver, session = _resolver(config, {"piped.test": make_response(200, json_data=data)})
        stream = resolver.resolve(VIDEO_ID)
        assert stream is not None
        assert stream.source == "piped"
        assert len(session.calls) == 1

    def test_all_strategies_exhausted(self, config: Config) -> None:
        session = FakeSession()
        assert resolve_audio(VIDEO_ID, session, config.audio, random.Random(0)) is None  # type: ignore[arg-type]
        urls = session.urls()
        assert "piped.test/streams" in urls[0]
        assert "inv.test/api/v1/videos" in urls[1]
        assert all("latest_version" in u for u in urls[2:6])
        assert "watch?v=" in urls[6]


class TestDownload:
    """Capped audio downloads."""

    def test_truncates_to_cap_and_sends_range(self) -> None:
        session = MagicMock()
        session.get.return_value = make_response(206, content=b"x" * 3000)
        data = download_audio(AudioStream("https://cdn.test/a"), session, max_bytes=1500)
        assert data == b"x" * 1500
        assert session.get.call_args.kwargs["headers"]["Range"] == "bytes=0-1500"
        assert session.get.call_args.kwargs["stream"] is True

    def test_small_stream_returned_whole(self) -> None:
        session = MagicMock()
        session.get.return_value = make_response(200, content=b"abc")
        assert download_audio(AudioStream("https://cdn.test/a"), session, max_bytes=1500) == b"abc"

    def test_http_error_raises(self) -> None:
        session = MagicMock()
        session.get.return_value = make_response(403)
        with pytest.raises(AudioDownloadError, match="HTTP 403"):
            download_audio(AudioStream("https://cdn.test/a"), session)

    def test_empty_body_raises(self) -> None:
        session = MagicMock()
        session.get.return_value = make_response(200, content=b"")
        with pytest.raises(AudioDownloadError, match="empty"):
            download_audio(AudioStream("https://cdn.test/a"), session)

    def test_network_errors_retried(self) -> None:
        session = MagicMock()
        session.get.side_effect = [
            requests.ConnectionError("reset"),
            requests.ConnectionError("reset"),
            make_response(200, content=b"audio"),
        ]
        with patch.object(_download.retry, "sleep"):
            assert download_audio(AudioStream("https://cdn.test/a"), session) == b"audio"
        assert session.get.call_count == 3

    def test_persistent_network_error_wrapped(self) -> None:
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("reset")
        with patch.object(_download.retry, "sleep"), pytest.raises(AudioDownloadError, match="reset"):
            download_audio(AudioStream("https://cdn.test/a"), session)
        assert session.get.call_count == 3
