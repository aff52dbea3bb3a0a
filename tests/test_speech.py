"""Tests for speech-to-text transcription."""

from unittest.mock import MagicMock

import pytest
from openai import OpenAIError

from tubelingo.audio import AudioStream
from tubelingo.speech import STT_MODEL, SpeechToTextError, transcribe_audio


def _client(result: object) -> MagicMock:
    client = MagicMock()
    if isinstance(result, Exception):
        client.audio.transcriptions.create.side_effect = result
    else:
        client.audio.transcriptions.create.return_value = result
    return client


class TestTranscribeAudio:
    """Tests for transcribe_audio."""

    def test_returns_stripped_text(self) -> None:
        client = _client("  Bonjour tout le monde, ça va bien?  \n")
        text = transcribe_audio(b"audio", AudioStream("u", "audio/mp4"), client=client)
        assert text == "Bonjour tout le monde, ça va bien?"

    def test_upload_named_after_stream_format(self) -> None:
        client = _client("Some transcript of decent length")
        transcribe_audio(b"audio", AudioStream("u", "audio/webm"), language="fr", client=client)
        kwargs = client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["model"] == STT_MODEL
        assert kwargs["file"] == ("audio.webm", b"audio", "audio/webm")
        assert kwargs["response_format"] == "text"
        assert kwargs["language"] == "fr"

    def test_language_omitted_for_auto_detect(self) -> None:
        client = _client("Some transcript of decent length")
        transcribe_audio(b"audio", AudioStream("u"), language=None, client=client)
        assert "language" not in client.audio.transcriptions.create.call_args.kwargs

    def test_object_result_with_text(self) -> None:
        result = MagicMock()
        result.text = "Transcript from an object response"
        assert transcribe_audio(b"a", AudioStream("u"), client=_client(result)) == result.text

    def test_short_transcript_rejected(self) -> None:
        with pytest.raises(SpeechToTextError, match="short"):
            transcribe_audio(b"a", AudioStream("u"), client=_client("uh"))

    def test_api_error_wrapped(self) -> None:
        with pytest.raises(SpeechToTextError, match="transcription failed"):
            transcribe_audio(b"a", AudioStream("u"), client=_client(OpenAIError("invalid file")))

    def test_missing_key(self) -> None:
        with pytest.raises(SpeechToTextError, match="not configured"):
            transcribe_audio(b"a", AudioStream("u"))
