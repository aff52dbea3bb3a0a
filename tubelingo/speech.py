"""Speech-to-text via the OpenAI transcription endpoint."""

from openai import OpenAI, OpenAIError

from tubelingo.audio import AudioStream
from tubelingo.logging import logger

STT_MODEL = "whisper-1"

# Transcripts shorter than this are treated as an empty result
MIN_TRANSCRIPT_CHARS = 10


class SpeechToTextError(Exception):
    """Speech-to-text request failed or returned nothing usable."""

    pass


def transcribe_audio(
    audio: bytes,
    stream: AudioStream,
    api_key: str | None = None,
    language: str | None = "en",
    client: OpenAI | None = None,
) -> str:
    """Transcribe downloaded audio bytes.

    Args:
        audio: Audio bytes (possibly truncated to the download cap)
        stream: Stream the bytes came from, used for the upload filename/MIME
        api_key: OpenAI API key, ignored when client is given
        language: ISO-639-1 hint for the model, None to auto-detect
        client: Preconfigured OpenAI client

    Returns:
        Transcript text

    Raises:
        SpeechToTextError: On API errors or an empty/very short transcript
    """
    if client is None:
        if not api_key:
            msg = "OpenAI API key not configured"
            raise SpeechToTextError(msg)
        client = OpenAI(api_key=api_key)

    filename = f"audio.{stream.extension}"
    logger.info("Sending {} bytes of audio to {}", len(audio), STT_MODEL)

    kwargs = {"language": language} if language else {}
    try:
        result = client.audio.transcriptions.create(
            model=STT_MODEL,
            file=(filename, audio, stream.mime_type),
            response_format="text",
            **kwargs,
        )
    except OpenAIError as e:
        msg = f"Audio transcription failed: {e}"
        raise SpeechToTextError(msg) from e

    # response_format="text" yields a plain string; older SDKs wrap it
    text = result if isinstance(result, str) else str(getattr(result, "text", "") or "")
    text = text.strip()
    if len(text) < MIN_TRANSCRIPT_CHARS:
        msg = "Speech-to-text returned an empty or very short transcript"
        raise SpeechToTextError(msg)

    logger.info("Speech-to-text produced {} characters", len(text))
    return text
