"""LLM-backed content analysis and practice sentence generation.

Both wrappers degrade to empty results instead of raising: a lesson with
a transcript but no vocabulary is still useful, and the error is kept on
the result so the caller can surface it.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from openai import APIStatusError, OpenAI, OpenAIError, RateLimitError
from pydantic import BaseModel, Field, ValidationError

from tubelingo.config import AIConfig
from tubelingo.logging import logger
from tubelingo.models import AnalysisResult, GrammarItem, PracticeSentence, VocabularyItem

DIFFICULTIES = ("beginner", "intermediate", "advanced")

ANALYSIS_SYSTEM_PROMPT = """You are a language learning assistant. Analyze the provided text and extract:
1. 15 key vocabulary words with definitions and difficulty levels (beginner/intermediate/advanced)
2. 5 important grammar patterns with examples from the text and explanations
3. The language of the text

CRITICAL - LANGUAGE DETECTION RULES:
- **Japanese**: Contains hiragana (あいうえお), katakana (アイウエオ), particles (は、を、に、が、の、へ、と、で、から、まで), verb endings like ます/です/た/て
- **Chinese (Mandarin)**: Only uses hanzi characters (汉字/漢字), no hiragana/katakana, uses 的、了、吗、呢、啊 particles
- **Korean**: Uses Hangul (한글) characters
- Check for language-specific particles and writing systems FIRST before making a determination
- If text contains hiragana or katakana characters, it is ALWAYS Japanese, even if it also has kanji
- If text only has hanzi with no hiragana/katakana, it is Chinese
- Look for Japanese verb conjugations (ている、ました、でした) vs Chinese aspect markers (了、过、着)

IMPORTANT: Provide all definitions and explanations in ENGLISH (the learner's native language), but keep vocabulary words, grammar rule names, and grammar examples in the ORIGINAL LANGUAGE of the text.

Return ONLY valid JSON in this exact format:
{
  "detectedLanguage": "language name (Japanese, Chinese, Korean, Spanish, etc.)",
  "vocabulary": [
    {
      "word": "word in the original language",
      "definition": "clear definition in English",
      "difficulty": "beginner|intermediate|advanced"
    }
  ],
  "grammar": [
    {
      "rule": "grammar rule name in the original language",
      "example": "example from the text in the original language",
      "explanation": "clear, detailed explanation in English that helps English speakers understand how this grammar pattern works"
    }
  ]
}"""

SENTENCE_SYSTEM_PROMPT = (
    "You are a language learning expert. Generate practice sentences that help students "
    "apply vocabulary and grammar in context. Use the generate_sentences function to "
    "return the structured result."
)

SENTENCE_USER_PROMPT = """Generate {count} practice sentences in {language} for language learners.

Vocabulary words to use: {words}

Grammar patterns to demonstrate: {rules}

Requirements:
1. Each sentence should use 1-3 vocabulary words from the list
2. Each sentence should demonstrate at least 1 grammar pattern
3. Mix difficulty levels: some beginner, some intermediate, some advanced
4. Make sentences natural, conversational, and useful for real-world communication
5. Sentences should be practical and relevant to everyday situations"""

GENERATE_SENTENCES_TOOL: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "generate_sentences",
        "description": "Generate practice sentences for language learning",
        "parameters": {
            "type": "object",
            "properties": {
                "sentences": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "text": {"type": "string", "description": "The sentence in the target language"},
                            "translation": {"type": "string", "description": "English translation"},
                            "difficulty": {"type": "string", "enum": list(DIFFICULTIES)},
                            "usedVocabulary": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "List of vocabulary words used in this sentence",
                            },
                            "usedGrammar": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "List of grammar rules demonstrated in this sentence",
                            },
                        },
                        "required": ["text", "translation", "difficulty", "usedVocabulary", "usedGrammar"],
                        "additionalProperties": False,
                    },
                }
            },
            "required": ["sentences"],
            "additionalProperties": False,
        },
    },
}

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


class LLMResponseError(Exception):
    """Model output could not be parsed into the expected structure."""

    pass


def parse_llm_json(text: str | None) -> Any:
    """Parse JSON from model output.

    Strips surrounding Markdown code fences and control characters first.

    Raises:
        LLMResponseError: If the text is empty or not valid JSON
    """
    if not text or not text.strip():
        msg = "Empty response from model"
        raise LLMResponseError(msg)
    cleaned = _FENCE_RE.sub("", text.strip()).strip()
    cleaned = _CONTROL_RE.sub("", cleaned)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        preview = cleaned[:120].replace("\n", " ")
        msg = f"Failed to parse model response as JSON ({e.msg} at position {e.pos}): {preview!r}"
        raise LLMResponseError(msg) from e


def _difficulty(value: Any) -> str:
    value = str(value or "").lower()
    return value if value in DIFFICULTIES else "intermediate"


def _as_list(value: Any) -> list[Any]:
    """Model arrays that came back as anything else count as empty."""
    return value if isinstance(value, list) else []


def _first_message(response: Any) -> Any:
    choices = getattr(response, "choices", None) or []
    if not choices:
        msg = "No response from model"
        raise LLMResponseError(msg)
    return choices[0].message


def _describe_api_error(e: OpenAIError) -> str:
    if isinstance(e, RateLimitError):
        return "Rate limits exceeded, please try again later."
    if isinstance(e, APIStatusError) and e.status_code == 402:
        return "AI credits exhausted. Please add credits to your workspace."
    return f"AI request failed: {e}"


class ContentAnalyzer:
    """Extract vocabulary, grammar and the detected language from a transcript."""

    def __init__(self, api_key: str | None, config: AIConfig | None = None, client: OpenAI | None = None) -> None:
        self.config = config or AIConfig()
        self.client = client
        if self.client is None and api_key:
            self.client = OpenAI(api_key=api_key)

    def analyze(self, transcript: str) -> AnalysisResult:
        """Analyze a transcript. Never raises; failures yield an empty result."""
        if not transcript or not transcript.strip():
            return AnalysisResult(error="Transcript is required")
        if self.client is None:
            logger.warning("OPENAI_API_KEY not configured, skipping content analysis")
            return AnalysisResult(error="OPENAI_API_KEY is not configured")

        logger.info("Analyzing content with {} ({} chars)", self.config.analysis_model, len(transcript))
        try:
            response = self.client.chat.completions.create(
                model=self.config.analysis_model,
                messages=[
                    {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": f"Analyze this text:\n\n{transcript[: self.config.transcript_char_limit]}",
                    },
                ],
                temperature=0.3,
                max_tokens=2000,
            )
            data = parse_llm_json(_first_message(response).content)
        except OpenAIError as e:
            error = _describe_api_error(e)
            logger.warning("Content analysis failed: {}", error)
            return AnalysisResult(error=error)
        except LLMResponseError as e:
            logger.warning("Content analysis returned unusable output: {}", e)
            return AnalysisResult(error=str(e))

        result = self.result_from_data(data)
        logger.info(
            "Analysis complete: {} ({} vocabulary, {} grammar)",
            result.detected_language,
            len(result.vocabulary),
            len(result.grammar),
        )
        return result

    @staticmethod
    def result_from_data(data: Any) -> AnalysisResult:
        """Build an AnalysisResult from parsed model JSON, tolerating gaps."""
        if not isinstance(data, dict):
            return AnalysisResult(error="Model response is not a JSON object")
        vocabulary = [
            VocabularyItem(
                word=str(v.get("word", "")),
                definition=str(v.get("definition", "")),
                difficulty=_difficulty(v.get("difficulty")),
            )
            for v in _as_list(data.get("vocabulary"))
            if isinstance(v, dict) and v.get("word")
        ]
        grammar = [
            GrammarItem.from_dict(g)
            for g in _as_list(data.get("grammar"))
            if isinstance(g, dict) and g.get("rule")
        ]
        language = data.get("detectedLanguage")
        if not isinstance(language, str) or not language.strip():
            language = "Unknown"
        return AnalysisResult(
            detected_language=language.strip(),
            vocabulary=vocabulary,
            grammar=grammar,
        )


class VocabularyInput(BaseModel):  # type: ignore[misc]
    word: str = Field(max_length=100)
    definition: str = Field(max_length=500)
    difficulty: str | None = None


class GrammarInput(BaseModel):  # type: ignore[misc]
    rule: str = Field(max_length=200)
    example: str = Field(default="", max_length=500)
    explanation: str = Field(default="", max_length=1000)


class SentenceRequest(BaseModel):  # type: ignore[misc]
    """Validated input for practice sentence generation."""

    vocabulary: list[VocabularyInput] = Field(min_length=1, max_length=100)
    grammar: list[GrammarInput] = Field(min_length=1, max_length=50)
    language: str = Field(max_length=50)
    count: int = Field(default=10, ge=1, le=20)


@dataclass
class SentenceResult:
    """Generated sentences, or an empty list with the error."""

    sentences: list[PracticeSentence] = field(default_factory=list)
    error: str | None = None


class SentenceGenerator:
    """Generate practice sentences through an OpenAI-compatible gateway."""

    def __init__(self, api_key: str | None, config: AIConfig | None = None, client: OpenAI | None = None) -> None:
        self.config = config or AIConfig()
        self.client = client
        if self.client is None and api_key:
            self.client = OpenAI(api_key=api_key, base_url=self.config.gateway_url)

    def build_request(
        self,
        vocabulary: list[VocabularyItem],
        grammar: list[GrammarItem],
        language: str,
        count: int = 10,
    ) -> SentenceRequest:
        """Validate generation input.

        Raises:
            pydantic.ValidationError: On empty/oversized lists, long fields or
                a count outside 1..20
        """
        result: SentenceRequest = SentenceRequest.model_validate(
            {
                "vocabulary": [v.to_dict() for v in vocabulary],
                "grammar": [g.to_dict() for g in grammar],
                "language": language,
                "count": count,
            }
        )
        return result

    def generate(
        self,
        vocabulary: list[VocabularyItem],
        grammar: list[GrammarItem],
        language: str,
        count: int = 10,
    ) -> SentenceResult:
        """Generate practice sentences. Never raises."""
        try:
            request = self.build_request(vocabulary, grammar, language, count)
        except ValidationError as e:
            logger.warning("Invalid sentence generation input: {}", e.errors()[0].get("msg", e))
            return SentenceResult(error=f"Invalid input: {e.error_count()} validation error(s)")

        if self.client is None:
            logger.warning("AI_GATEWAY_API_KEY not configured, skipping sentence generation")
            return SentenceResult(error="AI_GATEWAY_API_KEY is not configured")

        user_prompt = SENTENCE_USER_PROMPT.format(
            count=request.count,
            language=request.language,
            words=", ".join(v.word for v in request.vocabulary),
            rules="; ".join(g.rule for g in request.grammar),
        )
        logger.info("Generating {} practice sentences in {}", request.count, request.language)

        try:
            response = self.client.chat.completions.create(
                model=self.config.sentence_model,
                messages=[
                    {"role": "system", "content": SENTENCE_SYSTEM_PROMPT},
                    {"role": "user", "content": user_prompt},
                ],
                tools=[GENERATE_SENTENCES_TOOL],
                tool_choice={"type": "function", "function": {"name": "generate_sentences"}},
            )
            data = parse_llm_json(self._response_payload(response))
        except OpenAIError as e:
            error = _describe_api_error(e)
            logger.warning("Sentence generation failed: {}", error)
            return SentenceResult(error=error)
        except LLMResponseError as e:
            logger.warning("Sentence generation returned unusable output: {}", e)
            return SentenceResult(error=str(e))

        raw = data.get("sentences") if isinstance(data, dict) else data
        sentences = [
            PracticeSentence(
                text=str(s.get("text", "")),
                translation=str(s.get("translation", "")),
                difficulty=_difficulty(s.get("difficulty")),
                used_vocabulary=[str(v) for v in _as_list(s.get("usedVocabulary"))],
                used_grammar=[str(g) for g in _as_list(s.get("usedGrammar"))],
            )
            for s in _as_list(raw)
            if isinstance(s, dict) and s.get("text")
        ]
        logger.info("Generated {} practice sentences", len(sentences))
        return SentenceResult(sentences=sentences)

    @staticmethod
    def _response_payload(response: Any) -> str | None:
        """Tool call arguments, falling back to plain message content."""
        message = _first_message(response)
        for tool_call in message.tool_calls or []:
            if tool_call.function.name == "generate_sentences":
                return str(tool_call.function.arguments)
        return message.content
