from __future__ import annotations

import base64
import io
import json
import os
import time
import wave
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import quote

import requests

from .logging_utils import debug_log
from .models import (
    ChatMessage,
    CorpusAnalysis,
    Language,
    WordDefinition,
    deserialize_corpus_analysis,
    deserialize_word_definition,
)

__all__ = [
    "ClientConfig",
    "GeminiClient",
    "GeminiError",
    "GeminiUnavailableError",
    "GeminiConfigError",
    "pcm_to_wav",
    "fallback_image_url",
    "SPEECH_SAMPLE_RATE",
]

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TEXT_MODEL = "gemini-3-flash-preview"
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image"
DEFAULT_SPEECH_MODEL = "gemini-2.5-flash-preview-tts"
DEFAULT_VOICE = "Kore"
SPEECH_SAMPLE_RATE = 24000
_ERROR_BODY_LIMIT = 500


class GeminiError(RuntimeError):
    """Raised when the generative-AI service returns an unusable response."""


class GeminiUnavailableError(ConnectionError):
    """Raised when the generative-AI service cannot be reached."""


class GeminiConfigError(RuntimeError):
    """Raised when no API key is configured."""


@dataclass(frozen=True)
class ClientConfig:
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    text_model: str = DEFAULT_TEXT_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    speech_model: str = DEFAULT_SPEECH_MODEL
    voice: str = DEFAULT_VOICE
    timeout: float = 60.0
    max_retries: int = 3
    base_retry_delay: float = 0.8
    max_retry_delay: float = 6.0

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> "ClientConfig":
        source = os.environ if env is None else env
        api_key = (source.get("GEMINI_API_KEY") or source.get("API_KEY") or "").strip()
        if not api_key:
            raise GeminiConfigError("Set GEMINI_API_KEY (or API_KEY) to use the AI features.")
        return cls(
            api_key=api_key,
            base_url=(source.get("VIBEDICT_GEMINI_URL") or DEFAULT_BASE_URL).rstrip("/"),
            text_model=source.get("VIBEDICT_TEXT_MODEL") or DEFAULT_TEXT_MODEL,
        )


def _is_transient_status(status: int) -> bool:
    return status in (408, 429) or 500 <= status <= 599


def _truncate(text: str) -> str:
    text = text.strip()
    if len(text) > _ERROR_BODY_LIMIT:
        return text[:_ERROR_BODY_LIMIT] + "…"
    return text


def _text_part(text: str) -> dict[str, object]:
    return {"text": text}


def _user_content(text: str) -> dict[str, object]:
    return {"role": "user", "parts": [_text_part(text)]}


def _is_chinese(language_name: str, code: str = "") -> bool:
    return code == "zh" or "chinese" in language_name.lower()


def _response_parts(payload: object) -> list[dict]:
    if not isinstance(payload, dict):
        return []
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return []
    first = candidates[0]
    content = first.get("content") if isinstance(first, dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return []
    return [part for part in parts if isinstance(part, dict)]


def _response_text(payload: object) -> str:
    return "".join(
        part["text"] for part in _response_parts(payload) if isinstance(part.get("text"), str)
    )


def _response_inline_data(payload: object) -> str | None:
    for part in _response_parts(payload):
        inline = part.get("inlineData")
        if isinstance(inline, dict) and isinstance(inline.get("data"), str):
            return inline["data"]
    return None


def fallback_image_url(word: str) -> str:
    return f"https://picsum.photos/seed/{quote(word, safe='')}/400/400"


def pcm_to_wav(pcm: bytes, sample_rate: int = SPEECH_SAMPLE_RATE, channels: int = 1) -> bytes:
    """Wrap raw 16-bit little-endian PCM in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as handle:
        handle.setnchannels(channels)
        handle.setsampwidth(2)
        handle.setframerate(sample_rate)
        handle.writeframes(pcm)
    return buffer.getvalue()


_WORD_SCHEMA: dict[str, object] = {
    "type": "OBJECT",
    "properties": {
        "word": {"type": "STRING"},
        "pronunciation": {"type": "STRING"},
        "explanation": {"type": "STRING"},
        "examples": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "target": {"type": "STRING"},
                    "native": {"type": "STRING"},
                },
                "required": ["target", "native"],
            },
        },
        "usageNotes": {"type": "STRING"},
    },
    "required": ["word", "pronunciation", "explanation", "examples", "usageNotes"],
}

_STRING_LIST = {"type": "ARRAY", "items": {"type": "STRING"}}

_CORPUS_SCHEMA: dict[str, object] = {
    "type": "OBJECT",
    "properties": {
        "detectedLang": {"type": "STRING"},
        "summary": {"type": "STRING"},
        "sentences": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "original": {"type": "STRING"},
                    "translated": {"type": "STRING"},
                },
                "required": ["original", "translated"],
            },
        },
        "vocabulary": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "term": {"type": "STRING"},
                    "pronunciation": {"type": "STRING"},
                    "explanation": {"type": "STRING"},
                    "examples": _STRING_LIST,
                },
                "required": ["term", "pronunciation", "explanation", "examples"],
            },
        },
        "grammar": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "point": {"type": "STRING"},
                    "explanation": {"type": "STRING"},
                    "examples": _STRING_LIST,
                },
                "required": ["point", "explanation", "examples"],
            },
        },
    },
    "required": ["detectedLang", "summary", "sentences", "vocabulary", "grammar"],
}


def _word_instruction(native: Language, target: Language) -> str:
    chinese = " MUST use Chinese." if _is_chinese(native.name, native.code) else ""
    return (
        "You are a professional dictionary. Return ONLY JSON.\n"
        '- "word": The word itself.\n'
        '- "pronunciation": Provide pronunciation. If English: use IPA (e.g., /əˈmeɪzɪŋ/). '
        "If Japanese: use Romaji + Pitch Accent description (e.g., sensei [seɴseː] LHH). "
        "Others: standard phonetic symbols.\n"
        f'- "explanation": Short definition in {native.name}.{chinese}\n'
        f'- "examples": 2 sentences in {target.name} + translations in {native.name}.\n'
        f'- "usageNotes": Vibe/context in {native.name}.{chinese}'
    )


def _corpus_instruction(native_name: str) -> str:
    chinese = " Use professional Chinese for everything." if _is_chinese(native_name) else ""
    return (
        "Analyze text and return JSON.\n"
        "1. Detect source language.\n"
        "2. If Japanese, use 漢字[かんじ] for Kanji in 'original' strings.\n"
        f"3. Translate sentences into {native_name}.\n"
        f"4. Summary and explanations MUST be in {native_name}.{chinese}\n"
        "5. Extract vocabulary/grammar.\n"
        '6. For vocabulary "pronunciation": English: IPA symbols. '
        "Japanese: Romaji + Pitch Accent. Others: Relevant phonetics."
    )


class GeminiClient:
    """
    Thin wrapper around the Gemini ``generateContent`` REST endpoint.
    """

    def __init__(self, config: ClientConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self._session = session or requests.Session()

    def _endpoint(self, model: str) -> str:
        return f"{self.config.base_url}/models/{model}:generateContent"

    def generate(self, model: str, body: dict[str, object]) -> dict:
        url = self._endpoint(model)
        headers = {"x-goog-api-key": self.config.api_key}
        attempts = max(0, self.config.max_retries) + 1
        for attempt in range(attempts):
            try:
                resp = self._session.post(url, json=body, headers=headers, timeout=self.config.timeout)
            except requests.RequestException as exc:
                if attempt + 1 < attempts:
                    debug_log(f"{model} request failed ({exc}); retrying")
                    self._backoff(attempt)
                    continue
                raise GeminiUnavailableError(f"Failed to contact {self.config.base_url}") from exc
            if _is_transient_status(resp.status_code) and attempt + 1 < attempts:
                debug_log(f"{model} returned {resp.status_code}; retrying")
                self._backoff(attempt)
                continue
            if resp.status_code != 200:
                raise GeminiError(
                    f"{model} failed with status {resp.status_code}: {_truncate(resp.text)}"
                )
            try:
                payload = resp.json()
            except ValueError as exc:
                raise GeminiError(f"{model} returned invalid JSON") from exc
            if not isinstance(payload, dict):
                raise GeminiError(f"{model} returned an unexpected payload")
            return payload
        raise GeminiUnavailableError(f"Failed to contact {self.config.base_url}")

    def _backoff(self, attempt: int) -> None:
        delay = min(self.config.max_retry_delay, self.config.base_retry_delay * (2**attempt))
        time.sleep(max(0.0, delay))

    def _generate_json(self, prompt: str, instruction: str, schema: dict[str, object]) -> object:
        payload = self.generate(
            self.config.text_model,
            {
                "contents": [_user_content(prompt)],
                "systemInstruction": {"parts": [_text_part(instruction)]},
                "generationConfig": {
                    "responseMimeType": "application/json",
                    "responseSchema": schema,
                },
            },
        )
        text = _response_text(payload)
        if not text:
            raise GeminiError("No response from AI")
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise GeminiError("Failed to parse structured response.") from exc

    def get_word_definition(self, query: str, native: Language, target: Language) -> WordDefinition:
        data = self._generate_json(
            f'Explain "{query}" (Target: {target.name}, Explanation Language: {native.name}).',
            _word_instruction(native, target),
            _WORD_SCHEMA,
        )
        definition = deserialize_word_definition(data)
        if definition is None:
            raise GeminiError("Failed to parse dictionary data.")
        return definition

    def analyze_corpus(self, text: str, native_language_name: str) -> CorpusAnalysis:
        data = self._generate_json(
            f'Analyze for a {native_language_name} speaker: "{text}"',
            _corpus_instruction(native_language_name),
            _CORPUS_SCHEMA,
        )
        analysis = deserialize_corpus_analysis(data)
        if analysis is None:
            raise GeminiError("Failed to analyze corpus.")
        return analysis

    def generate_concept_image(self, word: str, language_name: str) -> str:
        """Return a data URL for a concept image, or a placeholder URL on failure."""
        prompt = (
            f'High-quality minimalist 3D conceptual icon for "{word}" ({language_name}). '
            "White background, studio lighting."
        )
        try:
            payload = self.generate(
                self.config.image_model,
                {
                    "contents": [_user_content(prompt)],
                    "generationConfig": {"imageConfig": {"aspectRatio": "1:1"}},
                },
            )
        except (GeminiError, GeminiUnavailableError) as exc:
            debug_log(f"concept image failed for {word!r}: {exc}")
            return fallback_image_url(word)
        data = _response_inline_data(payload)
        if data:
            return f"data:image/png;base64,{data}"
        return fallback_image_url(word)

    def synthesize_speech(self, text: str) -> bytes:
        """Return raw 24 kHz mono 16-bit PCM for ``text``."""
        if not text:
            return b""
        payload = self.generate(
            self.config.speech_model,
            {
                "contents": [_user_content(text)],
                "generationConfig": {
                    "responseModalities": ["AUDIO"],
                    "speechConfig": {
                        "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": self.config.voice}}
                    },
                },
            },
        )
        data = _response_inline_data(payload)
        if not data:
            raise GeminiError("Speech response did not contain audio.")
        try:
            return base64.b64decode(data)
        except ValueError as exc:
            raise GeminiError("Speech response contained invalid base64 audio.") from exc

    def generate_story(self, words: Iterable[str], native_language_name: str) -> str:
        prompt = f"Story in {native_language_name} using: {', '.join(words)}."
        payload = self.generate(self.config.text_model, {"contents": [_user_content(prompt)]})
        text = _response_text(payload)
        if not text:
            raise GeminiError("No response from AI")
        return text

    def chat_about_word(
        self,
        word: str,
        history: Iterable[ChatMessage],
        message: str,
    ) -> str:
        contents = [
            {"role": entry.role, "parts": [_text_part(entry.text)]}
            for entry in history
            if entry.role in ("user", "model") and entry.text
        ]
        contents.append(_user_content(message))
        payload = self.generate(
            self.config.text_model,
            {
                "contents": contents,
                "systemInstruction": {"parts": [_text_part(f'Coach for "{word}".')]},
            },
        )
        text = _response_text(payload)
        if not text:
            raise GeminiError("No response from AI")
        return text
