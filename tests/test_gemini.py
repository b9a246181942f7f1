from __future__ import annotations

import base64
import io
import json
import wave

import pytest
import requests

import vibedict.gemini as gemini
from vibedict.gemini import (
    ClientConfig,
    GeminiClient,
    GeminiConfigError,
    GeminiError,
    GeminiUnavailableError,
    fallback_image_url,
    pcm_to_wav,
)
from vibedict.languages import DEFAULT_NATIVE, DEFAULT_TARGET
from vibedict.models import ChatMessage


class _Response:
    def __init__(self, status_code: int = 200, payload: object = None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text or json.dumps(payload or {})

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _FakeSession:
    def __init__(self, responses) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, object]] = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _text_response(text: str) -> _Response:
    return _Response(payload={"candidates": [{"content": {"parts": [{"text": text}]}}]})


def _inline_response(data: str) -> _Response:
    return _Response(
        payload={
            "candidates": [
                {"content": {"parts": [{"inlineData": {"mimeType": "x", "data": data}}]}}
            ]
        }
    )


def _client(responses, **overrides) -> tuple[GeminiClient, _FakeSession]:
    session = _FakeSession(responses)
    config = ClientConfig(api_key="secret", base_url="https://ai.example/v1beta", **overrides)
    return GeminiClient(config, session=session), session


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch):
    monkeypatch.setattr(gemini.time, "sleep", lambda _delay: None)


def test_config_from_env_requires_key() -> None:
    with pytest.raises(GeminiConfigError):
        ClientConfig.from_env({})
    config = ClientConfig.from_env({"API_KEY": "k", "VIBEDICT_GEMINI_URL": "http://x/v1/"})
    assert config.api_key == "k"
    assert config.base_url == "http://x/v1"
    assert ClientConfig.from_env({"GEMINI_API_KEY": "g", "API_KEY": "k"}).api_key == "g"


def test_word_definition_request_and_parse() -> None:
    body = {
        "word": "先生",
        "pronunciation": "sensei [seɴseː] LHH",
        "explanation": "teacher",
        "examples": [{"target": "先生です。", "native": "It's the teacher."}],
        "usageNotes": "polite",
    }
    client, session = _client([_text_response(json.dumps(body, ensure_ascii=False))])
    definition = client.get_word_definition("先生", DEFAULT_NATIVE, DEFAULT_TARGET)
    assert definition.word == "先生"
    assert definition.examples[0].native == "It's the teacher."
    call = session.calls[0]
    assert call["url"] == "https://ai.example/v1beta/models/gemini-3-flash-preview:generateContent"
    assert call["headers"] == {"x-goog-api-key": "secret"}
    config = call["json"]["generationConfig"]
    assert config["responseMimeType"] == "application/json"
    assert "usageNotes" in config["responseSchema"]["required"]
    assert "Japanese" in call["json"]["contents"][0]["parts"][0]["text"]


def test_chinese_native_language_is_enforced() -> None:
    body = {"word": "cat", "explanation": "猫", "examples": [], "usageNotes": "", "pronunciation": ""}
    client, session = _client([_text_response(json.dumps(body))])
    chinese = gemini.Language(code="zh", name="Chinese (Simplified)")
    client.get_word_definition("cat", chinese, DEFAULT_NATIVE)
    instruction = session.calls[0]["json"]["systemInstruction"]["parts"][0]["text"]
    assert "MUST use Chinese." in instruction


def test_unparseable_definition_raises() -> None:
    client, _ = _client([_text_response("not json")])
    with pytest.raises(GeminiError):
        client.get_word_definition("x", DEFAULT_NATIVE, DEFAULT_TARGET)


def test_empty_response_raises() -> None:
    client, _ = _client([_Response(payload={"candidates": []})])
    with pytest.raises(GeminiError, match="No response"):
        client.generate_story(["a", "b"], "English")


def test_analyze_corpus_builds_terms() -> None:
    body = {
        "detectedLang": "Japanese",
        "summary": "s",
        "sentences": [{"original": "猫[ねこ]がいる。", "translated": "There is a cat."}],
        "vocabulary": [{"term": "猫", "pronunciation": "neko", "explanation": "cat", "examples": []}],
        "grammar": [{"point": "がいる", "explanation": "existence", "examples": ["犬がいる。"]}],
    }
    client, session = _client([_text_response(json.dumps(body, ensure_ascii=False))])
    analysis = client.analyze_corpus("猫がいる。", "English")
    assert [term.term for term in analysis.terms()] == ["猫", "がいる"]
    prompt = session.calls[0]["json"]["contents"][0]["parts"][0]["text"]
    assert prompt == 'Analyze for a English speaker: "猫がいる。"'


def test_transient_status_is_retried() -> None:
    client, session = _client(
        [_Response(status_code=503, text="busy"), _text_response("once upon a time")],
    )
    assert client.generate_story(["a", "b"], "English") == "once upon a time"
    assert len(session.calls) == 2


def test_network_failure_after_retries() -> None:
    errors = [requests.ConnectionError("down") for _ in range(2)]
    client, session = _client(errors, max_retries=1)
    with pytest.raises(GeminiUnavailableError):
        client.generate_story(["a", "b"], "English")
    assert len(session.calls) == 2


def test_client_error_is_not_retried() -> None:
    client, session = _client([_Response(status_code=400, text="bad request")])
    with pytest.raises(GeminiError, match="400"):
        client.generate_story(["a"], "English")
    assert len(session.calls) == 1


def test_concept_image_returns_data_url() -> None:
    client, session = _client([_inline_response("iVBORw0KGgo=")])
    assert client.generate_concept_image("猫", "Japanese") == "data:image/png;base64,iVBORw0KGgo="
    assert "gemini-2.5-flash-image" in session.calls[0]["url"]


def test_concept_image_falls_back_on_failure() -> None:
    client, _ = _client([_Response(status_code=400, text="nope")])
    assert client.generate_concept_image("a cat", "English") == fallback_image_url("a cat")
    assert fallback_image_url("a cat") == "https://picsum.photos/seed/a%20cat/400/400"


def test_speech_decodes_pcm_and_wraps_wav() -> None:
    pcm = b"\x00\x01" * 240
    client, session = _client([_inline_response(base64.b64encode(pcm).decode("ascii"))])
    assert client.synthesize_speech("こんにちは") == pcm
    speech = session.calls[0]["json"]["generationConfig"]["speechConfig"]
    assert speech["voiceConfig"]["prebuiltVoiceConfig"]["voiceName"] == "Kore"
    with wave.open(io.BytesIO(pcm_to_wav(pcm)), "rb") as handle:
        assert handle.getframerate() == 24000
        assert handle.getnchannels() == 1
        assert handle.getnframes() == 240


def test_speech_for_empty_text_skips_request() -> None:
    client, session = _client([])
    assert client.synthesize_speech("") == b""
    assert session.calls == []


def test_chat_sends_history() -> None:
    client, session = _client([_text_response("Try using it with です.")])
    history = [ChatMessage("user", "hi"), ChatMessage("model", "hello"), ChatMessage("system", "x")]
    reply = client.chat_about_word("先生", history, "How do I use it?")
    assert reply == "Try using it with です."
    contents = session.calls[0]["json"]["contents"]
    assert [entry["role"] for entry in contents] == ["user", "model", "user"]
    instruction = session.calls[0]["json"]["systemInstruction"]["parts"][0]["text"]
    assert instruction == 'Coach for "先生".'
