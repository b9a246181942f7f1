from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from .annotations import AnnotatedTerm, TermKind

__all__ = [
    "Language",
    "UsageExample",
    "WordDefinition",
    "SavedWord",
    "SentencePair",
    "CorpusAnalysis",
    "CorpusItem",
    "AppState",
    "ChatMessage",
    "serialize_language",
    "deserialize_language",
    "serialize_word_definition",
    "deserialize_word_definition",
    "serialize_saved_word",
    "deserialize_saved_words",
    "serialize_corpus_analysis",
    "deserialize_corpus_analysis",
    "serialize_corpus_item",
    "deserialize_corpus_items",
    "serialize_app_state",
    "deserialize_app_state",
]


@dataclass(frozen=True)
class Language:
    code: str
    name: str
    flag: str = ""


@dataclass
class UsageExample:
    target: str
    native: str


@dataclass
class WordDefinition:
    word: str
    explanation: str
    pronunciation: str | None = None
    examples: list[UsageExample] = field(default_factory=list)
    usage_notes: str = ""
    image_url: str | None = None


@dataclass
class SavedWord(WordDefinition):
    id: str = ""
    added_at: int = 0


@dataclass(frozen=True)
class SentencePair:
    original: str
    translated: str


@dataclass
class CorpusAnalysis:
    """Structured result of the corpus analysis call."""

    detected_language: str
    summary: str
    sentences: list[SentencePair] = field(default_factory=list)
    vocabulary: list[AnnotatedTerm] = field(default_factory=list)
    grammar: list[AnnotatedTerm] = field(default_factory=list)

    def terms(self) -> list[AnnotatedTerm]:
        return [*self.vocabulary, *self.grammar]


@dataclass
class CorpusItem:
    id: str
    title: str
    content: str
    analysis: CorpusAnalysis
    added_at: int = 0


@dataclass
class AppState:
    native_language: Language
    target_language: Language
    notebook: list[SavedWord] = field(default_factory=list)
    corpus: list[CorpusItem] = field(default_factory=list)


@dataclass(frozen=True)
class ChatMessage:
    role: str
    text: str


def _str_or(value: object, default: str = "") -> str:
    return value if isinstance(value, str) else default


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def _int_or(value: object, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    return default


def _string_list(value: object) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(entry for entry in value if isinstance(entry, str))


def serialize_language(language: Language) -> dict[str, object]:
    return {"code": language.code, "name": language.name, "flag": language.flag}


def deserialize_language(data: object) -> Language | None:
    if not isinstance(data, Mapping):
        return None
    code = data.get("code")
    name = data.get("name")
    if not isinstance(code, str) or not isinstance(name, str):
        return None
    return Language(code=code, name=name, flag=_str_or(data.get("flag")))


def _serialize_examples(examples: Iterable[UsageExample]) -> list[dict[str, object]]:
    return [{"target": example.target, "native": example.native} for example in examples]


def _deserialize_examples(data: object) -> list[UsageExample]:
    if not isinstance(data, list):
        return []
    examples: list[UsageExample] = []
    for entry in data:
        if not isinstance(entry, Mapping):
            continue
        target = entry.get("target")
        if not isinstance(target, str):
            continue
        examples.append(UsageExample(target=target, native=_str_or(entry.get("native"))))
    return examples


def serialize_word_definition(definition: WordDefinition) -> dict[str, object]:
    payload: dict[str, object] = {
        "word": definition.word,
        "pronunciation": definition.pronunciation or "",
        "explanation": definition.explanation,
        "examples": _serialize_examples(definition.examples),
        "usageNotes": definition.usage_notes,
    }
    if definition.image_url:
        payload["imageUrl"] = definition.image_url
    return payload


def deserialize_word_definition(data: object) -> WordDefinition | None:
    if not isinstance(data, Mapping):
        return None
    word = data.get("word")
    if not isinstance(word, str) or not word.strip():
        return None
    return WordDefinition(
        word=word,
        explanation=_str_or(data.get("explanation")),
        pronunciation=_optional_str(data.get("pronunciation")),
        examples=_deserialize_examples(data.get("examples")),
        usage_notes=_str_or(data.get("usageNotes")),
        image_url=_optional_str(data.get("imageUrl")),
    )


def serialize_saved_word(word: SavedWord) -> dict[str, object]:
    payload = serialize_word_definition(word)
    payload["imageUrl"] = word.image_url or ""
    payload["id"] = word.id
    payload["addedAt"] = word.added_at
    return payload


def deserialize_saved_words(data: object) -> list[SavedWord]:
    if not isinstance(data, list):
        return []
    words: list[SavedWord] = []
    for entry in data:
        definition = deserialize_word_definition(entry)
        if definition is None:
            continue
        word_id = entry.get("id")
        if not isinstance(word_id, str) or not word_id:
            continue
        words.append(
            SavedWord(
                word=definition.word,
                explanation=definition.explanation,
                pronunciation=definition.pronunciation,
                examples=definition.examples,
                usage_notes=definition.usage_notes,
                image_url=definition.image_url,
                id=word_id,
                added_at=_int_or(entry.get("addedAt")),
            )
        )
    return words


def _serialize_term(term: AnnotatedTerm) -> dict[str, object]:
    if term.kind is TermKind.GRAMMAR:
        return {
            "point": term.term,
            "explanation": term.explanation,
            "examples": list(term.examples),
        }
    return {
        "term": term.term,
        "pronunciation": term.pronunciation or "",
        "explanation": term.explanation,
        "examples": list(term.examples),
    }


def _deserialize_terms(data: object, kind: TermKind) -> list[AnnotatedTerm]:
    if not isinstance(data, list):
        return []
    key = "point" if kind is TermKind.GRAMMAR else "term"
    terms: list[AnnotatedTerm] = []
    for entry in data:
        if not isinstance(entry, Mapping):
            continue
        literal = entry.get(key)
        if not isinstance(literal, str):
            literal = entry.get("term")
        if not isinstance(literal, str):
            continue
        pronunciation = None
        if kind is TermKind.VOCABULARY:
            pronunciation = _optional_str(entry.get("pronunciation"))
        terms.append(
            AnnotatedTerm(
                term=literal,
                kind=kind,
                explanation=_str_or(entry.get("explanation")),
                pronunciation=pronunciation,
                examples=_string_list(entry.get("examples")),
            )
        )
    return terms


def serialize_corpus_analysis(analysis: CorpusAnalysis) -> dict[str, object]:
    return {
        "detectedLang": analysis.detected_language,
        "summary": analysis.summary,
        "sentences": [
            {"original": sentence.original, "translated": sentence.translated}
            for sentence in analysis.sentences
        ],
        "vocabulary": [_serialize_term(term) for term in analysis.vocabulary],
        "grammar": [_serialize_term(term) for term in analysis.grammar],
    }


def deserialize_corpus_analysis(data: object) -> CorpusAnalysis | None:
    if not isinstance(data, Mapping):
        return None
    sentences: list[SentencePair] = []
    raw_sentences = data.get("sentences")
    if isinstance(raw_sentences, list):
        for entry in raw_sentences:
            if not isinstance(entry, Mapping):
                continue
            original = entry.get("original")
            if not isinstance(original, str):
                continue
            sentences.append(
                SentencePair(original=original, translated=_str_or(entry.get("translated")))
            )
    return CorpusAnalysis(
        detected_language=_str_or(data.get("detectedLang")),
        summary=_str_or(data.get("summary")),
        sentences=sentences,
        vocabulary=_deserialize_terms(data.get("vocabulary"), TermKind.VOCABULARY),
        grammar=_deserialize_terms(data.get("grammar"), TermKind.GRAMMAR),
    )


def serialize_corpus_item(item: CorpusItem) -> dict[str, object]:
    return {
        "id": item.id,
        "title": item.title,
        "content": item.content,
        "analysis": serialize_corpus_analysis(item.analysis),
        "addedAt": item.added_at,
    }


def deserialize_corpus_items(data: object) -> list[CorpusItem]:
    if not isinstance(data, list):
        return []
    items: list[CorpusItem] = []
    for entry in data:
        if not isinstance(entry, Mapping):
            continue
        item_id = entry.get("id")
        if not isinstance(item_id, str) or not item_id:
            continue
        analysis = deserialize_corpus_analysis(entry.get("analysis"))
        if analysis is None:
            continue
        content = _str_or(entry.get("content"))
        items.append(
            CorpusItem(
                id=item_id,
                title=_str_or(entry.get("title"), content[:30]),
                content=content,
                analysis=analysis,
                added_at=_int_or(entry.get("addedAt")),
            )
        )
    return items


def serialize_app_state(state: AppState) -> dict[str, object]:
    return {
        "nativeLang": serialize_language(state.native_language),
        "targetLang": serialize_language(state.target_language),
        "notebook": [serialize_saved_word(word) for word in state.notebook],
        "corpus": [serialize_corpus_item(item) for item in state.corpus],
    }


def deserialize_app_state(data: object, *, default: AppState) -> AppState:
    """Rebuild the stored document, falling back to ``default`` field by field."""
    if not isinstance(data, Mapping):
        return default
    return AppState(
        native_language=deserialize_language(data.get("nativeLang")) or default.native_language,
        target_language=deserialize_language(data.get("targetLang")) or default.target_language,
        notebook=deserialize_saved_words(data.get("notebook")),
        corpus=deserialize_corpus_items(data.get("corpus")),
    )
