from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from rich.text import Text

from .annotations import AnnotatedTerm, TermKind, TextAnnotationIndex, build_index
from .highlight import HighlightedSpan, match_highlights
from .models import CorpusAnalysis
from .popup import payload_for_term
from .ruby import AnnotatedToken, RubyToken, segment_ruby

__all__ = [
    "RenderedSpan",
    "RenderedSentence",
    "render_sentence",
    "render_analysis",
    "rendered_span_payload",
    "ruby_payload",
    "term_payload",
    "rich_text_for_spans",
    "rich_text_for_ruby",
]

TERM_STYLES = {
    TermKind.VOCABULARY: "bold magenta underline",
    TermKind.GRAMMAR: "bold yellow underline",
}
READING_STYLE = "dim"


@dataclass(frozen=True)
class RenderedSpan:
    """Span text, its ruby tokens and, for highlights, the source term."""

    text: str
    ruby: tuple[RubyToken, ...]
    term: AnnotatedTerm | None = None


@dataclass(frozen=True)
class RenderedSentence:
    spans: tuple[RenderedSpan, ...]
    translated: str


def render_sentence(text: str, index: TextAnnotationIndex) -> tuple[RenderedSpan, ...]:
    # Ruby markup is resolved after matching so match boundaries stay on the raw text.
    rendered: list[RenderedSpan] = []
    for span in match_highlights(text, index):
        term = span.term if isinstance(span, HighlightedSpan) else None
        rendered.append(RenderedSpan(text=span.text, ruby=segment_ruby(span.text), term=term))
    return tuple(rendered)


def render_analysis(
    analysis: CorpusAnalysis,
    index: TextAnnotationIndex | None = None,
) -> list[RenderedSentence]:
    if index is None:
        index = build_index(analysis.terms())
    return [
        RenderedSentence(
            spans=render_sentence(sentence.original, index),
            translated=sentence.translated,
        )
        for sentence in analysis.sentences
    ]


def ruby_payload(tokens: Iterable[RubyToken]) -> list[dict[str, object]]:
    payload: list[dict[str, object]] = []
    for token in tokens:
        if isinstance(token, AnnotatedToken):
            payload.append({"base": token.base, "reading": token.reading})
        else:
            payload.append({"text": token.text})
    return payload


def term_payload(term: AnnotatedTerm) -> dict[str, object]:
    knowledge = payload_for_term(term)
    return {
        "title": knowledge.title,
        "title_ruby": ruby_payload(segment_ruby(knowledge.title)),
        "kind": knowledge.kind.value,
        "pronunciation": knowledge.pronunciation,
        "description": knowledge.description,
        "examples": list(knowledge.examples),
    }


def rendered_span_payload(span: RenderedSpan) -> dict[str, object]:
    payload: dict[str, object] = {
        "text": span.text,
        "ruby": ruby_payload(span.ruby),
    }
    if span.term is not None:
        payload["term"] = term_payload(span.term)
    return payload


def rich_text_for_ruby(tokens: Iterable[RubyToken], style: str = "") -> Text:
    text = Text()
    for token in tokens:
        if isinstance(token, AnnotatedToken):
            text.append(token.base, style=style)
            text.append(f"({token.reading})", style=f"{style} {READING_STYLE}".strip())
        else:
            text.append(token.text, style=style)
    return text


def rich_text_for_spans(spans: Iterable[RenderedSpan]) -> Text:
    text = Text()
    for span in spans:
        style = TERM_STYLES[span.term.kind] if span.term is not None else ""
        text.append_text(rich_text_for_ruby(span.ruby, style=style))
    return text
