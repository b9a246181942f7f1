from .annotations import AnnotatedTerm, TermKind, TextAnnotationIndex, build_index
from .highlight import HighlightedSpan, PlainSpan, Span, match_highlights
from .popup import CLOSED, Closed, KnowledgePayload, Open, dismiss, payload_for_term, select_term
from .render import RenderedSentence, RenderedSpan, render_analysis, render_sentence
from .ruby import AnnotatedToken, BareToken, RubyToken, segment_ruby, serialize_ruby

__all__ = [
    "AnnotatedTerm",
    "TermKind",
    "TextAnnotationIndex",
    "build_index",
    "PlainSpan",
    "HighlightedSpan",
    "Span",
    "match_highlights",
    "BareToken",
    "AnnotatedToken",
    "RubyToken",
    "segment_ruby",
    "serialize_ruby",
    "KnowledgePayload",
    "Closed",
    "Open",
    "CLOSED",
    "payload_for_term",
    "select_term",
    "dismiss",
    "RenderedSpan",
    "RenderedSentence",
    "render_sentence",
    "render_analysis",
]
