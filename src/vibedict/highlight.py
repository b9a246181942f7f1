from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Union

from .annotations import AnnotatedTerm, TextAnnotationIndex
from .logging_utils import debug_log

__all__ = [
    "PlainSpan",
    "HighlightedSpan",
    "Span",
    "build_highlight_pattern",
    "match_highlights",
    "spans_text",
]


@dataclass(frozen=True)
class PlainSpan:
    text: str


@dataclass(frozen=True)
class HighlightedSpan:
    text: str
    term: AnnotatedTerm


Span = Union[PlainSpan, HighlightedSpan]


def build_highlight_pattern(literals: Iterable[str]) -> re.Pattern[str] | None:
    """Compile one alternation; callers pass literals in priority order."""
    keys = [literal for literal in literals if literal]
    if not keys:
        return None
    return re.compile("|".join(re.escape(key) for key in keys))


@lru_cache(maxsize=256)
def _pattern_for_literals(literals: tuple[str, ...]) -> re.Pattern[str] | None:
    return build_highlight_pattern(literals)


def _append_plain(spans: list[Span], text: str) -> None:
    if not text:
        return
    if spans and isinstance(spans[-1], PlainSpan):
        spans[-1] = PlainSpan(spans[-1].text + text)
    else:
        spans.append(PlainSpan(text))


def _plain_only(text: str) -> tuple[Span, ...]:
    return (PlainSpan(text),) if text else ()


@lru_cache(maxsize=1024)
def match_highlights(text: str, index: TextAnnotationIndex) -> tuple[Span, ...]:
    """
    Partition ``text`` into plain and highlighted spans.

    The regex engine takes the leftmost match and, at a given start, the first
    alternative that matches. Alternatives are ordered longest first, so the
    longest term wins without any re-scanning of the consumed characters.
    """
    if not text or not index:
        return _plain_only(text)
    try:
        pattern = _pattern_for_literals(tuple(index.literals()))
    except re.error as exc:
        debug_log(f"highlight pattern failed to compile: {exc}")
        return _plain_only(text)
    if pattern is None:
        return _plain_only(text)

    by_literal: dict[str, AnnotatedTerm] = {}
    for term in index:
        by_literal.setdefault(term.term, term)

    spans: list[Span] = []
    cursor = 0
    for match in pattern.finditer(text):
        start, end = match.span()
        if start == end:
            continue
        term = by_literal.get(match.group(0))
        if term is None:
            continue
        _append_plain(spans, text[cursor:start])
        spans.append(HighlightedSpan(text=match.group(0), term=term))
        cursor = end
    _append_plain(spans, text[cursor:])
    return tuple(spans)


def spans_text(spans: Iterable[Span]) -> str:
    return "".join(span.text for span in spans)
