from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator

from .logging_utils import debug_log

__all__ = [
    "TermKind",
    "AnnotatedTerm",
    "TextAnnotationIndex",
    "build_index",
    "logical_length",
]

_ZERO_WIDTH_JOINER = "\u200d"


class TermKind(str, Enum):
    VOCABULARY = "vocab"
    GRAMMAR = "grammar"


@dataclass(frozen=True)
class AnnotatedTerm:
    """
    A unit of highlightable knowledge extracted from a corpus analysis.

    ``term`` is the literal to look for in sentence text and may itself carry
    ruby markup such as ``漢字[かんじ]``. Grammar points never carry a
    pronunciation.
    """

    term: str
    kind: TermKind
    explanation: str = ""
    pronunciation: str | None = None
    examples: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.examples, tuple):
            object.__setattr__(self, "examples", tuple(self.examples))

    @property
    def is_blank(self) -> bool:
        return not self.term.strip()


def _is_variation_selector(ch: str) -> bool:
    code = ord(ch)
    return 0xFE00 <= code <= 0xFE0F or 0xE0100 <= code <= 0xE01EF


def logical_length(text: str) -> int:
    """Count user-perceived characters rather than code units."""
    count = 0
    joined = False
    for ch in text:
        if ch == _ZERO_WIDTH_JOINER:
            joined = True
            continue
        if unicodedata.combining(ch) or _is_variation_selector(ch):
            continue
        if joined:
            joined = False
            continue
        count += 1
    return count


@dataclass(frozen=True)
class TextAnnotationIndex:
    """Highlight terms in match priority order: longest literal first."""

    terms: tuple[AnnotatedTerm, ...] = ()

    def __iter__(self) -> Iterator[AnnotatedTerm]:
        return iter(self.terms)

    def __len__(self) -> int:
        return len(self.terms)

    def __bool__(self) -> bool:
        return bool(self.terms)

    def literals(self) -> list[str]:
        return [term.term for term in self.terms]

    def term_for(self, literal: str) -> AnnotatedTerm | None:
        for term in self.terms:
            if term.term == literal:
                return term
        return None


def build_index(terms: Iterable[AnnotatedTerm]) -> TextAnnotationIndex:
    """
    Order ``terms`` for matching.

    Callers pass vocabulary first, then grammar, each in the order the
    analysis returned them. Blank literals are dropped. When several terms
    share a literal only the first one is kept, since it is the one every
    match would resolve to anyway.
    """
    candidates: list[AnnotatedTerm] = []
    seen: set[str] = set()
    for term in terms:
        if term.is_blank:
            debug_log(f"dropping blank {term.kind.value} term")
            continue
        if term.term in seen:
            debug_log(f"dropping duplicate {term.kind.value} term {term.term!r}")
            continue
        seen.add(term.term)
        candidates.append(term)
    # Raw length breaks logical ties so a prefix never shadows a longer
    # grapheme sequence; sorted() is stable for the remaining ties.
    ordered = sorted(
        candidates,
        key=lambda term: (logical_length(term.term), len(term.term)),
        reverse=True,
    )
    return TextAnnotationIndex(terms=tuple(ordered))
