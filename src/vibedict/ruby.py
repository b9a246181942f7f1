from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Union

__all__ = [
    "BareToken",
    "AnnotatedToken",
    "RubyToken",
    "segment_ruby",
    "serialize_ruby",
    "strip_ruby",
]

_BRACKET_SPLIT_RE = re.compile(r"(\[.*?\])")


@dataclass(frozen=True)
class BareToken:
    text: str


@dataclass(frozen=True)
class AnnotatedToken:
    base: str
    reading: str


RubyToken = Union[BareToken, AnnotatedToken]


def segment_ruby(text: str) -> tuple[RubyToken, ...]:
    """
    Split ``BASE[READING]`` markup into bare and annotated tokens.

    The base of an annotation is the whole plain run right before the
    bracket, e.g. ``漢字[かんじ]の意味[いみ]`` gives ``(漢字, かんじ)`` and
    ``(の意味, いみ)``. A bracket group with no plain run in front of it, or
    with an empty reading, is kept verbatim as bare text.
    """
    tokens: list[RubyToken] = []
    pending: list[str] = []

    def flush() -> None:
        if pending:
            tokens.append(BareToken("".join(pending)))
            pending.clear()

    previous_plain = ""
    # re.split with one capture group puts bracket groups at odd indices.
    for idx, part in enumerate(_BRACKET_SPLIT_RE.split(text)):
        if idx % 2 == 0:
            previous_plain = part
            if part:
                pending.append(part)
            continue
        reading = part[1:-1]
        if reading and previous_plain:
            pending.pop()
            flush()
            tokens.append(AnnotatedToken(base=previous_plain, reading=reading))
        else:
            pending.append(part)
        previous_plain = ""
    flush()
    return tuple(tokens)


def serialize_ruby(tokens: Iterable[RubyToken]) -> str:
    pieces: list[str] = []
    for token in tokens:
        if isinstance(token, AnnotatedToken):
            pieces.append(f"{token.base}[{token.reading}]")
        else:
            pieces.append(token.text)
    return "".join(pieces)


def strip_ruby(text: str) -> str:
    """Drop readings and keep base text only."""
    pieces: list[str] = []
    for token in segment_ruby(text):
        pieces.append(token.base if isinstance(token, AnnotatedToken) else token.text)
    return "".join(pieces)
