from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .annotations import AnnotatedTerm, TermKind

__all__ = [
    "KnowledgePayload",
    "Closed",
    "Open",
    "PopupState",
    "CLOSED",
    "payload_for_term",
    "select_term",
    "dismiss",
]


@dataclass(frozen=True)
class KnowledgePayload:
    title: str
    description: str
    kind: TermKind
    pronunciation: str | None = None
    examples: tuple[str, ...] = ()


@dataclass(frozen=True)
class Closed:
    pass


@dataclass(frozen=True)
class Open:
    payload: KnowledgePayload


PopupState = Union[Closed, Open]

CLOSED = Closed()


def payload_for_term(term: AnnotatedTerm) -> KnowledgePayload:
    pronunciation = term.pronunciation or None
    if term.kind is TermKind.GRAMMAR:
        pronunciation = None
    return KnowledgePayload(
        title=term.term,
        description=term.explanation,
        kind=term.kind,
        pronunciation=pronunciation,
        examples=tuple(term.examples),
    )


def select_term(state: PopupState, payload: KnowledgePayload) -> PopupState:
    # Selecting while open replaces the payload directly.
    return Open(payload)


def dismiss(state: PopupState) -> PopupState:
    return CLOSED
