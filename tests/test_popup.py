from __future__ import annotations

from vibedict.annotations import AnnotatedTerm, TermKind
from vibedict.popup import CLOSED, Closed, Open, dismiss, payload_for_term, select_term


def _payloads():
    vocab = AnnotatedTerm(
        term="先生",
        kind=TermKind.VOCABULARY,
        explanation="teacher",
        pronunciation="sensei [seɴseː] LHH",
        examples=("先生が来た。",),
    )
    grammar = AnnotatedTerm(
        term="〜ている",
        kind=TermKind.GRAMMAR,
        explanation="ongoing action",
        pronunciation="should be ignored",
    )
    return payload_for_term(vocab), payload_for_term(grammar)


def test_payload_carries_term_fields() -> None:
    vocab, grammar = _payloads()
    assert vocab.title == "先生"
    assert vocab.kind is TermKind.VOCABULARY
    assert vocab.pronunciation == "sensei [seɴseː] LHH"
    assert vocab.examples == ("先生が来た。",)
    assert grammar.kind is TermKind.GRAMMAR
    assert grammar.pronunciation is None
    assert grammar.examples == ()


def test_select_opens_from_closed() -> None:
    vocab, _ = _payloads()
    assert select_term(CLOSED, vocab) == Open(vocab)


def test_select_while_open_replaces_payload() -> None:
    vocab, grammar = _payloads()
    state = select_term(CLOSED, vocab)
    state = select_term(state, grammar)
    assert state == Open(grammar)


def test_dismiss_closes() -> None:
    vocab, _ = _payloads()
    assert isinstance(dismiss(select_term(CLOSED, vocab)), Closed)
    assert dismiss(CLOSED) == CLOSED
