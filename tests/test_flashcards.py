from __future__ import annotations

import pytest

from vibedict.flashcards import EmptyDeckError, FlashcardDeck
from vibedict.models import SavedWord


def _word(name: str) -> SavedWord:
    return SavedWord(word=name, explanation=f"{name} meaning", id=name)


def test_navigation_wraps_and_unflips() -> None:
    deck = FlashcardDeck([_word("a"), _word("b"), _word("c")])
    assert deck.current.word == "a"
    assert deck.position == 1
    assert deck.flip() is True
    assert deck.next().word == "b"
    assert deck.flipped is False
    deck.next()
    assert deck.next().word == "a"
    assert deck.previous().word == "c"
    assert deck.position == 3


def test_flip_toggles() -> None:
    deck = FlashcardDeck([_word("a")])
    assert deck.flip() is True
    assert deck.flip() is False


def test_empty_deck_raises() -> None:
    deck = FlashcardDeck([])
    assert len(deck) == 0
    with pytest.raises(EmptyDeckError):
        deck.current
    with pytest.raises(EmptyDeckError):
        deck.next()
