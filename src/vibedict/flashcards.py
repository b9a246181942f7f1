from __future__ import annotations

from typing import Sequence

from .models import SavedWord

__all__ = ["FlashcardDeck", "EmptyDeckError"]


class EmptyDeckError(LookupError):
    """Raised when a deck without cards is navigated."""


class FlashcardDeck:
    def __init__(self, words: Sequence[SavedWord]) -> None:
        self.words = list(words)
        self.index = 0
        self.flipped = False

    def __len__(self) -> int:
        return len(self.words)

    def _require_cards(self) -> None:
        if not self.words:
            raise EmptyDeckError("The notebook is empty; save some words first.")

    @property
    def current(self) -> SavedWord:
        self._require_cards()
        return self.words[self.index]

    @property
    def position(self) -> int:
        return self.index + 1

    def flip(self) -> bool:
        self._require_cards()
        self.flipped = not self.flipped
        return self.flipped

    def next(self) -> SavedWord:
        self._require_cards()
        self.flipped = False
        self.index = (self.index + 1) % len(self.words)
        return self.words[self.index]

    def previous(self) -> SavedWord:
        self._require_cards()
        self.flipped = False
        self.index = (self.index - 1) % len(self.words)
        return self.words[self.index]
