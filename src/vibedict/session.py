from __future__ import annotations

import time
import uuid

from .languages import DEFAULT_NATIVE, DEFAULT_TARGET
from .models import (
    AppState,
    CorpusAnalysis,
    CorpusItem,
    Language,
    SavedWord,
    WordDefinition,
    deserialize_app_state,
    serialize_app_state,
)
from .storage import SETUP_KEY, STATE_KEY, StateStore

__all__ = [
    "StudySession",
    "NotEnoughWordsError",
    "default_app_state",
    "corpus_title",
    "MIN_STORY_WORDS",
    "STORY_WORD_LIMIT",
]

TITLE_LENGTH = 30
MIN_STORY_WORDS = 2
STORY_WORD_LIMIT = 5


class NotEnoughWordsError(ValueError):
    """Raised when a story is requested with too few saved words."""


def default_app_state() -> AppState:
    return AppState(native_language=DEFAULT_NATIVE, target_language=DEFAULT_TARGET)


def _new_id() -> str:
    return uuid.uuid4().hex[:9]


def _now_ms() -> int:
    return int(time.time() * 1000)


def corpus_title(content: str) -> str:
    if len(content) > TITLE_LENGTH:
        return content[:TITLE_LENGTH] + "..."
    return content


class StudySession:
    """
    Owner of the persisted application state.

    The state document is loaded once from ``store`` and written back after
    every mutation, so the store always reflects what the user sees.
    """

    def __init__(self, store: StateStore) -> None:
        self.store = store
        self.state = deserialize_app_state(store.load(STATE_KEY), default=default_app_state())
        self._setup_complete = store.load(SETUP_KEY) is True

    @property
    def is_setup_complete(self) -> bool:
        return self._setup_complete

    def flush(self) -> None:
        self.store.save(STATE_KEY, serialize_app_state(self.state))

    def finish_setup(self, native: Language, target: Language) -> None:
        self.state.native_language = native
        self.state.target_language = target
        self.flush()
        self._setup_complete = True
        self.store.save(SETUP_KEY, True)

    def set_languages(
        self,
        native: Language | None = None,
        target: Language | None = None,
    ) -> None:
        if native is not None:
            self.state.native_language = native
        if target is not None:
            self.state.target_language = target
        self.flush()

    def swap_languages(self) -> None:
        self.state.native_language, self.state.target_language = (
            self.state.target_language,
            self.state.native_language,
        )
        self.flush()

    # Notebook

    def find_word(self, word: str) -> SavedWord | None:
        for entry in self.state.notebook:
            if entry.word == word:
                return entry
        return None

    def save_word(self, definition: WordDefinition, image_url: str | None = None) -> SavedWord:
        saved = SavedWord(
            word=definition.word,
            explanation=definition.explanation,
            pronunciation=definition.pronunciation,
            examples=list(definition.examples),
            usage_notes=definition.usage_notes,
            image_url=image_url if image_url is not None else definition.image_url,
            id=_new_id(),
            added_at=_now_ms(),
        )
        remaining = [entry for entry in self.state.notebook if entry.word != saved.word]
        self.state.notebook = [saved, *remaining]
        self.flush()
        return saved

    def remove_word(self, word_id: str) -> bool:
        remaining = [entry for entry in self.state.notebook if entry.id != word_id]
        if len(remaining) == len(self.state.notebook):
            return False
        self.state.notebook = remaining
        self.flush()
        return True

    def story_words(self, limit: int = STORY_WORD_LIMIT) -> list[str]:
        if len(self.state.notebook) < MIN_STORY_WORDS:
            raise NotEnoughWordsError(
                f"Save at least {MIN_STORY_WORDS} words before generating a story."
            )
        return [entry.word for entry in self.state.notebook[:limit]]

    # Corpus

    def get_corpus_item(self, item_id: str) -> CorpusItem | None:
        for item in self.state.corpus:
            if item.id == item_id:
                return item
        return None

    def add_corpus_item(self, content: str, analysis: CorpusAnalysis) -> CorpusItem:
        item = CorpusItem(
            id=_new_id(),
            title=corpus_title(content),
            content=content,
            analysis=analysis,
            added_at=_now_ms(),
        )
        self.state.corpus = [item, *self.state.corpus]
        self.flush()
        return item

    def remove_corpus_item(self, item_id: str) -> bool:
        remaining = [item for item in self.state.corpus if item.id != item_id]
        if len(remaining) == len(self.state.corpus):
            return False
        self.state.corpus = remaining
        self.flush()
        return True
