from __future__ import annotations

import json

import pytest

from vibedict.languages import find_language
from vibedict.models import CorpusAnalysis, UsageExample, WordDefinition
from vibedict.session import NotEnoughWordsError, StudySession, corpus_title
from vibedict.storage import SETUP_KEY, STATE_KEY, JsonFileStore, MemoryStore


def _definition(word: str) -> WordDefinition:
    return WordDefinition(
        word=word,
        explanation=f"meaning of {word}",
        pronunciation="p",
        examples=[UsageExample(target=f"{word}!", native="!")],
    )


def _analysis() -> CorpusAnalysis:
    return CorpusAnalysis(detected_language="Japanese", summary="s")


def test_defaults_when_store_is_empty() -> None:
    session = StudySession(MemoryStore())
    assert session.state.native_language.code == "en"
    assert session.state.target_language.code == "ja"
    assert not session.is_setup_complete


def test_finish_setup_persists_languages_and_flag() -> None:
    store = MemoryStore()
    session = StudySession(store)
    session.finish_setup(find_language("zh"), find_language("en"))
    reloaded = StudySession(store)
    assert reloaded.is_setup_complete
    assert reloaded.state.native_language.code == "zh"
    assert reloaded.state.target_language.code == "en"
    assert store.values[SETUP_KEY] is True


def test_swap_languages() -> None:
    session = StudySession(MemoryStore())
    session.swap_languages()
    assert session.state.native_language.code == "ja"
    assert session.state.target_language.code == "en"


def test_save_word_replaces_same_word_and_puts_newest_first() -> None:
    store = MemoryStore()
    session = StudySession(store)
    first = session.save_word(_definition("猫"))
    session.save_word(_definition("犬"))
    again = session.save_word(_definition("猫"), image_url="data:image/png;base64,AAA")
    assert [word.word for word in session.state.notebook] == ["猫", "犬"]
    assert again.id != first.id
    assert session.find_word("猫").image_url == "data:image/png;base64,AAA"
    assert store.values[STATE_KEY]["notebook"][0]["imageUrl"] == "data:image/png;base64,AAA"


def test_remove_word() -> None:
    session = StudySession(MemoryStore())
    saved = session.save_word(_definition("猫"))
    assert session.remove_word(saved.id)
    assert not session.remove_word(saved.id)
    assert session.state.notebook == []


def test_story_words_needs_two_words() -> None:
    session = StudySession(MemoryStore())
    session.save_word(_definition("a"))
    with pytest.raises(NotEnoughWordsError):
        session.story_words()
    for word in "bcdef":
        session.save_word(_definition(word))
    assert session.story_words() == ["f", "e", "d", "c", "b"]


def test_corpus_items_are_prepended_and_titled() -> None:
    session = StudySession(MemoryStore())
    short = session.add_corpus_item("短い文章", _analysis())
    long_text = "x" * 31
    long = session.add_corpus_item(long_text, _analysis())
    assert [item.id for item in session.state.corpus] == [long.id, short.id]
    assert short.title == "短い文章"
    assert long.title == "x" * 30 + "..."
    assert session.get_corpus_item(short.id) is short
    assert session.remove_corpus_item(short.id)
    assert session.get_corpus_item(short.id) is None
    assert not session.remove_corpus_item("missing")


def test_corpus_title_boundary() -> None:
    assert corpus_title("y" * 30) == "y" * 30


def test_json_file_store_round_trip(tmp_path) -> None:
    store = JsonFileStore(tmp_path / "data")
    session = StudySession(store)
    session.save_word(_definition("猫"))
    path = store.path_for(STATE_KEY)
    assert path.exists()
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["notebook"][0]["word"] == "猫"
    assert "猫" in path.read_text(encoding="utf-8")
    reloaded = StudySession(JsonFileStore(tmp_path / "data"))
    assert reloaded.find_word("猫") is not None


def test_corrupt_state_file_loads_defaults(tmp_path) -> None:
    store = JsonFileStore(tmp_path)
    store.path_for(STATE_KEY).write_text("{not json", encoding="utf-8")
    session = StudySession(store)
    assert session.state.notebook == []
    assert session.state.target_language.code == "ja"


def test_default_data_dir_honours_env(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("VIBEDICT_DATA_DIR", str(tmp_path / "custom"))
    assert JsonFileStore().root == tmp_path / "custom"
