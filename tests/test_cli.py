from __future__ import annotations

import io
import wave

import pytest
from rich.console import Console

import vibedict.cli as cli
from vibedict.annotations import AnnotatedTerm, TermKind
from vibedict.models import CorpusAnalysis, SentencePair, WordDefinition
from vibedict.popup import CLOSED, Open
from vibedict.session import StudySession
from vibedict.storage import JsonFileStore


class FakeClient:
    def get_word_definition(self, query, native, target):
        return WordDefinition(word=query, explanation=f"{query} in {native.name}", pronunciation="neko")

    def generate_concept_image(self, word, language_name):
        return "https://picsum.photos/seed/x/400/400"

    def analyze_corpus(self, text, native_language_name):
        return CorpusAnalysis(
            detected_language="Japanese",
            summary="gist",
            sentences=[SentencePair("猫[ねこ]は可愛い。", "Cats are cute.")],
            vocabulary=[AnnotatedTerm("可愛い", TermKind.VOCABULARY, "cute", pronunciation="kawaii")],
            grammar=[AnnotatedTerm("は", TermKind.GRAMMAR, "topic marker")],
        )

    def generate_story(self, words, native_language_name):
        return "Once " + " ".join(words)

    def synthesize_speech(self, text):
        return b"\x01\x00" * 4


@pytest.fixture()
def output(monkeypatch) -> io.StringIO:
    buffer = io.StringIO()
    monkeypatch.setattr(cli, "console", Console(file=buffer, width=200, color_system=None))
    monkeypatch.setattr(cli, "_make_client", lambda: FakeClient())
    return buffer


def _session(tmp_path) -> StudySession:
    return StudySession(JsonFileStore(tmp_path))


def test_no_arguments_prints_help(capsys) -> None:
    assert cli.main([]) == 0
    assert "usage" in capsys.readouterr().out.lower()


def test_unknown_command() -> None:
    with pytest.raises(SystemExit, match="Unknown command: frobnicate"):
        cli.main(["frobnicate"])


def test_setup_persists_languages(tmp_path, output) -> None:
    assert cli.main(["setup", "--data-dir", str(tmp_path), "fr", "German"]) == 0
    session = _session(tmp_path)
    assert session.is_setup_complete
    assert session.state.native_language.code == "fr"
    assert session.state.target_language.code == "de"
    assert "German" in output.getvalue()


def test_setup_rejects_unknown_language(tmp_path, output) -> None:
    with pytest.raises(SystemExit, match="Unknown language: xx"):
        cli.main(["setup", "--data-dir", str(tmp_path), "xx", "ja"])


def test_lookup_save_and_notebook(tmp_path, output) -> None:
    cli.main(["lookup", "--data-dir", str(tmp_path), "--save", "--image", "猫"])
    text = output.getvalue()
    assert "猫 in English" in text
    assert "Saved" in text
    saved = _session(tmp_path).state.notebook
    assert [word.word for word in saved] == ["猫"]
    assert saved[0].image_url == "https://picsum.photos/seed/x/400/400"

    cli.main(["notebook", "--data-dir", str(tmp_path)])
    assert "Notebook (1 words)" in output.getvalue()

    cli.main(["notebook", "--data-dir", str(tmp_path), "remove", saved[0].id])
    assert _session(tmp_path).state.notebook == []
    with pytest.raises(SystemExit):
        cli.main(["notebook", "--data-dir", str(tmp_path), "remove", saved[0].id])


def test_story_needs_two_words(tmp_path, output) -> None:
    cli.main(["lookup", "--data-dir", str(tmp_path), "--save", "猫"])
    with pytest.raises(SystemExit):
        cli.main(["story", "--data-dir", str(tmp_path)])
    cli.main(["lookup", "--data-dir", str(tmp_path), "--save", "犬"])
    cli.main(["story", "--data-dir", str(tmp_path)])
    assert "Once 犬 猫" in output.getvalue()


def test_speak_writes_wav(tmp_path, output) -> None:
    target = tmp_path / "out.wav"
    cli.main(["speak", "-o", str(target), "猫[ねこ]"])
    with wave.open(str(target), "rb") as handle:
        assert handle.getnframes() == 4


def test_analyze_and_show_corpus(tmp_path, output, monkeypatch) -> None:
    cli.main(["analyze", "--data-dir", str(tmp_path), "猫は可愛い。"])
    item = _session(tmp_path).state.corpus[0]
    text = output.getvalue()
    assert "猫(ねこ)は可愛い。" in text
    assert "Cats are cute." in text

    cli.main(["corpus", "--data-dir", str(tmp_path)])
    assert item.id in output.getvalue()

    answers = iter(["9", "1", "x", "2", ""])
    monkeypatch.setattr(cli.console, "input", lambda *_args, **_kwargs: next(answers))
    cli.main(["corpus", "--data-dir", str(tmp_path), "show", "-i", item.id])
    shown = output.getvalue()
    assert "Pick a number from the list." in shown
    assert "kawaii" in shown
    assert "topic marker" in shown

    cli.main(["corpus", "--data-dir", str(tmp_path), "remove", item.id])
    with pytest.raises(SystemExit, match="Entry not found"):
        cli.main(["corpus", "--data-dir", str(tmp_path), "show", item.id])


def test_flashcards_empty_notebook(tmp_path, output) -> None:
    with pytest.raises(SystemExit, match="notebook is empty"):
        cli.main(["flashcards", "--data-dir", str(tmp_path)])


def test_invalid_term_choice_keeps_popup_open(output) -> None:
    terms = [AnnotatedTerm("猫", TermKind.VOCABULARY, "cat", pronunciation="neko")]
    state = cli._apply_term_choice(CLOSED, "1", terms)
    assert isinstance(state, Open)
    assert cli._apply_term_choice(state, "7", terms) is state
    assert cli._apply_term_choice(state, "abc", terms) is state
    assert "Pick a number from the list." in output.getvalue()
    assert cli._apply_term_choice(state, "x", terms) == CLOSED
