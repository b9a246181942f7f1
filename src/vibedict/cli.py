from __future__ import annotations

import argparse
import socket
import sys
from importlib import metadata
from pathlib import Path

import uvicorn
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .annotations import AnnotatedTerm, TermKind, build_index
from .flashcards import EmptyDeckError, FlashcardDeck
from .gemini import (
    ClientConfig,
    GeminiClient,
    GeminiConfigError,
    GeminiError,
    GeminiUnavailableError,
    pcm_to_wav,
)
from .languages import LANGUAGES, find_language
from .logging_utils import build_uvicorn_log_config, set_debug_logging
from .models import ChatMessage, CorpusItem, Language, WordDefinition
from .popup import CLOSED, Open, PopupState, dismiss, payload_for_term, select_term
from .render import render_analysis, rich_text_for_ruby, rich_text_for_spans
from .ruby import segment_ruby, strip_ruby
from .session import NotEnoughWordsError, StudySession
from .storage import JsonFileStore, default_data_dir
from .web import WebConfig, create_app

try:
    __version__ = metadata.version("vibedict")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0+unknown"

console = Console()


def _add_common_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"vibedict {__version__}",
    )
    parser.add_argument(
        "--data-dir",
        help="Directory holding the saved notebook and corpus (default: $VIBEDICT_DATA_DIR or ~/.local/share/vibedict).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging (dropped terms, retries, AI fallbacks).",
    )


def _parser(description: str) -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description=description)
    _add_common_flags(ap)
    return ap


def build_parser() -> argparse.ArgumentParser:
    ap = _parser("AI-assisted vocabulary notebook and corpus reader.")
    ap.add_argument(
        "command",
        nargs="?",
        help="One of: setup, lookup, notebook, story, chat, speak, analyze, corpus, flashcards, web.",
    )
    return ap


def build_setup_parser() -> argparse.ArgumentParser:
    ap = _parser("Choose your native and target languages.")
    ap.add_argument("native", help="Native language code or name (e.g. en).")
    ap.add_argument("target", help="Target language code or name (e.g. ja).")
    return ap


def build_lookup_parser() -> argparse.ArgumentParser:
    ap = _parser("Look up a word or phrase.")
    ap.add_argument("query", nargs="+", help="Word or phrase to explain.")
    ap.add_argument("--save", action="store_true", help="Save the result to the notebook.")
    ap.add_argument(
        "--image",
        action="store_true",
        help="Also generate a concept image (stored with the saved word).",
    )
    return ap


def build_notebook_parser() -> argparse.ArgumentParser:
    ap = _parser("Show or edit saved words.")
    subparsers = ap.add_subparsers(dest="notebook_cmd")
    subparsers.add_parser("list", help="List saved words (default).")
    remove = subparsers.add_parser("remove", help="Remove a saved word by id.")
    remove.add_argument("word_id")
    return ap


def build_story_parser() -> argparse.ArgumentParser:
    return _parser("Generate a short story from your most recent saved words.")


def build_chat_parser() -> argparse.ArgumentParser:
    ap = _parser("Chat with an AI coach about a word. Submit an empty line to quit.")
    ap.add_argument("word")
    return ap


def build_speak_parser() -> argparse.ArgumentParser:
    ap = _parser("Synthesize speech for a text and write it as WAV.")
    ap.add_argument("text", nargs="+")
    ap.add_argument(
        "-o",
        "--output",
        default="speech.wav",
        help="Output WAV path (default: speech.wav).",
    )
    return ap


def build_analyze_parser() -> argparse.ArgumentParser:
    ap = _parser("Analyze a text and add it to the corpus.")
    ap.add_argument("text", nargs="*", help="Text to analyze.")
    ap.add_argument("--file", help="Read the text from a UTF-8 file instead.")
    return ap


def build_corpus_parser() -> argparse.ArgumentParser:
    ap = _parser("Browse analyzed texts.")
    subparsers = ap.add_subparsers(dest="corpus_cmd")
    subparsers.add_parser("list", help="List corpus entries (default).")
    show = subparsers.add_parser("show", help="Render an entry with highlights and readings.")
    show.add_argument("item_id")
    show.add_argument(
        "-i",
        "--interactive",
        action="store_true",
        help="Pick highlighted terms by number to see their details (x closes the details).",
    )
    remove = subparsers.add_parser("remove", help="Delete an entry.")
    remove.add_argument("item_id")
    return ap


def build_flashcards_parser() -> argparse.ArgumentParser:
    return _parser("Review saved words as flashcards (n=next, p=previous, f=flip, q=quit).")


def build_web_parser() -> argparse.ArgumentParser:
    ap = _parser("Serve the notebook and corpus reader in a browser.")
    ap.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface for the web server (default: 127.0.0.1).",
    )
    ap.add_argument(
        "--port",
        type=int,
        default=2047,
        help="Port for the web server (default: 2047).",
    )
    return ap


def _open_session(args: argparse.Namespace) -> StudySession:
    data_dir = Path(args.data_dir).expanduser() if args.data_dir else default_data_dir()
    return StudySession(JsonFileStore(data_dir))


def _make_client() -> GeminiClient:
    try:
        return GeminiClient(ClientConfig.from_env())
    except GeminiConfigError as exc:
        raise SystemExit(str(exc)) from exc


def _resolve_language(value: str) -> Language:
    language = find_language(value)
    if language is None:
        known = ", ".join(lang.code for lang in LANGUAGES)
        raise SystemExit(f"Unknown language: {value} (choose from {known})")
    return language


def _print_definition(definition: WordDefinition) -> None:
    header = escape(definition.word)
    if definition.pronunciation:
        header = f"{header}  [dim]{escape(definition.pronunciation)}[/dim]"
    body = [escape(definition.explanation)]
    for example in definition.examples:
        body.append(f"• {escape(example.target)}\n  [italic]{escape(example.native)}[/italic]")
    if definition.usage_notes:
        body.append(f"[bold]Usage:[/bold] {escape(definition.usage_notes)}")
    if definition.image_url:
        body.append(f"[dim]image: {escape(definition.image_url[:80])}[/dim]")
    console.print(Panel("\n".join(body), title=header, title_align="left"))


def _run_setup(args: argparse.Namespace) -> int:
    native = _resolve_language(args.native)
    target = _resolve_language(args.target)
    session = _open_session(args)
    session.finish_setup(native, target)
    console.print(f"Learning {target.flag} {target.name} from {native.flag} {native.name}.")
    return 0


def _run_lookup(args: argparse.Namespace) -> int:
    query = " ".join(args.query).strip()
    if not query:
        raise SystemExit("No word provided.")
    session = _open_session(args)
    client = _make_client()
    native = session.state.native_language
    target = session.state.target_language
    try:
        definition = client.get_word_definition(query, native, target)
    except (GeminiError, GeminiUnavailableError) as exc:
        raise SystemExit(f"Lookup failed: {exc}") from exc
    if args.image:
        definition.image_url = client.generate_concept_image(query, target.name)
    _print_definition(definition)
    if args.save:
        saved = session.save_word(definition)
        console.print(f"Saved [bold]{escape(saved.word)}[/bold] ({saved.id}).")
    return 0


def _run_notebook(args: argparse.Namespace) -> int:
    session = _open_session(args)
    if args.notebook_cmd == "remove":
        if not session.remove_word(args.word_id):
            raise SystemExit(f"No saved word with id {args.word_id}")
        console.print(f"Removed {args.word_id}.")
        return 0
    words = session.state.notebook
    if not words:
        console.print("Your notebook is empty. Use 'vibedict lookup WORD --save'.")
        return 0
    table = Table(title=f"Notebook ({len(words)} words)")
    table.add_column("id", style="dim")
    table.add_column("word", style="bold")
    table.add_column("pronunciation")
    table.add_column("explanation")
    for word in words:
        table.add_row(
            word.id,
            escape(word.word),
            escape(word.pronunciation or ""),
            escape(word.explanation),
        )
    console.print(table)
    return 0


def _run_story(args: argparse.Namespace) -> int:
    session = _open_session(args)
    try:
        words = session.story_words()
    except NotEnoughWordsError as exc:
        raise SystemExit(str(exc)) from exc
    client = _make_client()
    try:
        story = client.generate_story(words, session.state.native_language.name)
    except (GeminiError, GeminiUnavailableError) as exc:
        raise SystemExit(f"Story generation failed: {exc}") from exc
    console.print(Panel(escape(story), title=escape(", ".join(words)), title_align="left"))
    return 0


def _run_chat(args: argparse.Namespace) -> int:
    client = _make_client()
    history: list[ChatMessage] = []
    while True:
        try:
            message = console.input("[bold]you>[/bold] ").strip()
        except EOFError:
            break
        if not message:
            break
        try:
            reply = client.chat_about_word(args.word, history, message)
        except (GeminiError, GeminiUnavailableError):
            reply = "Lost connection..."
        history.append(ChatMessage(role="user", text=message))
        history.append(ChatMessage(role="model", text=reply))
        console.print(f"[bold cyan]coach>[/bold cyan] {escape(reply)}")
    return 0


def _run_speak(args: argparse.Namespace) -> int:
    text = strip_ruby(" ".join(args.text).strip())
    if not text:
        raise SystemExit("No text provided.")
    client = _make_client()
    try:
        pcm = client.synthesize_speech(text)
    except (GeminiError, GeminiUnavailableError) as exc:
        raise SystemExit(f"Speech synthesis failed: {exc}") from exc
    output = Path(args.output).expanduser()
    output.write_bytes(pcm_to_wav(pcm))
    console.print(f"Wrote {output}")
    return 0


def _run_analyze(args: argparse.Namespace) -> int:
    if args.file:
        text = Path(args.file).expanduser().read_text(encoding="utf-8")
    else:
        text = " ".join(args.text)
    text = text.strip()
    if not text:
        raise SystemExit("No text provided for analysis.")
    session = _open_session(args)
    client = _make_client()
    try:
        with console.status("Analyzing..."):
            analysis = client.analyze_corpus(text, session.state.native_language.name)
    except (GeminiError, GeminiUnavailableError) as exc:
        raise SystemExit(f"Analysis failed. Try a shorter text. ({exc})") from exc
    item = session.add_corpus_item(text, analysis)
    _print_corpus_item(item)
    return 0


def _print_popup(state: PopupState) -> None:
    if not isinstance(state, Open):
        return
    payload = state.payload
    label = "Vocabulary" if payload.kind is TermKind.VOCABULARY else "Grammar"
    body = [escape(payload.description)]
    if payload.pronunciation:
        body.insert(0, f"[bold]{escape(payload.pronunciation)}[/bold]")
    for example in payload.examples:
        body.append(f"“{escape(example)}”")
    console.print(
        Panel(
            "\n".join(body),
            title=rich_text_for_ruby(segment_ruby(payload.title)),
            subtitle=label,
            title_align="left",
        )
    )


def _apply_term_choice(state: PopupState, choice: str, terms: list[AnnotatedTerm]) -> PopupState:
    if choice.lower() == "x":
        return dismiss(state)
    if not choice.isdigit() or not 1 <= int(choice) <= len(terms):
        console.print("[red]Pick a number from the list.[/red]")
        return state
    state = select_term(state, payload_for_term(terms[int(choice) - 1]))
    _print_popup(state)
    return state


def _print_corpus_item(item: CorpusItem) -> list[AnnotatedTerm]:
    analysis = item.analysis
    index = build_index(analysis.terms())
    console.print(f"[bold]{escape(item.title)}[/bold]  [dim]{escape(analysis.detected_language)}[/dim]")
    for sentence in render_analysis(analysis, index):
        console.print(rich_text_for_spans(sentence.spans))
        console.print(f"  [italic blue]{escape(sentence.translated)}[/italic blue]")
    if analysis.summary:
        console.print(Panel(escape(analysis.summary), title="The Gist", title_align="left"))
    terms = [term for term in dict.fromkeys(analysis.terms()) if not term.is_blank]
    for number, term in enumerate(terms, start=1):
        line = rich_text_for_ruby(segment_ruby(term.term), style="bold")
        line.append(f"  [{term.kind.value}] {term.explanation}")
        console.print(f"{number:>3}. ", line)
    return terms


def _run_corpus(args: argparse.Namespace) -> int:
    session = _open_session(args)
    if args.corpus_cmd == "remove":
        if not session.remove_corpus_item(args.item_id):
            raise SystemExit(f"Entry not found: {args.item_id}")
        console.print(f"Removed {args.item_id}.")
        return 0
    if args.corpus_cmd == "show":
        item = session.get_corpus_item(args.item_id)
        if item is None:
            raise SystemExit(f"Entry not found: {args.item_id}")
        terms = _print_corpus_item(item)
        if args.interactive and terms:
            state: PopupState = CLOSED
            while True:
                try:
                    choice = console.input("term # (x closes, empty quits)> ").strip()
                except EOFError:
                    break
                if not choice:
                    break
                state = _apply_term_choice(state, choice, terms)
        return 0
    items = session.state.corpus
    if not items:
        console.print("No analyzed texts yet. Use 'vibedict analyze TEXT'.")
        return 0
    table = Table(title="Corpus")
    table.add_column("id", style="dim")
    table.add_column("language")
    table.add_column("title", style="bold")
    for item in items:
        table.add_row(item.id, escape(item.analysis.detected_language), escape(item.title))
    console.print(table)
    return 0


def _run_flashcards(args: argparse.Namespace) -> int:
    session = _open_session(args)
    deck = FlashcardDeck(session.state.notebook)
    try:
        card = deck.current
    except EmptyDeckError as exc:
        raise SystemExit(str(exc)) from exc
    while True:
        if deck.flipped:
            console.print(
                Panel(
                    escape(card.explanation),
                    title=escape(card.word),
                    subtitle=escape(card.pronunciation or ""),
                )
            )
        else:
            console.print(Panel(escape(card.word), subtitle=f"Card {deck.position} of {len(deck)}"))
        try:
            key = console.input("[n/p/f/q]> ").strip().lower()
        except EOFError:
            break
        if key in ("q", ""):
            break
        if key == "n":
            card = deck.next()
        elif key == "p":
            card = deck.previous()
        elif key == "f":
            deck.flip()
    return 0


def _resolve_local_ip(host: str) -> str:
    if host not in ("0.0.0.0", "::"):
        return host
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"


def _run_web(args: argparse.Namespace) -> int:
    data_dir = Path(args.data_dir).expanduser() if args.data_dir else default_data_dir()
    app = create_app(WebConfig(data_dir=data_dir))
    url = f"http://{_resolve_local_ip(args.host)}:{args.port}/"
    print(f"Serving vibedict from {data_dir}")
    print(f"Web URL: {url}")
    print("Press Ctrl+C to stop.\n")
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_config=build_uvicorn_log_config(args.debug),
    )
    return 0


COMMANDS = {
    "setup": (build_setup_parser, _run_setup),
    "lookup": (build_lookup_parser, _run_lookup),
    "notebook": (build_notebook_parser, _run_notebook),
    "story": (build_story_parser, _run_story),
    "chat": (build_chat_parser, _run_chat),
    "speak": (build_speak_parser, _run_speak),
    "analyze": (build_analyze_parser, _run_analyze),
    "corpus": (build_corpus_parser, _run_corpus),
    "flashcards": (build_flashcards_parser, _run_flashcards),
    "web": (build_web_parser, _run_web),
}


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] in COMMANDS:
        build, run = COMMANDS[argv[0]]
        args = build().parse_args(argv[1:])
        set_debug_logging(bool(getattr(args, "debug", False)))
        return run(args)

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0
    raise SystemExit(f"Unknown command: {args.command}")


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
