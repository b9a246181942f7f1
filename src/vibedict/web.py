from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import HTMLResponse, JSONResponse, Response

from .annotations import build_index
from .gemini import (
    ClientConfig,
    GeminiClient,
    GeminiConfigError,
    GeminiError,
    GeminiUnavailableError,
    pcm_to_wav,
)
from .languages import LANGUAGES, find_language
from .models import (
    ChatMessage,
    CorpusItem,
    deserialize_word_definition,
    serialize_app_state,
    serialize_language,
    serialize_saved_word,
    serialize_word_definition,
)
from .render import render_analysis, rendered_span_payload, term_payload
from .session import NotEnoughWordsError, StudySession
from .storage import JsonFileStore, StateStore


@dataclass(slots=True)
class WebConfig:
    data_dir: Path
    client_config: ClientConfig | None = None


INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>VibeDict Reader</title>
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <style>
    :root {
      font-family: -apple-system, BlinkMacSystemFont, "Helvetica Neue", "Hiragino Sans", sans-serif;
      --bg: #f1f5f9;
      --panel: #ffffff;
      --text: #1e293b;
      --muted: #94a3b8;
      --vocab: #db2777;
      --grammar: #b45309;
    }
    body { margin: 0; background: var(--bg); color: var(--text); }
    main { max-width: 42rem; margin: 0 auto; padding: 1.5rem; }
    .item { background: var(--panel); border-radius: 1rem; padding: 1rem; margin-bottom: .75rem; cursor: pointer; }
    .sentence { font-size: 1.4rem; line-height: 2.2; white-space: pre-wrap; }
    .translated { color: #6366f1; font-style: italic; border-left: 4px solid #e0e7ff; padding-left: 1rem; }
    .gist { background: #eef2ff; border-radius: 1rem; padding: 1rem; margin-top: 1rem; }
    .entry { background: var(--panel); border-radius: .75rem; padding: .75rem; margin-bottom: .5rem; cursor: pointer; }
    .entry.vocab { border-left: 4px solid var(--vocab); }
    .entry.grammar { border-left: 4px solid var(--grammar); }
    .hl { cursor: pointer; font-weight: 700; border-bottom: 2px solid; }
    .hl.vocab { color: var(--vocab); }
    .hl.grammar { color: var(--grammar); }
    rt { font-size: .6rem; color: var(--muted); }
    #popup { position: fixed; inset: 0; background: rgba(15, 23, 42, .5); display: none; align-items: flex-end; justify-content: center; }
    #popup .card { background: var(--panel); border-radius: 2rem; padding: 2rem; width: 100%; max-width: 24rem; margin: 1rem; }
  </style>
</head>
<body>
  <main>
    <h1>Corpus</h1>
    <div id="list"></div>
    <div id="detail"></div>
  </main>
  <div id="popup"><div class="card" id="popup-card"></div></div>
  <script>
    const popup = document.getElementById('popup');
    popup.addEventListener('click', (event) => { if (event.target === popup) popup.style.display = 'none'; });

    function rubyNode(tokens) {
      const frag = document.createDocumentFragment();
      for (const token of tokens) {
        if (token.reading !== undefined) {
          const ruby = document.createElement('ruby');
          ruby.append(token.base);
          const rt = document.createElement('rt');
          rt.textContent = token.reading;
          ruby.append(rt);
          frag.append(ruby);
        } else {
          frag.append(token.text);
        }
      }
      return frag;
    }

    function showTerm(term) {
      const card = document.getElementById('popup-card');
      card.replaceChildren();
      const kind = document.createElement('small');
      kind.textContent = term.kind === 'vocab' ? 'Vocabulary' : 'Grammar';
      const title = document.createElement('h2');
      title.append(rubyNode(term.title_ruby));
      card.append(kind, title);
      if (term.pronunciation) {
        const p = document.createElement('p');
        p.textContent = term.pronunciation;
        card.append(p);
      }
      const desc = document.createElement('p');
      desc.textContent = term.description;
      card.append(desc);
      for (const example of term.examples) {
        const q = document.createElement('blockquote');
        q.textContent = example;
        card.append(q);
      }
      popup.style.display = 'flex';
    }

    function termList(label, terms) {
      const section = document.createElement('section');
      const heading = document.createElement('h3');
      heading.textContent = label;
      section.append(heading);
      for (const term of terms) {
        const entry = document.createElement('div');
        entry.className = `entry ${term.kind}`;
        entry.append(rubyNode(term.title_ruby));
        const desc = document.createElement('small');
        desc.textContent = ` ${term.description}`;
        entry.append(desc);
        entry.addEventListener('click', () => showTerm(term));
        section.append(entry);
      }
      return section;
    }

    async function openItem(id) {
      const resp = await fetch(`/api/corpus/${encodeURIComponent(id)}`);
      const data = await resp.json();
      const detail = document.getElementById('detail');
      detail.replaceChildren();
      for (const sentence of data.sentences) {
        const line = document.createElement('div');
        line.className = 'sentence';
        for (const span of sentence.spans) {
          const el = document.createElement('span');
          el.append(rubyNode(span.ruby));
          if (span.term) {
            el.className = `hl ${span.term.kind}`;
            el.addEventListener('click', () => showTerm(span.term));
          }
          line.append(el);
        }
        const tr = document.createElement('div');
        tr.className = 'translated';
        tr.textContent = sentence.translated;
        detail.append(line, tr);
      }
      if (data.summary) {
        const gist = document.createElement('section');
        gist.className = 'gist';
        const heading = document.createElement('h3');
        heading.textContent = 'The Gist';
        const text = document.createElement('p');
        text.textContent = data.summary;
        gist.append(heading, text);
        detail.append(gist);
      }
      detail.append(termList('Vocabulary', data.vocabulary), termList('Grammar', data.grammar));
    }

    async function loadCorpus() {
      const resp = await fetch('/api/corpus');
      const data = await resp.json();
      const list = document.getElementById('list');
      list.replaceChildren();
      for (const item of data.items) {
        const el = document.createElement('div');
        el.className = 'item';
        el.textContent = item.title;
        el.addEventListener('click', () => openItem(item.id));
        list.append(el);
      }
    }

    loadCorpus();
  </script>
</body>
</html>
"""


def _require_str(payload: dict[str, object], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise HTTPException(status_code=400, detail=f"{key} is required.")
    return value.strip()


def _corpus_item_summary(item: CorpusItem) -> dict[str, object]:
    return {
        "id": item.id,
        "title": item.title,
        "detected_language": item.analysis.detected_language,
        "added_at": item.added_at,
    }


def _corpus_item_detail(item: CorpusItem) -> dict[str, object]:
    analysis = item.analysis
    index = build_index(analysis.terms())
    return {
        **_corpus_item_summary(item),
        "content": item.content,
        "summary": analysis.summary,
        "sentences": [
            {
                "spans": [rendered_span_payload(span) for span in sentence.spans],
                "translated": sentence.translated,
            }
            for sentence in render_analysis(analysis, index)
        ],
        "vocabulary": [term_payload(term) for term in analysis.vocabulary],
        "grammar": [term_payload(term) for term in analysis.grammar],
    }


def create_app(
    config: WebConfig,
    *,
    store: StateStore | None = None,
    client_factory: Callable[[], GeminiClient] | None = None,
) -> FastAPI:
    data_dir = config.data_dir.expanduser()
    session = StudySession(store if store is not None else JsonFileStore(data_dir))

    app = FastAPI(title="VibeDict")
    app.state.config = config
    app.state.session = session
    session_lock = threading.Lock()
    client_lock = threading.Lock()
    client_holder: dict[str, GeminiClient] = {}

    def _client() -> GeminiClient:
        with client_lock:
            client = client_holder.get("client")
            if client is None:
                try:
                    if client_factory is not None:
                        client = client_factory()
                    else:
                        client = GeminiClient(config.client_config or ClientConfig.from_env())
                except GeminiConfigError as exc:
                    raise HTTPException(status_code=503, detail=str(exc)) from exc
                client_holder["client"] = client
            return client

    def _call_service(func: Callable[[], object]) -> object:
        try:
            return func()
        except (GeminiError, GeminiUnavailableError) as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc

    def _language_from(payload: dict[str, object], key: str):
        value = payload.get(key)
        if value is None:
            return None
        language = find_language(value) if isinstance(value, str) else None
        if language is None:
            raise HTTPException(status_code=400, detail=f"Unknown language for {key}.")
        return language

    @app.get("/", response_class=HTMLResponse)
    def index() -> str:
        return INDEX_HTML

    @app.get("/api/languages")
    def api_languages() -> JSONResponse:
        return JSONResponse({"languages": [serialize_language(lang) for lang in LANGUAGES]})

    @app.get("/api/state")
    def api_state() -> JSONResponse:
        with session_lock:
            payload = serialize_app_state(session.state)
            payload["setupComplete"] = session.is_setup_complete
        return JSONResponse(payload)

    @app.post("/api/setup")
    def api_setup(payload: dict[str, object] = Body(...)) -> JSONResponse:
        native = _language_from(payload, "native")
        target = _language_from(payload, "target")
        if native is None or target is None:
            raise HTTPException(status_code=400, detail="native and target are required.")
        with session_lock:
            session.finish_setup(native, target)
        return JSONResponse({"ok": True})

    def _languages_payload() -> JSONResponse:
        state = session.state
        return JSONResponse(
            {
                "nativeLang": serialize_language(state.native_language),
                "targetLang": serialize_language(state.target_language),
            }
        )

    @app.post("/api/languages")
    def api_set_languages(payload: dict[str, object] = Body(...)) -> JSONResponse:
        native = _language_from(payload, "native")
        target = _language_from(payload, "target")
        with session_lock:
            session.set_languages(native, target)
            return _languages_payload()

    @app.post("/api/languages/swap")
    def api_swap_languages() -> JSONResponse:
        with session_lock:
            session.swap_languages()
            return _languages_payload()

    @app.get("/api/notebook")
    def api_notebook() -> JSONResponse:
        with session_lock:
            words = [serialize_saved_word(word) for word in session.state.notebook]
        return JSONResponse({"words": words, "count": len(words)})

    @app.post("/api/lookup")
    def api_lookup(payload: dict[str, object] = Body(...)) -> JSONResponse:
        query = _require_str(payload, "query")
        with session_lock:
            native = session.state.native_language
            target = session.state.target_language
        client = _client()
        definition = _call_service(lambda: client.get_word_definition(query, native, target))
        response = serialize_word_definition(definition)
        if payload.get("image"):
            response["imageUrl"] = client.generate_concept_image(query, target.name)
        return JSONResponse(response)

    @app.post("/api/notebook")
    def api_save_word(payload: dict[str, object] = Body(...)) -> JSONResponse:
        definition = deserialize_word_definition(payload)
        if definition is None:
            raise HTTPException(status_code=400, detail="word is required.")
        with session_lock:
            saved = session.save_word(definition)
        return JSONResponse(serialize_saved_word(saved))

    @app.delete("/api/notebook/{word_id}")
    def api_remove_word(word_id: str) -> JSONResponse:
        with session_lock:
            removed = session.remove_word(word_id)
        if not removed:
            raise HTTPException(status_code=404, detail="Word not found")
        return JSONResponse({"deleted": True, "id": word_id})

    @app.post("/api/notebook/story")
    def api_story() -> JSONResponse:
        with session_lock:
            try:
                words = session.story_words()
            except NotEnoughWordsError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            native_name = session.state.native_language.name
        client = _client()
        story = _call_service(lambda: client.generate_story(words, native_name))
        return JSONResponse({"story": story, "words": words})

    @app.post("/api/chat")
    def api_chat(payload: dict[str, object] = Body(...)) -> JSONResponse:
        word = _require_str(payload, "word")
        message = _require_str(payload, "message")
        history: list[ChatMessage] = []
        raw_history = payload.get("history")
        if isinstance(raw_history, list):
            for entry in raw_history:
                if not isinstance(entry, dict):
                    continue
                role = entry.get("role")
                text = entry.get("text")
                if role in ("user", "model") and isinstance(text, str):
                    history.append(ChatMessage(role=role, text=text))
        client = _client()
        reply = _call_service(lambda: client.chat_about_word(word, history, message))
        return JSONResponse({"role": "model", "text": reply})

    @app.post("/api/speech")
    def api_speech(payload: dict[str, object] = Body(...)) -> Response:
        text = _require_str(payload, "text")
        client = _client()
        pcm = _call_service(lambda: client.synthesize_speech(text))
        return Response(content=pcm_to_wav(pcm), media_type="audio/wav")

    @app.get("/api/corpus")
    def api_corpus() -> JSONResponse:
        with session_lock:
            items = [_corpus_item_summary(item) for item in session.state.corpus]
        return JSONResponse({"items": items})

    @app.post("/api/corpus")
    def api_analyze(payload: dict[str, object] = Body(...)) -> JSONResponse:
        text = _require_str(payload, "text")
        with session_lock:
            native_name = session.state.native_language.name
        client = _client()
        analysis = _call_service(lambda: client.analyze_corpus(text, native_name))
        with session_lock:
            item = session.add_corpus_item(text, analysis)
        return JSONResponse(_corpus_item_detail(item))

    @app.get("/api/corpus/{item_id}")
    def api_corpus_item(item_id: str) -> JSONResponse:
        with session_lock:
            item = session.get_corpus_item(item_id)
        if item is None:
            raise HTTPException(status_code=404, detail="Entry not found")
        return JSONResponse(_corpus_item_detail(item))

    @app.delete("/api/corpus/{item_id}")
    def api_remove_corpus_item(item_id: str) -> JSONResponse:
        with session_lock:
            removed = session.remove_corpus_item(item_id)
        if not removed:
            raise HTTPException(status_code=404, detail="Entry not found")
        return JSONResponse({"deleted": True, "id": item_id})

    return app
